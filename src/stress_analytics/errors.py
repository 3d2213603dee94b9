"""Domain exceptions for the Stress Analytics engine.

Pure scoring functions never raise on bad answer data; these exceptions cover
caller mistakes (bad period or range) and infrastructure failures surfaced by
the storage adapters.
"""


class StressAnalyticsError(Exception):
    """Base class for all Stress Analytics errors."""


class InvalidPeriodError(StressAnalyticsError, ValueError):
    """Raised when a period key is not one of week, month, quarter, half, year."""


class InvalidDateRangeError(StressAnalyticsError, ValueError):
    """Raised when a requested date range cannot be parsed."""


class StorageUnavailableError(StressAnalyticsError):
    """Raised when the backing store cannot be reached.

    The recompute job treats this as fatal and aborts instead of skipping the
    current run.
    """


class RunRecomputeError(StressAnalyticsError):
    """Raised when a single survey run cannot be recomputed.

    Attributes:
        run_id: Identifier of the run that failed.
    """

    def __init__(self, run_id: str, message: str) -> None:
        super().__init__(f"Run {run_id}: {message}")
        self.run_id = run_id
