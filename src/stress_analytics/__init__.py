"""Stress Analytics engine.

Turns raw per-question survey answers into per-driver stress and engagement
scores, period-bucketed trend series, and period-over-period delta metrics
for dashboards and the nightly recompute job.
"""

__version__ = "0.1.0"
