from .calculator import AbsentMetricPolicy, AggregateCalculator, compute

__all__ = ["AbsentMetricPolicy", "AggregateCalculator", "compute"]
