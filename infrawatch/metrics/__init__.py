from infrawatch.metrics.client import MetricNotFound, MetricsClient, MetricsError, QueryResult

__all__ = ["MetricNotFound", "MetricsClient", "MetricsError", "QueryResult"]
