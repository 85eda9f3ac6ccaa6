from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram


class MetricsUpdater:
    """
    records refresh and repaint activity of the watch loop
    as Prometheus self-metrics.
    """

    def __init__(self, registry: "CollectorRegistry" = REGISTRY) -> "None":
        self._refresh_duration: "Histogram" = Histogram(
            "usagewatch_refresh_duration_seconds",
            "Duration of source refreshes",
            ["source"],
            registry=registry,
        )
        self._refresh_errors: "Counter" = Counter(
            "usagewatch_refresh_errors_total",
            "Total number of failed refreshes by source",
            ["source"],
            registry=registry,
        )
        self._last_refresh_success: "Gauge" = Gauge(
            "usagewatch_last_refresh_success_timestamp_seconds",
            "Unix timestamp of last successful refresh per source",
            ["source"],
            registry=registry,
        )
        self._records_merged: "Counter" = Counter(
            "usagewatch_records_merged_total",
            "Total number of log records folded into the aggregate",
            registry=registry,
        )
        self._repaints: "Counter" = Counter(
            "usagewatch_repaints_total",
            "Total number of dashboard repaints",
            registry=registry,
        )

    def observe_refresh_duration(
        self, source: "str", duration_seconds: "float"
    ) -> "None":
        self._refresh_duration.labels(source=source).observe(duration_seconds)

    def inc_refresh_error(self, source: "str") -> "None":
        self._refresh_errors.labels(source=source).inc()

    def set_last_refresh_success(self, source: "str", timestamp: "float") -> "None":
        self._last_refresh_success.labels(source=source).set(timestamp)

    def inc_records_merged(self, count: "int") -> "None":
        self._records_merged.inc(count)

    def inc_repaint(self) -> "None":
        self._repaints.inc()
