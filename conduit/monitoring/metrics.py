"""
Prometheus Metrics

Defines and exports metrics for the dispatcher, the jobs worker and the gateway.
"""

import structlog
from prometheus_client import Counter, Histogram

logger = structlog.get_logger()

# Singleton metrics instance
_metrics: "Metrics | None" = None


class Metrics:
    """
    Prometheus metrics for Conduit.

    Tracks:
    - Function dispatches by function, execution mode and outcome
    - Jobs claimed and finished, and job run time
    - Gateway requests by entity, operation and status code
    """

    def __init__(self):
        self.function_dispatches_total = Counter(
            "conduit_function_dispatches_total",
            "Total function dispatches",
            ["function_name", "execution_mode", "status"],
        )

        self.function_dispatch_duration_seconds = Histogram(
            "conduit_function_dispatch_duration_seconds",
            "Function dispatch duration in seconds",
            ["execution_mode"],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
        )

        self.jobs_claimed_total = Counter(
            "conduit_jobs_claimed_total",
            "Total jobs claimed by workers",
        )

        self.jobs_finished_total = Counter(
            "conduit_jobs_finished_total",
            "Total jobs that reached a terminal status",
            ["kind", "status"],
        )

        self.job_duration_seconds = Histogram(
            "conduit_job_duration_seconds",
            "Job handler run time in seconds",
            ["kind"],
            buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0, 600.0],
        )

        self.jobs_requeued_total = Counter(
            "conduit_jobs_requeued_total",
            "Total stale processing jobs returned to pending",
        )

        self.gateway_requests_total = Counter(
            "conduit_gateway_requests_total",
            "Total gateway requests",
            ["entity", "operation", "status_code"],
        )

        self.gateway_rate_limited_total = Counter(
            "conduit_gateway_rate_limited_total",
            "Total gateway requests rejected by the rate limiter",
            ["window"],
        )

        logger.info("Prometheus metrics initialized")

    def track_dispatch(
        self,
        function_name: str,
        execution_mode: str | None,
        status: str,
        duration: float,
    ) -> None:
        """Track a function dispatch."""
        mode = execution_mode or "unknown"
        self.function_dispatches_total.labels(
            function_name=function_name,
            execution_mode=mode,
            status=status,
        ).inc()
        self.function_dispatch_duration_seconds.labels(execution_mode=mode).observe(duration)

    def track_jobs_claimed(self, count: int) -> None:
        if count > 0:
            self.jobs_claimed_total.inc(count)

    def track_job_finished(self, kind: str, status: str, duration: float) -> None:
        """Track a job reaching completed/failed."""
        self.jobs_finished_total.labels(kind=kind, status=status).inc()
        self.job_duration_seconds.labels(kind=kind).observe(duration)

    def track_jobs_requeued(self, count: int) -> None:
        if count > 0:
            self.jobs_requeued_total.inc(count)

    def track_gateway_request(self, entity: str, operation: str, status_code: int) -> None:
        self.gateway_requests_total.labels(
            entity=entity,
            operation=operation,
            status_code=str(status_code),
        ).inc()

    def track_rate_limited(self, window: str) -> None:
        self.gateway_rate_limited_total.labels(window=window).inc()


def get_metrics() -> Metrics:
    """Get or create the singleton metrics instance."""
    global _metrics
    if _metrics is None:
        _metrics = Metrics()
    return _metrics
