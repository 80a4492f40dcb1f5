from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry

cycle_counter = Counter(
    "reincarnate_num_cycles",
    "Total number of cron scheduling cycles",
    labelnames=["result"],
)

restart_counter = Counter(
    "reincarnate_num_restarts",
    "Number of restarts issued",
    labelnames=["category"],
)

restart_blocked_counter = Counter(
    "reincarnate_num_restarts_blocked",
    "Number of restarts blocked by the restart depth guard",
    labelnames=["category"],
)

trigger_error_counter = Counter(
    "reincarnate_num_trigger_errors",
    "Number of triggers that could not be resolved to a matcher",
    labelnames=["kind"],
)

remediation_error_counter = Counter(
    "reincarnate_num_remediation_errors",
    "Number of remediation scripts that failed to execute",
    labelnames=["target"],
)

error_counter = Counter(
    "reincarnate_error_counter", "Total number of errors", labelnames=["context"]
)

jobs_seen = Gauge("reincarnate_jobs_seen", "Number of jobs seen in the last cycle")

push_registry = CollectorRegistry()

cycle_duration_seconds = Histogram(
    "reincarnate_cycle_duration_seconds",
    "Duration of a cron scheduling cycle",
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0),
    registry=push_registry,
)

last_cycle_restarts = Gauge(
    "reincarnate_last_cycle_restarts",
    "Number of restarts issued by the last cycle",
    registry=push_registry,
)


def observe_cycle(*, result: str, seconds: float, restarts: int) -> None:
    cycle_counter.labels(result=result).inc()
    cycle_duration_seconds.observe(max(0.0, float(seconds)))
    last_cycle_restarts.set(restarts)
