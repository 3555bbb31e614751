"""Prometheus metrics for job stages, transfer intents and rejected submissions"""

from prometheus_client import Counter, Histogram

# Job metrics
job_transition_counter = Counter(
    "sandbox_job_transitions_total",
    "Access job progression rounds by resulting stage",
    ["action", "stage"],  # create | refresh ; unauthenticated | challenge | imported | problem
)

# Transfer metrics
transfer_transition_counter = Counter(
    "sandbox_transfer_transitions_total",
    "Transfer progression rounds by resulting intent and state",
    ["type", "intent", "state"],
)

transfer_rejection_counter = Counter(
    "sandbox_transfer_rejections_total",
    "Transfer submissions rejected before progression",
    ["code"],  # versions_mismatch | intents_mismatch | state_<state>_unprocessable
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_job_transition(action: str, stage: str) -> None:
    job_transition_counter.labels(action=action, stage=stage).inc()


def record_transfer_transition(transfer_type: str, intent: str | None, state: str) -> None:
    transfer_transition_counter.labels(type=transfer_type, intent=intent or "none", state=state).inc()


def record_transfer_rejection(code: str) -> None:
    transfer_rejection_counter.labels(code=code).inc()
