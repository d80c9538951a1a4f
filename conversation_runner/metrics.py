"""
Prometheus metrics (module scope, registered once).
"""

from prometheus_client import Counter, Gauge, Histogram

JOBS_PUSHED = Counter(
    "conversation_runner_jobs_pushed_total",
    "Jobs accepted by the queue",
    labelnames=("key",),
)
JOBS_FINISHED = Counter(
    "conversation_runner_jobs_finished_total",
    "Jobs that reached a terminal state",
    labelnames=("outcome",),
)
JOBS_ACTIVE = Gauge(
    "conversation_runner_jobs_active",
    "Jobs currently holding an execution slot",
)
JOBS_WAITING = Gauge(
    "conversation_runner_jobs_waiting",
    "Jobs queued for a free slot",
)
JOB_DURATION = Histogram(
    "conversation_runner_job_duration_seconds",
    "Time from admission to terminal state",
    buckets=(1, 5, 10, 30, 60, 120, 300, 600, 1800, 3600),
)
WEBHOOK_DELIVERIES = Counter(
    "conversation_runner_webhook_deliveries_total",
    "Webhook delivery attempts by result",
    labelnames=("result",),  # sent | http_error | network_error | skipped
)
