from celery import Celery
from celery import signals
import time
from prometheus_client import Counter, Histogram
from insightpulse.config import get_settings

settings = get_settings()

celery_app = Celery(
    "insightpulse",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["insightpulse.tasks.reconciliation"],
)

celery_app.conf.update(task_serializer="json", result_serializer="json", accept_content=["json"], timezone="UTC", enable_utc=True)

TASK_SUCCESS = Counter('insightpulse_celery_task_success_total', 'Celery task successes', ['task'])
TASK_FAILURE = Counter('insightpulse_celery_task_failure_total', 'Celery task failures', ['task'])
TASK_DURATION = Histogram('insightpulse_celery_task_duration_seconds', 'Celery task runtime', ['task'], buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30, 60))

_task_start_times = {}


@signals.task_prerun.connect
def _task_prerun(sender=None, task_id=None, **kwargs):  # noqa
    _task_start_times[task_id] = time.time()


@signals.task_postrun.connect
def _task_postrun(sender=None, task_id=None, state=None, **kwargs):  # noqa
    name = sender.name if sender else 'unknown'
    start = _task_start_times.pop(task_id, None)
    if start is not None:
        TASK_DURATION.labels(task=name).observe(time.time() - start)
    if state == 'SUCCESS':
        TASK_SUCCESS.labels(task=name).inc()
    elif state is not None:
        TASK_FAILURE.labels(task=name).inc()


# Periodic tasks (beat). Requires worker with -B or separate beat service.
celery_app.conf.beat_schedule = {
    "reclaim-expired-leases-every-1m": {
        "task": "insightpulse.tasks.reconciliation.reclaim_expired_leases",
        "schedule": 60.0,
    },
    "requeue-stale-pending-every-2m": {
        "task": "insightpulse.tasks.reconciliation.requeue_stale_pending",
        "schedule": 120.0,
    },
    "requeue-due-retries-every-1m": {
        "task": "insightpulse.tasks.reconciliation.requeue_due_retries",
        "schedule": 60.0,
    },
    "report-queue-depth-every-30s": {
        "task": "insightpulse.tasks.reconciliation.report_queue_depth",
        "schedule": 30.0,
    },
}
