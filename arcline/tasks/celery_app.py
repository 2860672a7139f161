from celery import Celery
from celery.schedules import crontab

from arcline.config import settings

app = Celery(
    "arcline",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "arcline.tasks.outbox_tasks.*": {"queue": "outbox"},
        "arcline.tasks.invoice_tasks.*": {"queue": "invoices"},
    },
    beat_schedule={
        "process-outbox": {
            "task": "arcline.tasks.outbox_tasks.process_outbox",
            "schedule": crontab(),  # every minute
        },
        "cleanup-invoice-reservations": {
            "task": "arcline.tasks.invoice_tasks.cleanup_invoice_reservations",
            "schedule": crontab(minute="*/15"),  # every 15 minutes
        },
    },
)

app.autodiscover_tasks(
    [
        "arcline.tasks.outbox_tasks",
        "arcline.tasks.invoice_tasks",
    ]
)
