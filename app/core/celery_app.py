"""
Celery application: broker and result backend from settings.
Tasks are in app.workers.tasks (accounting export, subscription expiry).
"""
from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging

from app.core.config import settings
from app.core.logging import configure_logging

celery_app = Celery(
    "app",
    broker=settings.broker_url,
    backend=settings.result_backend,
    include=[
        "app.workers.tasks.accounting",
        "app.workers.tasks.subscriptions",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_track_started=True,
    task_time_limit=600,
    result_expires=86400,
    beat_schedule={
        "expire-subscriptions": {
            "task": "app.workers.tasks.subscriptions.expire_subscriptions",
            "schedule": crontab(minute="*/15"),
        },
    },
)

celery_app.conf.task_routes = {
    "app.workers.tasks.accounting.forward_payment": {"queue": "accounting"},
}


@setup_logging.connect
def _setup_worker_logging(**kwargs):
    # Workers log in the same JSON format as the API
    configure_logging()
