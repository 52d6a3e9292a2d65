"""Celery application shared by publishers and the worker."""
from celery import Celery

from crew_runtime.settings import settings

celery_app = Celery(
    "crew_runtime",
    broker=settings.broker_url or settings.redis_url,
    backend=settings.result_backend or settings.redis_url,
    include=["crew_runtime.worker"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)
