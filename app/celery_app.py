import os

from celery import Celery


def get_celery_config() -> dict:
    broker = os.getenv("CELERY_BROKER_URL") or os.getenv("REDIS_URL") or "redis://localhost:6379/0"
    backend = os.getenv("CELERY_RESULT_BACKEND") or os.getenv("REDIS_URL") or "redis://localhost:6379/1"
    return {
        "broker_url": broker,
        "result_backend": backend,
        "timezone": os.getenv("CELERY_TIMEZONE", "UTC"),
        "task_serializer": "json",
        "accept_content": ["json"],
        "result_serializer": "json",
        # Results hold recipient addresses; keep them briefly.
        "result_expires": 3600,
    }


celery_app = Celery("dealer_provisioning")
celery_app.conf.update(get_celery_config())
celery_app.autodiscover_tasks(["app.tasks"], related_name="notifications")
