from celery import Celery
from app.config import settings

celery_app = Celery(
    "linkbio",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND
)

celery_app.conf.broker_connection_retry_on_startup = True

celery_app.conf.task_routes = {
    "app.tasks.*": {"queue": "celery"}
}

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
)

# Periodic DNS drift check. A run that has not started by the next tick is
# dropped so passes never overlap.
celery_app.conf.beat_schedule = {
    "recheck-custom-domains": {
        "task": "app.tasks.domain_tasks.recheck_domains_task",
        "schedule": float(settings.DOMAIN_RECHECK_INTERVAL_SECONDS),
        "options": {"expires": float(settings.DOMAIN_RECHECK_INTERVAL_SECONDS)},
    },
}

celery_app.autodiscover_tasks(['app.tasks'])

# Explicitly import tasks to ensure they are registered
import app.tasks.domain_tasks  # noqa: F401, E402
