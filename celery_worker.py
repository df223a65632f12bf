from app.celery_app import celery_app as app  # noqa: F401
from app.logging_config import setup_logging

setup_logging()
