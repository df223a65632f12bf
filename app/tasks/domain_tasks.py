import logging

from app.celery_app import celery_app
from app.crud.crud_custom_domain import SqlDomainStore
from app.db.session import SessionLocal
from app.services.domain_verification import DomainVerificationEngine

logger = logging.getLogger(__name__)


def run_recheck() -> dict:
    """One DNS recheck pass over every pending / verifying / active domain."""
    db = SessionLocal()
    try:
        engine = DomainVerificationEngine(SqlDomainStore(db))
        summary = engine.recheck_all()
    finally:
        db.close()

    return summary.model_dump()


@celery_app.task(bind=True)
def recheck_domains_task(self):
    """
    Background task: periodic DNS drift check.

    No retry here; the next scheduled run is the retry.
    """
    summary = run_recheck()
    logger.info("recheck_domains_task %s: checked=%d errors=%d",
                self.request.id, summary["checked"], len(summary["errors"]))
    return summary
