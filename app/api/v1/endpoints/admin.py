"""
Internal admin API (service token only).

Endpoints:
- POST /admin/domains/recheck           → run one DNS drift pass now and return its summary
- POST /admin/domains/recheck/enqueue   → hand the pass to a Celery worker, return the task id
- GET  /admin/system/health             → DB pool status

The synchronous recheck holds the request for the whole paced pass; use the
enqueue variant once there are more than a handful of domains.
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends

from app.api import deps
from app.db.session import db_registry
from app.middleware.custom_domain import invalidate_domain_cache
from app.schemas.custom_domain import RecheckSummary
from app.services.domain_verification import DomainVerificationEngine
from app.tasks.domain_tasks import recheck_domains_task

router = APIRouter(dependencies=[Depends(deps.require_service_token)])
logger = logging.getLogger("linkbio.admin")


@router.post("/domains/recheck", response_model=RecheckSummary)
def recheck_domains(
    engine: DomainVerificationEngine = Depends(deps.get_verification_engine),
) -> Any:
    summary = engine.recheck_all()
    invalidate_domain_cache()
    return summary


@router.post("/domains/recheck/enqueue", status_code=202)
def enqueue_recheck() -> Any:
    task = recheck_domains_task.delay()
    logger.info("Domain recheck queued: task %s", task.id)
    return {"task_id": task.id, "status": "queued"}


@router.get("/system/health")
def system_health() -> Any:
    return {"database": db_registry.get_pool_status()}
