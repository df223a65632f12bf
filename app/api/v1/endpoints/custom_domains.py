"""
Custom Domain Management API

Lets a profile owner:
  1. Add a custom domain (optionally with its www twin)
  2. Get DNS setup instructions (A + TXT records)
  3. Verify DNS on demand
  4. Pick the primary domain, regenerate the token, delete
"""
import logging
from typing import Any, List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.api import deps
from app.crud import crud_custom_domain
from app.crud.crud_custom_domain import DomainAlreadyRegisteredError, DomainPersistenceError
from app.logging_config import profile_id_ctx
from app.middleware.custom_domain import invalidate_domain_cache
from app.middleware.rate_limit import limit_verify_requests
from app.models.custom_domain import CustomDomain
from app.schemas.custom_domain import DnsInstructions, DomainCreate, DomainInfo, VerificationResult
from app.services.domain_registration import (
    InvalidDomainError,
    build_dns_instructions,
    is_apex_domain,
    normalize_domain,
)
from app.services.domain_verification import DomainNotFoundError, DomainVerificationEngine

router = APIRouter()
logger = logging.getLogger("linkbio.domain")


# ── Helpers ──

def _ensure_profile_owner(db: Session, profile_id: UUID, user_id: UUID) -> None:
    profile = crud_custom_domain.get_profile(db, profile_id)
    if not profile or profile.user_id != user_id:
        raise HTTPException(status_code=404, detail="Profile not found")
    profile_id_ctx.set(str(profile_id))


def _get_owned_domain(db: Session, domain_id: UUID, user_id: UUID) -> CustomDomain:
    record = crud_custom_domain.get(db, domain_id)
    if not record or record.profile.user_id != user_id:
        raise HTTPException(status_code=404, detail="Domain not found")
    profile_id_ctx.set(str(record.profile_id))
    return record


def _persistence_failed(e: DomainPersistenceError) -> HTTPException:
    logger.error("Domain write failed: %s", e)
    return HTTPException(status_code=500, detail="Failed to update domain status")


# ── Endpoints ──

@router.get("/profiles/{profile_id}/domains", response_model=List[DomainInfo])
def list_domains(
    profile_id: UUID,
    db: Session = Depends(deps.get_db),
    user_id: UUID = Depends(deps.get_current_user_id),
) -> Any:
    _ensure_profile_owner(db, profile_id, user_id)
    return crud_custom_domain.list_by_profile(db, profile_id)


@router.post("/profiles/{profile_id}/domains", response_model=List[DomainInfo], status_code=201)
def add_domain(
    profile_id: UUID,
    body: DomainCreate,
    db: Session = Depends(deps.get_db),
    user_id: UUID = Depends(deps.get_current_user_id),
) -> Any:
    _ensure_profile_owner(db, profile_id, user_id)

    try:
        domain = normalize_domain(body.domain)
    except InvalidDomainError:
        raise HTTPException(status_code=400, detail="Invalid domain format")

    try:
        records = crud_custom_domain.register(
            db, profile_id=profile_id, domain=domain, include_www=body.include_www,
        )
    except DomainAlreadyRegisteredError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except DomainPersistenceError as e:
        raise _persistence_failed(e)

    for record in records:
        invalidate_domain_cache(record.domain)
    return records


@router.get("/domains/{domain_id}/dns-instructions", response_model=DnsInstructions)
def get_dns_instructions(
    domain_id: UUID,
    db: Session = Depends(deps.get_db),
    user_id: UUID = Depends(deps.get_current_user_id),
) -> Any:
    """A + TXT records for the domain, plus those of its registered www twin."""
    record = _get_owned_domain(db, domain_id, user_id)
    records = build_dns_instructions(record.domain, record.verification_token)
    if is_apex_domain(record.domain):
        twin = crud_custom_domain.get_by_domain(db, f"www.{record.domain}")
        if twin and twin.profile_id == record.profile_id:
            records += build_dns_instructions(twin.domain, twin.verification_token)
    return DnsInstructions(domain=record.domain, records=records)


@router.post("/domains/{domain_id}/verify", response_model=VerificationResult)
def verify_domain(
    domain_id: UUID,
    db: Session = Depends(deps.get_db),
    user_id: UUID = Depends(deps.get_current_user_id),
    engine: DomainVerificationEngine = Depends(deps.get_verification_engine),
    _: None = Depends(limit_verify_requests),
) -> Any:
    """
    Check the domain's DNS now.

    Expected records:
      A    <domain>              →  SERVER_IP
      TXT  _<app>.<domain>       →  <app>_verify=<token>
    """
    record = _get_owned_domain(db, domain_id, user_id)
    logger.info("Verifying DNS for domain: %s", record.domain)

    try:
        result = engine.verify_by_id(record.id)
    except DomainNotFoundError:
        raise HTTPException(status_code=404, detail="Domain not found")
    except DomainPersistenceError as e:
        raise _persistence_failed(e)

    invalidate_domain_cache(record.domain)
    return result


@router.post("/domains/{domain_id}/primary", response_model=DomainInfo)
def set_primary_domain(
    domain_id: UUID,
    db: Session = Depends(deps.get_db),
    user_id: UUID = Depends(deps.get_current_user_id),
) -> Any:
    record = _get_owned_domain(db, domain_id, user_id)
    try:
        return crud_custom_domain.set_primary(db, db_obj=record)
    except DomainPersistenceError as e:
        raise _persistence_failed(e)


@router.post("/domains/{domain_id}/regenerate-token", response_model=DomainInfo)
def regenerate_token(
    domain_id: UUID,
    db: Session = Depends(deps.get_db),
    user_id: UUID = Depends(deps.get_current_user_id),
) -> Any:
    """New TXT token; the domain drops back to pending until verified again."""
    record = _get_owned_domain(db, domain_id, user_id)
    try:
        record = crud_custom_domain.regenerate_token(db, db_obj=record)
    except DomainPersistenceError as e:
        raise _persistence_failed(e)
    invalidate_domain_cache(record.domain)
    return record


@router.delete("/domains/{domain_id}", status_code=status.HTTP_200_OK)
def delete_domain(
    domain_id: UUID,
    db: Session = Depends(deps.get_db),
    user_id: UUID = Depends(deps.get_current_user_id),
) -> Any:
    record = _get_owned_domain(db, domain_id, user_id)
    domain_name = record.domain
    try:
        crud_custom_domain.delete(db, db_obj=record)
    except DomainPersistenceError as e:
        raise _persistence_failed(e)
    invalidate_domain_cache(domain_name)
    return {"message": f"Domain {domain_name} deleted"}
