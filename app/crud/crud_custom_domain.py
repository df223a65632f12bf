import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.custom_domain import CustomDomain, STATUS_ACTIVE, STATUS_PENDING, SSL_PENDING
from app.models.profile import LinkProfile
from app.services.domain_registration import expand_with_www, generate_verification_token

logger = logging.getLogger("linkbio.domain")


class DomainPersistenceError(Exception):
    """A domain row could not be durably written."""


class DomainAlreadyRegisteredError(Exception):
    def __init__(self, domain: str):
        super().__init__(f"Domain {domain} is already registered")
        self.domain = domain


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _commit(db: Session) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise DomainPersistenceError(str(e)) from e


# ═══════════════════════════════════════════
#  Queries
# ═══════════════════════════════════════════

def get(db: Session, domain_id: UUID) -> Optional[CustomDomain]:
    return db.query(CustomDomain).filter(CustomDomain.id == domain_id).first()


def get_by_domain(db: Session, domain: str) -> Optional[CustomDomain]:
    return db.query(CustomDomain).filter(CustomDomain.domain == domain.lower()).first()


def get_active_by_host(db: Session, host: str) -> Optional[CustomDomain]:
    return db.query(CustomDomain).filter(
        CustomDomain.domain == host.lower(),
        CustomDomain.status == STATUS_ACTIVE,
    ).first()


def list_by_profile(db: Session, profile_id: UUID) -> List[CustomDomain]:
    return db.query(CustomDomain).filter(
        CustomDomain.profile_id == profile_id
    ).order_by(CustomDomain.created_at.asc(), CustomDomain.domain.asc()).all()


def list_by_statuses(db: Session, statuses: Iterable[str]) -> List[CustomDomain]:
    return db.query(CustomDomain).filter(
        CustomDomain.status.in_(list(statuses))
    ).order_by(CustomDomain.created_at.asc(), CustomDomain.domain.asc()).all()


def get_profile(db: Session, profile_id: UUID) -> Optional[LinkProfile]:
    return db.query(LinkProfile).filter(LinkProfile.id == profile_id).first()


# ═══════════════════════════════════════════
#  Writes
# ═══════════════════════════════════════════

def update(db: Session, *, db_obj: CustomDomain, fields: Dict[str, Any]) -> CustomDomain:
    for field, value in fields.items():
        setattr(db_obj, field, value)
    db_obj.updated_at = fields.get("updated_at") or _utcnow()
    db.add(db_obj)
    _commit(db)
    db.refresh(db_obj)
    return db_obj


def profile_has_domains(db: Session, profile_id: UUID) -> bool:
    return db.query(CustomDomain.id).filter(
        CustomDomain.profile_id == profile_id
    ).first() is not None


def _insert(db: Session, profile_id: UUID, hostnames: List[str], primary: bool) -> List[CustomDomain]:
    created = []
    for i, hostname in enumerate(hostnames):
        record = CustomDomain(
            profile_id=profile_id,
            domain=hostname,
            status=STATUS_PENDING,
            is_primary=primary and i == 0,
            ssl_status=SSL_PENDING,
            dns_verified=False,
            verification_token=generate_verification_token(profile_id),
        )
        db.add(record)
        created.append(record)
    db.commit()
    return created


def register(
    db: Session,
    *,
    profile_id: UUID,
    domain: str,
    include_www: bool = True,
) -> List[CustomDomain]:
    """
    Register ``domain`` (already normalized) for a profile.

    Every row starts ``pending`` with its own token. The first row becomes
    primary only when the profile had no domains yet.

    An IntegrityError means another request won a race: either it registered
    one of the hostnames, or it made the profile's first domain primary. In
    the second case the rows are inserted again as non-primary.
    """
    hostnames = expand_with_www(domain, include_www)
    for hostname in hostnames:
        if get_by_domain(db, hostname):
            raise DomainAlreadyRegisteredError(hostname)

    primary = not profile_has_domains(db, profile_id)
    try:
        created = _insert(db, profile_id, hostnames, primary)
    except IntegrityError as e:
        db.rollback()
        taken = next((h for h in hostnames if get_by_domain(db, h)), None)
        if taken or not primary:
            raise DomainAlreadyRegisteredError(taken or domain) from e
        logger.info("Profile %s got a primary domain concurrently; adding %s as non-primary",
                    profile_id, domain)
        try:
            created = _insert(db, profile_id, hostnames, primary=False)
        except IntegrityError as e2:
            db.rollback()
            raise DomainAlreadyRegisteredError(domain) from e2
        except SQLAlchemyError as e2:
            db.rollback()
            raise DomainPersistenceError(str(e2)) from e2
    except SQLAlchemyError as e:
        db.rollback()
        raise DomainPersistenceError(str(e)) from e

    for record in created:
        db.refresh(record)
    logger.info("Custom domain(s) added: %s for profile %s", ", ".join(hostnames), profile_id)
    return created


def delete(db: Session, *, db_obj: CustomDomain) -> None:
    """Remove a domain; a removed primary hands primacy to the oldest remaining domain."""
    profile_id = db_obj.profile_id
    was_primary = db_obj.is_primary
    domain_name = db_obj.domain

    db.delete(db_obj)
    db.flush()

    if was_primary:
        successor = db.query(CustomDomain).filter(
            CustomDomain.profile_id == profile_id
        ).order_by(CustomDomain.created_at.asc(), CustomDomain.domain.asc()).first()
        if successor:
            successor.is_primary = True
            successor.updated_at = _utcnow()
            logger.info("Primary domain for profile %s moved to %s", profile_id, successor.domain)

    _commit(db)
    logger.info("Custom domain deleted: %s", domain_name)


def set_primary(db: Session, *, db_obj: CustomDomain) -> CustomDomain:
    now = _utcnow()
    db.query(CustomDomain).filter(
        CustomDomain.profile_id == db_obj.profile_id,
        CustomDomain.id != db_obj.id,
        CustomDomain.is_primary.is_(True),
    ).update({"is_primary": False, "updated_at": now}, synchronize_session="fetch")
    db_obj.is_primary = True
    db_obj.updated_at = now
    _commit(db)
    db.refresh(db_obj)
    return db_obj


def regenerate_token(db: Session, *, db_obj: CustomDomain) -> CustomDomain:
    """New ownership token; the domain has to be verified again."""
    return update(
        db,
        db_obj=db_obj,
        fields={
            "verification_token": generate_verification_token(db_obj.profile_id),
            "status": STATUS_PENDING,
            "dns_verified": False,
            "ssl_status": SSL_PENDING,
        },
    )


# ═══════════════════════════════════════════
#  Store adapter for the verification engine
# ═══════════════════════════════════════════

class SqlDomainStore:
    """Session-backed domain record store."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, domain_id: UUID) -> Optional[CustomDomain]:
        return get(self.db, domain_id)

    def list_by_statuses(self, statuses: Iterable[str]) -> List[CustomDomain]:
        return list_by_statuses(self.db, statuses)

    def update(self, domain_id: UUID, fields: Dict[str, Any]) -> CustomDomain:
        record = get(self.db, domain_id)
        if record is None:
            raise DomainPersistenceError(f"Domain {domain_id} disappeared before update")
        return update(self.db, db_obj=record, fields=fields)
