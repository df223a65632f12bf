"""
Custom Domain Verification Engine

Decides whether a custom domain's DNS points at us and persists the outcome.

A domain is verified when both hold:
  1. an A record for ``<domain>`` equals ``SERVER_IP``
  2. a TXT record at ``_<app>.<domain>`` equals ``<app>_verify=<token>``
     (skipped for legacy domains without a token)

Status is a pure function of the outcome: verified → active, otherwise
failed, whatever the previous status was. The same ``verify`` runs for the
"Verify" button and for the periodic recheck, which is how DNS drift on an
active domain gets caught.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple
from uuid import UUID

from app.config import settings
from app.middleware.metrics import DOMAIN_VERIFICATIONS
from app.models.custom_domain import (
    CustomDomain,
    STATUS_ACTIVE,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_VERIFYING,
    SSL_ACTIVE,
    SSL_PENDING,
)
from app.schemas.custom_domain import (
    RecheckFailure,
    RecheckItem,
    RecheckSummary,
    VerificationResult,
)
from app.services.dns_resolver import DnsLookupError, DohResolver, RECORD_TYPE_A, RECORD_TYPE_TXT

logger = logging.getLogger("linkbio.domain")

RECHECK_STATUSES = (STATUS_PENDING, STATUS_VERIFYING, STATUS_ACTIVE)

MESSAGE_VERIFIED = "Domain verified and activated! Your custom domain is now live."
NEXT_STEP_VERIFIED = "Your domain is ready to use."
NEXT_STEP_FAILED = "Please check your DNS settings and try again."


class DomainNotFoundError(Exception):
    def __init__(self, domain_id):
        super().__init__(f"Domain {domain_id} not found")
        self.domain_id = domain_id


class DomainStore(Protocol):
    def get_by_id(self, domain_id: UUID) -> Optional[CustomDomain]: ...

    def list_by_statuses(self, statuses: Iterable[str]) -> List[CustomDomain]: ...

    def update(self, domain_id: UUID, fields: Dict[str, Any]) -> CustomDomain: ...


class Resolver(Protocol):
    def query(self, name: str, record_type: str) -> list: ...


def decide_status(current_status: str, dns_verified: bool) -> str:
    """Next status for a domain. ``current_status`` never overrides the DNS outcome."""
    return STATUS_ACTIVE if dns_verified else STATUS_FAILED


def strip_txt_quotes(value: str) -> str:
    """Drop one leading and one trailing double quote, as DoH returns TXT data quoted."""
    if value.startswith('"'):
        value = value[1:]
    if value.endswith('"'):
        value = value[:-1]
    return value


class DomainVerificationEngine:
    def __init__(
        self,
        store: DomainStore,
        resolver: Optional[Resolver] = None,
        *,
        server_ip: Optional[str] = None,
        txt_record_name: Optional[str] = None,
        txt_verify_prefix: Optional[str] = None,
        recheck_delay: Optional[float] = None,
        sleep=time.sleep,
    ):
        self.store = store
        self.resolver = resolver or DohResolver()
        self.server_ip = server_ip or settings.SERVER_IP
        self.txt_record_name = txt_record_name or settings.TXT_RECORD_NAME
        self.txt_verify_prefix = txt_verify_prefix or settings.TXT_VERIFY_PREFIX
        self.recheck_delay = (
            recheck_delay if recheck_delay is not None else settings.DOMAIN_RECHECK_DELAY_SECONDS
        )
        self._sleep = sleep

    # ── Record checks ──

    def check_a_record(self, domain: str) -> Tuple[bool, Optional[str]]:
        """Returns (valid, error message)."""
        try:
            answers = self.resolver.query(domain, "A")
        except DnsLookupError as e:
            logger.warning("A record lookup failed for %s: %s", domain, e)
            return False, "Failed to verify A record"

        if not answers:
            logger.info("No A record found for %s", domain)
            return False, f"No A record found for {domain}"

        ips = [a.data for a in answers if a.type == RECORD_TYPE_A]
        if self.server_ip in ips:
            logger.debug("A record valid for %s", domain)
            return True, None

        found = ", ".join(ips) or "unknown"
        logger.info("A record for %s points to %s, expected %s", domain, found, self.server_ip)
        return False, f"A record points to {found}, expected {self.server_ip}"

    def check_txt_record(self, domain: str, token: Optional[str]) -> Tuple[bool, Optional[str]]:
        """Returns (valid, error message). Domains without a token pass without a lookup."""
        if not token:
            return True, None

        host = f"{self.txt_record_name}.{domain}"
        try:
            answers = self.resolver.query(host, "TXT")
        except DnsLookupError as e:
            logger.warning("TXT record lookup failed for %s: %s", host, e)
            return False, "Failed to verify TXT record"

        if not answers:
            logger.info("No TXT record found at %s", host)
            return False, f"No TXT record found at {host}"

        expected = f"{self.txt_verify_prefix}={token}"
        values = [strip_txt_quotes(a.data) for a in answers if a.type == RECORD_TYPE_TXT]
        if expected in values:
            logger.debug("TXT record valid for %s", domain)
            return True, None

        logger.info("TXT record at %s does not carry the verification token", host)
        return False, f"TXT record at {host} does not contain correct verification token"

    # ── Operations ──

    def verify(self, record: CustomDomain) -> VerificationResult:
        """
        Check DNS for one domain record and persist the resulting status.

        The store is only written when status, dns_verified or ssl_status
        actually change. Store errors propagate.
        """
        errors: List[str] = []

        a_valid, a_error = self.check_a_record(record.domain)
        if a_error:
            errors.append(a_error)

        txt_valid, txt_error = self.check_txt_record(record.domain, record.verification_token)
        if txt_error:
            errors.append(txt_error)

        dns_verified = a_valid and txt_valid
        new_status = decide_status(record.status, dns_verified)
        ssl_status = SSL_ACTIVE if dns_verified else SSL_PENDING

        changes = {}
        if record.status != new_status:
            changes["status"] = new_status
        if bool(record.dns_verified) != dns_verified:
            changes["dns_verified"] = dns_verified
        if record.ssl_status != ssl_status:
            changes["ssl_status"] = ssl_status

        if changes:
            changes["updated_at"] = datetime.now(timezone.utc)
            previous = record.status
            self.store.update(record.id, changes)
            logger.info("Domain %s: %s → %s (dns_verified=%s)", record.domain, previous, new_status, dns_verified)
        else:
            logger.debug("Domain %s unchanged (%s)", record.domain, new_status)

        DOMAIN_VERIFICATIONS.labels(status=new_status).inc()

        return VerificationResult(
            domain_id=record.id,
            domain=record.domain,
            success=dns_verified,
            status=new_status,
            dns_verified=dns_verified,
            a_record_valid=a_valid,
            txt_record_valid=txt_valid,
            errors=errors,
            message=MESSAGE_VERIFIED if dns_verified else f"Verification failed: {'; '.join(errors)}",
            next_step=NEXT_STEP_VERIFIED if dns_verified else NEXT_STEP_FAILED,
        )

    def verify_by_id(self, domain_id: UUID) -> VerificationResult:
        record = self.store.get_by_id(domain_id)
        if record is None:
            raise DomainNotFoundError(domain_id)
        return self.verify(record)

    def recheck_all(self) -> RecheckSummary:
        """
        Re-verify every pending / verifying / active domain.

        Failed domains are left alone until the owner asks for a new check.
        One domain blowing up does not stop the batch.
        """
        # Rows may be expired or deleted under us while the pass runs, so each
        # one is loaded again by id right before it is checked.
        targets = [(r.id, r.domain) for r in self.store.list_by_statuses(RECHECK_STATUSES)]
        summary = RecheckSummary()
        if not targets:
            logger.info("No domains to recheck")
            return summary

        logger.info("Rechecking %d domain(s)", len(targets))
        for i, (domain_id, domain_name) in enumerate(targets):
            try:
                record = self.store.get_by_id(domain_id)
                if record is None:
                    raise DomainNotFoundError(domain_id)
                result = self.verify(record)
            except DomainNotFoundError as e:
                logger.info("Domain %s was removed during recheck, skipping", domain_name)
                summary.errors.append(RecheckFailure(domain=domain_name, error=str(e)))
            except Exception as e:
                logger.exception("Recheck failed for %s", domain_name)
                summary.errors.append(RecheckFailure(domain=domain_name, error=str(e)))
            else:
                summary.results.append(
                    RecheckItem(domain=domain_name, status=result.status, verified=result.dns_verified)
                )
            summary.checked += 1

            if self.recheck_delay and i < len(targets) - 1:
                self._sleep(self.recheck_delay)

        logger.info(
            "DNS recheck complete: %d checked, %d active, %d failed, %d error(s)",
            summary.checked,
            sum(1 for r in summary.results if r.status == STATUS_ACTIVE),
            sum(1 for r in summary.results if r.status == STATUS_FAILED),
            len(summary.errors),
        )
        return summary
