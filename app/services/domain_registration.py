"""Hostname normalization, verification tokens and DNS setup instructions."""
import re
import secrets
from typing import List, Optional

from app.config import settings
from app.schemas.custom_domain import DnsRecordInstruction

_LABEL_RE = re.compile(r"^(?!-)[a-z0-9-]{1,63}(?<!-)$")


class InvalidDomainError(ValueError):
    pass


def normalize_domain(raw: str) -> str:
    """
    Canonical form of a user-entered hostname.

    ``"  HTTPS://www.Example.com:443/path "`` → ``"example.com"``
    """
    domain = (raw or "").strip().lower()
    domain = re.sub(r"^[a-z][a-z0-9+.-]*://", "", domain)
    domain = domain.split("/", 1)[0].split(":", 1)[0].rstrip(".")
    if domain.startswith("www."):
        domain = domain[4:]

    if not domain or "." not in domain or len(domain) > 253:
        raise InvalidDomainError(f"Invalid domain: {raw!r}")
    if not all(_LABEL_RE.match(label) for label in domain.split(".")):
        raise InvalidDomainError(f"Invalid domain: {raw!r}")
    return domain


def is_apex_domain(domain: str) -> bool:
    return len(domain.split(".")) == 2 and not domain.startswith("www.")


def expand_with_www(domain: str, include_www: bool = True) -> List[str]:
    """Apex domains optionally get their ``www.`` twin registered too."""
    if include_www and is_apex_domain(domain):
        return [domain, f"www.{domain}"]
    return [domain]


def generate_verification_token(profile_id) -> str:
    return f"{secrets.token_hex(4)}_{str(profile_id)[:6]}"


def txt_record_host(domain: str) -> str:
    return f"{settings.TXT_RECORD_NAME}.{domain}"


def txt_record_value(token: str) -> str:
    return f"{settings.TXT_VERIFY_PREFIX}={token}"


def zone_of(domain: str) -> str:
    """Registrable zone, taken as the last two labels (no public-suffix list)."""
    return ".".join(domain.split(".")[-2:])


def relative_name(fqdn: str, zone: str) -> str:
    """Record name as typed into the zone's DNS panel: ``@`` for the zone itself."""
    if fqdn == zone:
        return "@"
    return fqdn[: -(len(zone) + 1)]


def build_dns_instructions(domain: str, token: Optional[str]) -> List[DnsRecordInstruction]:
    """
    Records the owner must create in ``zone_of(domain)`` for ``domain`` to verify.

    Names are relative to the zone, so they resolve to exactly the hosts the
    verification engine queries: ``<domain>`` and ``_<app>.<domain>``.
    """
    zone = zone_of(domain)
    records = [
        DnsRecordInstruction(
            type="A",
            name=relative_name(domain, zone),
            value=settings.SERVER_IP,
            description=f"Points {domain} to our servers",
        )
    ]
    if token:
        records.append(
            DnsRecordInstruction(
                type="TXT",
                name=relative_name(txt_record_host(domain), zone),
                value=txt_record_value(token),
                description=f"Verifies ownership of {domain}",
            )
        )
    return records
