"""
DNS-over-HTTPS resolver client.

Speaks the JSON flavour of DoH (``application/dns-json``) understood by
Cloudflare, Google and most public resolvers:

    GET <url>?name=example.com&type=A
    → {"Status": 0, "Answer": [{"name": "...", "type": 1, "TTL": 300, "data": "1.2.3.4"}]}
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

import httpx

from app.config import settings
from app.middleware.metrics import DNS_LOOKUPS

logger = logging.getLogger("linkbio.dns")

RECORD_TYPE_A = 1
RECORD_TYPE_TXT = 16

_TYPE_CODES = {"A": RECORD_TYPE_A, "TXT": RECORD_TYPE_TXT}


class DnsLookupError(Exception):
    """Resolver unreachable, timed out, or returned something unparseable."""


@dataclass(frozen=True)
class DnsAnswer:
    type: int
    data: str


class DohResolver:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url or settings.DOH_RESOLVER_URL
        self.timeout = timeout if timeout is not None else settings.DNS_LOOKUP_TIMEOUT_SECONDS
        self._transport = transport

    def query(self, name: str, record_type: str) -> List[DnsAnswer]:
        """
        Resolve ``name`` for ``record_type`` ("A" or "TXT").

        Returns every answer in the response (callers filter by type, CNAME
        chains come back mixed in). An absent ``Answer`` array yields ``[]``.

        Raises:
            DnsLookupError: transport failure, timeout, non-2xx or bad JSON.
        """
        if record_type not in _TYPE_CODES:
            raise ValueError(f"Unsupported record type: {record_type}")

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.get(
                    self.base_url,
                    params={"name": name, "type": record_type},
                    headers={"Accept": "application/dns-json"},
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.TimeoutException as e:
            DNS_LOOKUPS.labels(record_type=record_type, outcome="timeout").inc()
            raise DnsLookupError(f"DoH lookup timed out for {name} ({record_type})") from e
        except httpx.HTTPError as e:
            DNS_LOOKUPS.labels(record_type=record_type, outcome="error").inc()
            raise DnsLookupError(f"DoH lookup failed for {name} ({record_type}): {e}") from e
        except ValueError as e:
            DNS_LOOKUPS.labels(record_type=record_type, outcome="error").inc()
            raise DnsLookupError(f"Malformed DoH response for {name} ({record_type})") from e

        answers = _parse_answers(payload)
        DNS_LOOKUPS.labels(record_type=record_type, outcome="ok").inc()
        logger.debug("DoH %s %s → %d answer(s)", record_type, name, len(answers))
        return answers


def _parse_answers(payload) -> List[DnsAnswer]:
    if not isinstance(payload, dict):
        raise DnsLookupError("DoH response is not a JSON object")

    raw = payload.get("Answer") or []
    if not isinstance(raw, list):
        raise DnsLookupError("DoH 'Answer' field is not a list")

    answers = []
    for item in raw:
        try:
            answers.append(DnsAnswer(type=int(item["type"]), data=str(item["data"])))
        except (KeyError, TypeError, ValueError) as e:
            raise DnsLookupError(f"Malformed DoH answer: {item!r}") from e
    return answers
