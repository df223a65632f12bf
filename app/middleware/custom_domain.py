"""
Custom Domain Resolution Middleware

Resolves the profile from the Host header when the request arrives on an
active custom domain. Sets request.state.resolved_profile_id and
request.state.resolved_username for downstream handlers, and keeps dashboard
routes off custom domains.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.config import settings

logger = logging.getLogger("linkbio.domain")

# host → (cached_at, profile_id, username). Writes in this process invalidate
# directly; the TTL bounds staleness after writes from the recheck worker.
_DOMAIN_CACHE: dict[str, tuple[float, str, str]] = {}
_CACHE_TTL_SECONDS = 60.0

_BLOCKED_PREFIXES = ("/dashboard", "/admin", "/auth")


def _is_platform_host(host: str) -> bool:
    main = settings.MAIN_DOMAIN.lower()
    return host in ("localhost", "127.0.0.1", "", main) or host.endswith(f".{main}")


class CustomDomainMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        host = request.headers.get("host", "").split(":")[0].lower()

        if _is_platform_host(host):
            return await call_next(request)

        resolved = _cached(host)
        if resolved is None:
            resolved = _lookup(host)

        if resolved:
            profile_id, username = resolved
            request.state.resolved_profile_id = profile_id
            request.state.resolved_username = username
            if request.url.path.startswith(_BLOCKED_PREFIXES):
                return JSONResponse(
                    status_code=404,
                    content={"detail": "Not available on custom domains"},
                )

        return await call_next(request)


def _cached(host: str):
    entry = _DOMAIN_CACHE.get(host)
    if entry is None:
        return None
    cached_at, profile_id, username = entry
    if time.monotonic() - cached_at > _CACHE_TTL_SECONDS:
        _DOMAIN_CACHE.pop(host, None)
        return None
    return profile_id, username


def _lookup(host: str):
    try:
        from app.crud import crud_custom_domain
        from app.db.session import db_registry

        db = db_registry.session()
        try:
            record = crud_custom_domain.get_active_by_host(db, host)
            if record:
                resolved = (str(record.profile_id), record.profile.username)
                _DOMAIN_CACHE[host] = (time.monotonic(), *resolved)
                logger.debug("Resolved custom domain %s → profile %s", host, record.profile_id)
                return resolved
        finally:
            db.close()
    except Exception as e:
        logger.warning("Custom domain resolution failed for %s: %s", host, e)
    return None


def invalidate_domain_cache(domain: str | None = None) -> None:
    """Clear domain cache when domains are added, verified or removed."""
    if domain:
        _DOMAIN_CACHE.pop(domain, None)
    else:
        _DOMAIN_CACHE.clear()
