"""
Supabase Auth admin API: one-time login links, identity lookup and deletion.
Every call is bounded by UPSTREAM_TIMEOUT_SECONDS and fails as UpstreamFailure.
"""
import logging
from datetime import datetime

import httpx

from app.core.config import settings
from app.core.errors import UpstreamFailure
from app.utils.timestamps import parse_utc_timestamp

logger = logging.getLogger(__name__)


def _admin_configured() -> bool:
    return bool(settings.supabase_url and settings.supabase_service_role_key)


def _admin_headers() -> dict:
    key = settings.supabase_service_role_key
    return {
        "apikey": key,
        "Authorization": f"Bearer {key}",
        "Content-Type": "application/json",
    }


async def generate_magic_link(email: str) -> str:
    """Mint a single-use, time-limited login link for a verified email."""
    if not _admin_configured():
        logger.error("[Supabase] Admin API not configured; cannot generate login link")
        raise UpstreamFailure("Failed to generate login link")

    payload = {
        "type": "magiclink",
        "email": email,
        "redirect_to": settings.magic_link_redirect_url,
    }
    try:
        async with httpx.AsyncClient(timeout=settings.upstream_timeout_seconds) as client:
            r = await client.post(
                f"{settings.supabase_url}/auth/v1/admin/generate_link",
                json=payload,
                headers=_admin_headers(),
            )
    except httpx.TimeoutException as e:
        logger.error("[Supabase] generate_link timed out: %s", e)
        raise UpstreamFailure("Failed to generate login link")
    except httpx.RequestError as e:
        logger.error("[Supabase] generate_link request failed: %s", e)
        raise UpstreamFailure("Failed to generate login link")

    if r.status_code != 200:
        logger.error("[Supabase] generate_link returned %s: %s", r.status_code, r.text[:300])
        raise UpstreamFailure("Failed to generate login link")

    data = r.json()
    # GoTrue returns action_link at the top level; older versions nest it under properties
    link = data.get("action_link") or (data.get("properties") or {}).get("action_link")
    if not link:
        logger.error("[Supabase] generate_link response had no action_link (keys=%s)", list(data.keys()))
        raise UpstreamFailure("Failed to generate login link")
    return link


async def get_identity_created_at(supabase_id: str) -> datetime:
    """When the identity was created at Supabase (naive UTC); the trial age guard measures from it."""
    if not _admin_configured():
        logger.error("[Supabase] Admin API not configured; cannot read user %s", supabase_id)
        raise UpstreamFailure("Could not verify the account with the identity provider")

    try:
        async with httpx.AsyncClient(timeout=settings.upstream_timeout_seconds) as client:
            r = await client.get(
                f"{settings.supabase_url}/auth/v1/admin/users/{supabase_id}",
                headers=_admin_headers(),
            )
    except httpx.HTTPError as e:
        logger.error("[Supabase] get user %s failed: %s", supabase_id, e)
        raise UpstreamFailure("Could not verify the account with the identity provider")

    if r.status_code != 200:
        logger.error("[Supabase] get user %s returned %s: %s", supabase_id, r.status_code, r.text[:300])
        raise UpstreamFailure("Could not verify the account with the identity provider")

    raw = None
    try:
        raw = r.json().get("created_at")
        return parse_utc_timestamp(raw)
    except (AttributeError, TypeError, ValueError):
        logger.error("[Supabase] user %s has unreadable created_at %r", supabase_id, raw)
        raise UpstreamFailure("Could not verify the account with the identity provider")


async def delete_identity(supabase_id: str) -> None:
    """Delete the auth.users row; the DB trigger and FKs cascade the rest."""
    if not _admin_configured():
        logger.error("[Supabase] Admin API not configured; cannot delete user")
        raise UpstreamFailure()

    try:
        async with httpx.AsyncClient(timeout=settings.upstream_timeout_seconds) as client:
            r = await client.delete(
                f"{settings.supabase_url}/auth/v1/admin/users/{supabase_id}",
                headers=_admin_headers(),
            )
    except httpx.HTTPError as e:
        logger.error("[Supabase] delete user %s failed: %s", supabase_id, e)
        raise UpstreamFailure()

    if r.status_code == 404:
        logger.warning("[Supabase] User %s already absent from auth; continuing", supabase_id)
        return
    if r.status_code not in (200, 204):
        logger.error("[Supabase] delete user %s returned %s: %s", supabase_id, r.status_code, r.text[:300])
        raise UpstreamFailure()
