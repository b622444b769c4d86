from fastapi import Header, HTTPException, status, Depends
from sqlalchemy.orm import Session
import jwt  # PyJWT
import logging
import requests
import time
from typing import Optional

from app.core.config import settings
from app.core.errors import Unauthenticated
from app.db.session import get_db
from app.models.user import User
from app.services.account_provisioning import find_user_by_supabase_id

logger = logging.getLogger(__name__)

# Cache for JWKS (Public Keys)
JWKS_CACHE = None
JWKS_CACHE_TIMESTAMP = None
JWKS_CACHE_TTL = 3600  # Cache for 1 hour
JWKS_STALE_LIMIT = 86400  # Stale cache still accepted as fallback for 24 hours

ASYMMETRIC_ALGORITHMS = ("ES256", "RS256")


def _jwks_url() -> str:
    return f"{settings.supabase_url}/auth/v1/.well-known/jwks.json"


def get_jwks(force_refresh: bool = False):
    """
    Fetch JWKS from Supabase with caching and retry logic.
    Only caches successful fetches - failures are not cached to allow retries.
    """
    global JWKS_CACHE, JWKS_CACHE_TIMESTAMP

    if JWKS_CACHE and JWKS_CACHE_TIMESTAMP and not force_refresh:
        if time.time() - JWKS_CACHE_TIMESTAMP < JWKS_CACHE_TTL:
            return JWKS_CACHE

    max_retries = 3
    last_error = None

    for attempt in range(max_retries):
        try:
            r = requests.get(_jwks_url(), timeout=settings.upstream_timeout_seconds)
            r.raise_for_status()
            JWKS_CACHE = r.json()
            JWKS_CACHE_TIMESTAMP = time.time()
            logger.info("[AUTH] Fetched JWKS with %s keys", len(JWKS_CACHE.get("keys", [])))
            return JWKS_CACHE
        except requests.exceptions.RequestException as e:
            last_error = str(e)
            logger.warning("[AUTH] JWKS fetch failed (attempt %s/%s): %s", attempt + 1, max_retries, last_error)
            if attempt < max_retries - 1:
                time.sleep(1)

    logger.error("[AUTH] Failed to fetch JWKS after %s attempts: %s", max_retries, last_error)

    # Fresh fetch failed: fall back to a stale cache if it is not too old
    if JWKS_CACHE and JWKS_CACHE_TIMESTAMP:
        cache_age = time.time() - JWKS_CACHE_TIMESTAMP
        if cache_age < JWKS_STALE_LIMIT:
            logger.warning("[AUTH] Using stale JWKS cache (age: %.0fs) as fallback", cache_age)
            return JWKS_CACHE
    return None


def _signing_key(kid: Optional[str], force_refresh: bool = False):
    """
    Pick the verification key from the cached JWKS.
    Raises 503 when no key set is available at all (not even a stale one).
    """
    jwks = get_jwks(force_refresh=force_refresh)
    if not jwks:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication service temporarily unavailable. Please try again in a moment."
        )
    try:
        key_set = jwt.PyJWKSet.from_dict(jwks)
    except jwt.PyJWTError as e:
        logger.error("[AUTH] JWKS has no usable keys: %s", e)
        return None

    if kid is None:
        # Single-key projects may issue tokens without a kid
        return key_set.keys[0].key if len(key_set.keys) == 1 else None
    for jwk in key_set.keys:
        if jwk.key_id == kid:
            return jwk.key
    logger.warning("[AUTH] No JWKS key matches kid %s", kid)
    return None


def _decode_asymmetric(token: str, algo: str) -> dict:
    if not settings.supabase_url:
        logger.error("[AUTH] SUPABASE_URL is missing for %s verification", algo)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server misconfiguration: SUPABASE_URL not set"
        )

    kid = jwt.get_unverified_header(token).get("kid")
    signing_key = _signing_key(kid)
    if signing_key is None:
        # Keys may have rotated since the cache was filled
        signing_key = _signing_key(kid, force_refresh=True)
    if signing_key is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token signature"
        )

    try:
        return jwt.decode(
            token,
            signing_key,
            algorithms=[algo],
            audience="authenticated",
        )
    except Exception as e:
        logger.warning("[AUTH] %s verification failed: %s", algo, e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token signature"
        )


def _decode_hs256(token: str) -> dict:
    if not settings.supabase_jwt_secret:
        logger.error("[AUTH] SUPABASE_JWT_SECRET is missing in environment variables")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server misconfiguration: SUPABASE_JWT_SECRET not set"
        )
    try:
        return jwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=["HS256"],
            audience="authenticated",
        )
    except jwt.PyJWTError as e:
        logger.warning("[AUTH] HS256 verification failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token signature"
        )


def verify_supabase_token(authorization: Optional[str] = Header(None)) -> dict:
    """
    Verifies the Supabase JWT token.
    Supports both HS256 (Shared Secret) and ES256/RS256 (Asymmetric Key).
    Returns the payload dict if valid.
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header"
        )

    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid header format. Expected 'Bearer <token>'"
        )

    token = authorization[len("Bearer "):].strip()

    # Reject common invalid token values sent by broken clients
    if not token or token.lower() in ["null", "undefined", "none"]:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing token"
        )

    if len(token.split(".")) != 3:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token format. Token must have header.payload.signature structure."
        )

    try:
        algo = jwt.get_unverified_header(token).get("alg")
    except jwt.DecodeError as e:
        logger.warning("[AUTH] Failed to decode token header: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token header"
        )

    if algo in ASYMMETRIC_ALGORITHMS:
        payload = _decode_asymmetric(token, algo)
    elif algo == "HS256":
        payload = _decode_hs256(token)
    else:
        logger.warning("[AUTH] Unsupported algorithm: %s", algo)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Unsupported token algorithm: {algo}"
        )

    if not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token missing user ID claim"
        )
    return payload


def get_current_user(
    payload: dict = Depends(verify_supabase_token),
    db: Session = Depends(get_db)
) -> User:
    """
    FastAPI dependency resolving the verified caller to a backend account.
    Accounts are provisioned by /auth/sync-user at sign-up; an identity
    without one is treated as unauthenticated.
    """
    user = find_user_by_supabase_id(db, payload.get("sub"))
    if not user:
        logger.warning("[AUTH] No account for identity %s", payload.get("sub"))
        raise Unauthenticated("Account not found")
    return user
