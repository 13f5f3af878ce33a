"""Azure AD bearer token validation with cached signing keys."""

from __future__ import annotations

import logging
from typing import Any

import aiohttp
from fastapi import HTTPException, status
from jose import jwk, jwt
from jose.constants import Algorithms
from jose.exceptions import ExpiredSignatureError, JWSSignatureError, JWTClaimsError, JWTError

from orgchart.core.cache import cache

logger = logging.getLogger("azure_auth")

_JWKS_TTL_SECONDS = 24 * 60 * 60


async def _fetch_jwks(tenant_id: str) -> dict[str, Any]:
    jwks_uri = f"https://login.microsoftonline.com/{tenant_id}/discovery/v2.0/keys"
    logger.info("Fetching JWKS from %s", jwks_uri)

    timeout = aiohttp.ClientTimeout(total=15)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        async with session.get(jwks_uri) as response:
            if response.status != 200:
                raise RuntimeError(f"JWKS endpoint returned {response.status}")
            return await response.json()


async def get_jwks(tenant_id: str) -> dict[str, Any]:
    cache_key = f"jwks:{tenant_id}"
    try:
        return await cache.get_or_compute(cache_key, _JWKS_TTL_SECONDS, lambda: _fetch_jwks(tenant_id))
    except (aiohttp.ClientError, RuntimeError, TimeoutError) as e:
        logger.error("Failed to fetch JWKS: %s", e)
        stale = cache.peek(cache_key)
        if stale is not None:
            logger.warning("Using expired JWKS from cache for tenant %s", tenant_id)
            return stale
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Could not fetch JWKS: {e}",
        ) from e


async def get_signing_key(token: str, tenant_id: str) -> dict[str, str]:
    try:
        header = jwt.get_unverified_header(token)
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token header: {e}",
        ) from e

    kid = header.get("kid")
    if not kid:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has no 'kid' in header",
        )

    jwks = await get_jwks(tenant_id)
    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return key

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=f"No matching signing key for kid: {kid}",
    )


async def validate_token(token: str, tenant_id: str, client_id: str) -> dict[str, Any]:
    if not tenant_id or not client_id:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Missing Azure AD configuration",
        )

    signing_key = await get_signing_key(token, tenant_id)
    algorithm = signing_key.get("alg", Algorithms.RS256)
    public_key = jwk.construct(signing_key, algorithm=algorithm)

    issuers = [
        f"https://login.microsoftonline.com/{tenant_id}/v2.0",
        f"https://sts.windows.net/{tenant_id}/",
    ]
    audiences = [client_id, f"api://{client_id}"]
    options = {
        "verify_signature": True,
        "verify_aud": True,
        "verify_iss": True,
        "verify_exp": True,
        "require": ["exp", "iss", "aud"],
    }

    last_error: Exception | None = None
    for issuer in issuers:
        for audience in audiences:
            try:
                return jwt.decode(
                    token,
                    public_key,
                    algorithms=[algorithm],
                    audience=audience,
                    issuer=issuer,
                    options=options,
                )
            except ExpiredSignatureError as e:
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Token is expired",
                ) from e
            except JWSSignatureError as e:
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Invalid token signature",
                ) from e
            except (JWTClaimsError, JWTError) as e:
                last_error = e

    detail = "Invalid authentication credentials"
    if isinstance(last_error, JWTClaimsError):
        message = str(last_error).lower()
        if "audience" in message:
            detail = f"Invalid token audience. Expected one of: {audiences}"
        elif "issuer" in message:
            detail = f"Invalid token issuer. Expected one of: {issuers}"

    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def extract_roles_from_token(payload: dict[str, Any]) -> list[str]:
    roles = payload.get("roles", [])
    if not isinstance(roles, list):
        return []
    return [str(r) for r in roles if isinstance(r, str | int)]


def extract_username(payload: dict[str, Any]) -> str | None:
    return payload.get("preferred_username") or payload.get("upn") or payload.get("oid")
