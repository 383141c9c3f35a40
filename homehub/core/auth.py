"""JWT authentication against the identity provider's JWKS endpoint."""

import asyncio
from collections.abc import Sequence
from typing import Annotated, Any

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient, PyJWKClientError

from homehub.core.config import settings
from homehub.core.errors import NotAuthenticated
from homehub.core.logging_config import user_id_var

bearer_scheme = HTTPBearer(auto_error=False)

# Lazily created; reset when the identity provider cannot be reached
_jwks_client: PyJWKClient | None = None
_jwks_lock = asyncio.Lock()


def get_jwks_client() -> PyJWKClient:
    """Get or create the JWKS client."""
    global _jwks_client
    if _jwks_client is None:
        jwks_url = settings.auth_jwks_url or f"{settings.auth_url}/auth/v1/.well-known/jwks.json"
        _jwks_client = PyJWKClient(jwks_url, cache_keys=True)
    return _jwks_client


async def verify_token(token: str) -> dict[str, Any]:
    """Verify a bearer token and return its claims.

    Raises:
        HTTPException: 401 for invalid or expired tokens, 503 when the
            identity provider's key set cannot be fetched.
    """
    try:
        signing_key = get_jwks_client().get_signing_key_from_jwt(token)
        payload: dict[str, Any] = jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256", "ES256"],
            issuer=settings.auth_url,
            options={
                "verify_exp": True,
                "verify_iss": True,
                "verify_aud": False,
                "require": ["sub", "exp"],
            },
        )
        return payload
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except PyJWKClientError as e:
        async with _jwks_lock:
            global _jwks_client
            _jwks_client = None
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Identity provider unavailable: {str(e)}",
        )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict[str, Any]:
    """FastAPI dependency returning the verified claims of the caller."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return await verify_token(credentials.credentials)


def user_id_from_claims(claims: dict[str, Any] | None) -> str:
    """Extract the opaque user id (``sub``) from verified claims.

    Raises:
        NotAuthenticated: If no identity is present.
    """
    user_id = (claims or {}).get("sub")
    if not user_id:
        raise NotAuthenticated("No user id in token")
    return str(user_id)


async def get_current_user_id(user: dict[str, Any] = Depends(get_current_user)) -> str:
    """FastAPI dependency returning the caller's user id."""
    try:
        user_id = user_id_from_claims(user)
    except NotAuthenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    user_id_var.set(user_id)
    return user_id


def is_service_caller(claims: dict[str, Any]) -> bool:
    """Whether the token was issued to a backend caller such as the scheduler."""
    return bool(settings.service_role) and claims.get("role") == settings.service_role


def ensure_may_address(
    claims: dict[str, Any],
    *,
    emails: Sequence[str] = (),
    user_ids: Sequence[str] = (),
) -> None:
    """Restrict signed-in users to their own address and user id.

    Service callers may address anyone.

    Raises:
        HTTPException: 403 when another address or user is targeted.
    """
    if is_service_caller(claims):
        return
    own_email = str(claims.get("email") or "").casefold()
    own_id = str(claims.get("sub") or "")
    if any(email.casefold() != own_email for email in emails) or any(
        user_id != own_id for user_id in user_ids
    ):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to address other users",
        )


async def get_service_caller(user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    """FastAPI dependency admitting only service callers."""
    if not is_service_caller(user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Service role required",
        )
    return user


CurrentUser = Annotated[dict[str, Any], Depends(get_current_user)]
CurrentUserId = Annotated[str, Depends(get_current_user_id)]
ServiceCaller = Annotated[dict[str, Any], Depends(get_service_caller)]
