from functools import lru_cache

from fastapi import Depends, HTTPException, status
from jose import JWTError, jwt
from starlette.requests import Request

from app.core.config import get_settings
from app.identity import ClerkIdentityProvider, IdentityProvider, Principal, StubIdentityProvider


@lru_cache
def get_identity_provider() -> IdentityProvider:
    settings = get_settings()
    if settings.identity_provider.lower() == "clerk":
        return ClerkIdentityProvider(
            secret_key=settings.clerk_secret_key,
            base_url=settings.clerk_api_url,
            timeout=settings.identity_timeout_seconds,
            max_attempts=settings.identity_max_attempts,
        )
    return StubIdentityProvider()


def get_current_principal(
    request: Request,
    identity: IdentityProvider = Depends(get_identity_provider),
) -> Principal | None:
    auth_header = request.headers.get("authorization", "")
    token = auth_header.replace("Bearer ", "") if auth_header.startswith("Bearer ") else ""
    if not token:
        return None

    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None

    subject = payload.get("sub")
    if not subject:
        return None
    return identity.get_user(str(subject))


def require_principal(principal: Principal | None = Depends(get_current_principal)) -> Principal:
    if principal is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return principal
