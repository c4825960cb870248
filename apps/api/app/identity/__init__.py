from app.identity.client import (
    ClerkIdentityProvider,
    IdentityProvider,
    IdentityProviderError,
    InvitationToken,
    Principal,
    StubIdentityProvider,
)

__all__ = [
    "ClerkIdentityProvider",
    "IdentityProvider",
    "IdentityProviderError",
    "InvitationToken",
    "Principal",
    "StubIdentityProvider",
]
