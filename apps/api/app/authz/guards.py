from __future__ import annotations

from collections.abc import Iterable

from fastapi import Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.errors import error_response
from app.authz.service import AccessDecision, DenyReason, authorization_resolver
from app.identity import IdentityProvider, Principal


class AccessDeniedError(Exception):
    def __init__(self, decision: AccessDecision) -> None:
        super().__init__(decision.reason.value if decision.reason else "denied")
        self.decision = decision


def denied_response(request: Request, decision: AccessDecision) -> JSONResponse:
    if decision.reason == DenyReason.UNAUTHENTICATED:
        return error_response(
            request,
            status_code=status.HTTP_401_UNAUTHORIZED,
            code="unauthenticated",
            message="unauthenticated",
            details={"redirect_to": decision.redirect_to},
        )
    return error_response(
        request,
        status_code=status.HTTP_403_FORBIDDEN,
        code="unauthorized",
        message="Unauthorized",
    )


def require_agency_access(
    session: Session,
    principal: Principal | None,
    agency_id: str,
    *,
    identity: IdentityProvider,
) -> AccessDecision:
    decision = authorization_resolver.authorize_agency(session, principal, agency_id, identity=identity)
    if not decision.allowed:
        raise AccessDeniedError(decision)
    return decision


def require_subaccount_access(
    session: Session,
    principal: Principal | None,
    subaccount_ids: str | Iterable[str | None],
    *,
    identity: IdentityProvider,
) -> None:
    """Every listed sub-account must grant access; None entries are skipped."""
    if isinstance(subaccount_ids, str):
        subaccount_ids = [subaccount_ids]
    for subaccount_id in sorted({item for item in subaccount_ids if item}):
        decision = authorization_resolver.authorize_subaccount(session, principal, subaccount_id, identity=identity)
        if not decision.allowed:
            raise AccessDeniedError(decision)


def require_user_management(
    session: Session,
    principal: Principal,
    user_agency_id: str | None,
    user_email: str,
    *,
    identity: IdentityProvider,
) -> None:
    """Team users are managed through their agency; a user outside any agency only by themselves."""
    if user_agency_id:
        require_agency_access(session, principal, user_agency_id, identity=identity)
    elif principal.email != user_email:
        raise AccessDeniedError(AccessDecision(allowed=False, reason=DenyReason.UNAUTHORIZED))
