from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.authz.guards import denied_response
from app.authz.schemas import AccessDecisionRead
from app.authz.service import authorization_resolver
from app.core.auth import get_current_principal, get_identity_provider
from app.core.database import get_db
from app.identity import IdentityProvider, Principal


router = APIRouter(prefix="/api", tags=["authz"])


@router.get("/subaccounts/{subaccount_id}/access", response_model=AccessDecisionRead)
def subaccount_access(
    request: Request,
    subaccount_id: str,
    db: Session = Depends(get_db),
    principal: Principal | None = Depends(get_current_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> AccessDecisionRead | JSONResponse:
    decision = authorization_resolver.authorize_subaccount(db, principal, subaccount_id, identity=identity)
    if not decision.allowed:
        return denied_response(request, decision)
    return AccessDecisionRead.from_decision(decision)


@router.get("/agencies/{agency_id}/access", response_model=AccessDecisionRead)
def agency_access(
    request: Request,
    agency_id: str,
    db: Session = Depends(get_db),
    principal: Principal | None = Depends(get_current_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> AccessDecisionRead | JSONResponse:
    decision = authorization_resolver.authorize_agency(db, principal, agency_id, identity=identity)
    if not decision.allowed:
        return denied_response(request, decision)
    return AccessDecisionRead.from_decision(decision)
