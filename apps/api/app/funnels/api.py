from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.errors import error_response, http_error_response
from app.authz.guards import require_subaccount_access
from app.core.auth import get_identity_provider, require_principal
from app.core.database import get_db
from app.funnels.models import Funnel
from app.funnels.schemas import FunnelProductsUpdate, FunnelRead, FunnelUpsert
from app.funnels.service import funnel_service
from app.identity import IdentityProvider, Principal


router = APIRouter(prefix="/api", tags=["funnels"])


@router.get("/subaccounts/{subaccount_id}/funnels", response_model=list[FunnelRead])
def list_funnels(
    subaccount_id: str,
    db: Session = Depends(get_db),
    _principal: Principal = Depends(require_principal),
) -> list[FunnelRead]:
    return [FunnelRead.model_validate(row) for row in funnel_service.list_funnels(db, subaccount_id)]


@router.post("/subaccounts/{subaccount_id}/funnels", response_model=FunnelRead)
def create_funnel(
    request: Request,
    subaccount_id: str,
    dto: FunnelUpsert,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> FunnelRead | JSONResponse:
    require_subaccount_access(db, principal, subaccount_id, identity=identity)
    try:
        return FunnelRead.model_validate(funnel_service.upsert_funnel(db, subaccount_id, dto))
    except HTTPException as exc:
        return http_error_response(request, exc, "funnel_upsert_failed")


@router.put("/subaccounts/{subaccount_id}/funnels/{funnel_id}", response_model=FunnelRead)
def upsert_funnel(
    request: Request,
    subaccount_id: str,
    funnel_id: str,
    dto: FunnelUpsert,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> FunnelRead | JSONResponse:
    existing = db.get(Funnel, funnel_id)
    owners = [subaccount_id, existing.sub_account_id if existing is not None else None]
    require_subaccount_access(db, principal, owners, identity=identity)
    try:
        return FunnelRead.model_validate(funnel_service.upsert_funnel(db, subaccount_id, dto, funnel_id))
    except HTTPException as exc:
        return http_error_response(request, exc, "funnel_upsert_failed")


@router.get("/funnels/{funnel_id}", response_model=FunnelRead)
def get_funnel(
    request: Request,
    funnel_id: str,
    db: Session = Depends(get_db),
    _principal: Principal = Depends(require_principal),
) -> FunnelRead | JSONResponse:
    funnel = funnel_service.get_funnel(db, funnel_id)
    if funnel is None:
        return error_response(
            request,
            status_code=status.HTTP_404_NOT_FOUND,
            code="funnel_not_found",
            message="funnel not found",
        )
    return FunnelRead.model_validate(funnel)


@router.patch("/funnels/{funnel_id}/products", response_model=FunnelRead)
def update_funnel_products(
    request: Request,
    funnel_id: str,
    dto: FunnelProductsUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> FunnelRead | JSONResponse:
    funnel = db.get(Funnel, funnel_id)
    if funnel is not None:
        require_subaccount_access(db, principal, funnel.sub_account_id, identity=identity)
    try:
        return FunnelRead.model_validate(funnel_service.update_funnel_products(db, funnel_id, dto.live_products))
    except HTTPException as exc:
        return http_error_response(request, exc, "funnel_products_failed")
