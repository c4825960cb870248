from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.errors import error_response, http_error_response
from app.authz.guards import require_subaccount_access
from app.core.auth import get_identity_provider, require_principal
from app.core.database import get_db
from app.identity import IdentityProvider, Principal
from app.media.models import Media
from app.media.schemas import MediaCreate, MediaRead, SubAccountMediaRead
from app.media.service import media_service


router = APIRouter(prefix="/api", tags=["media"])


@router.get("/subaccounts/{subaccount_id}/media", response_model=SubAccountMediaRead)
def get_media(
    request: Request,
    subaccount_id: str,
    db: Session = Depends(get_db),
    _principal: Principal = Depends(require_principal),
) -> SubAccountMediaRead | JSONResponse:
    sub_account = media_service.get_media(db, subaccount_id)
    if sub_account is None:
        return error_response(
            request,
            status_code=status.HTTP_404_NOT_FOUND,
            code="subaccount_not_found",
            message="sub-account not found",
        )
    return SubAccountMediaRead.model_validate(sub_account)


@router.post("/subaccounts/{subaccount_id}/media", response_model=MediaRead, status_code=status.HTTP_201_CREATED)
def create_media(
    request: Request,
    subaccount_id: str,
    dto: MediaCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> MediaRead | JSONResponse:
    require_subaccount_access(db, principal, subaccount_id, identity=identity)
    try:
        return MediaRead.model_validate(media_service.create_media(db, subaccount_id, dto))
    except HTTPException as exc:
        return http_error_response(request, exc, "media_create_failed")


@router.delete("/media/{media_id}", response_model=MediaRead)
def delete_media(
    request: Request,
    media_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> MediaRead | JSONResponse:
    media = db.get(Media, media_id)
    if media is not None:
        require_subaccount_access(db, principal, media.sub_account_id, identity=identity)
    try:
        return media_service.delete_media(db, media_id)
    except HTTPException as exc:
        return http_error_response(request, exc, "media_delete_failed")
