from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.errors import error_response
from app.authz.guards import require_agency_access, require_subaccount_access
from app.core.auth import get_identity_provider, require_principal
from app.core.database import get_db
from app.identity import IdentityProvider, Principal
from app.notifications.schemas import NotificationCreate, NotificationRead, NotificationWithUserRead
from app.notifications.service import MissingScopeError, notification_service


router = APIRouter(prefix="/api", tags=["notifications"])


@router.get("/agencies/{agency_id}/notifications", response_model=list[NotificationWithUserRead])
def list_notifications(
    agency_id: str,
    db: Session = Depends(get_db),
    _principal: Principal = Depends(require_principal),
) -> list[NotificationWithUserRead]:
    rows = notification_service.get_notifications_with_user(db, agency_id)
    return [NotificationWithUserRead.model_validate(row) for row in rows]


@router.post("/notifications", response_model=NotificationRead, status_code=status.HTTP_201_CREATED)
def save_activity_log(
    request: Request,
    dto: NotificationCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> NotificationRead | JSONResponse:
    if dto.subaccount_id:
        require_subaccount_access(db, principal, dto.subaccount_id, identity=identity)
    elif dto.agency_id:
        require_agency_access(db, principal, dto.agency_id, identity=identity)
    try:
        row = notification_service.save_activity_log(
            db,
            principal=principal,
            description=dto.description,
            agency_id=dto.agency_id,
            subaccount_id=dto.subaccount_id,
        )
    except MissingScopeError as exc:
        return error_response(
            request,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code="notification_scope_missing",
            message=str(exc),
        )
    if row is None:
        return error_response(
            request,
            status_code=status.HTTP_404_NOT_FOUND,
            code="notification_actor_missing",
            message="could not find a user for this activity",
        )
    return NotificationRead.model_validate(row)
