from __future__ import annotations

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, ValidationError
from sqlalchemy.orm import Session

from app.api.errors import error_response, http_error_response, validation_error_response
from app.authz.guards import require_agency_access, require_user_management
from app.authz.roles import Role
from app.core.auth import get_identity_provider, require_principal
from app.core.database import get_db
from app.identity import IdentityProvider, IdentityProviderError, Principal
from app.tenancy.models import Agency, SubAccount, User
from app.tenancy.schemas import (
    AgencyDetailsRead,
    AgencyRead,
    AgencyUpdate,
    AgencyUpsert,
    AuthUserDetailsRead,
    InvitationAcceptRead,
    InvitationRead,
    PermissionChange,
    PermissionRead,
    PermissionWithSubAccountRead,
    SidebarRead,
    SubAccountRead,
    SubAccountUpsert,
    SubAccountWithSidebarRead,
    UserInit,
    UserRead,
    UserUpdate,
)
from app.tenancy.service import (
    agency_service,
    invitation_service,
    permission_service,
    sidebar_service,
    subaccount_service,
    user_service,
)


agencies_router = APIRouter(prefix="/api/agencies", tags=["tenancy.agencies"])
subaccounts_router = APIRouter(prefix="/api/subaccounts", tags=["tenancy.subaccounts"])
users_router = APIRouter(prefix="/api/users", tags=["tenancy.users"])
permissions_router = APIRouter(prefix="/api/permissions", tags=["tenancy.permissions"])
invitations_router = APIRouter(prefix="/api/invitations", tags=["tenancy.invitations"])


class InvitationSendRequest(BaseModel):
    role: Role
    email: EmailStr


def _not_found(request: Request, code: str, message: str) -> JSONResponse:
    return error_response(request, status_code=status.HTTP_404_NOT_FOUND, code=code, message=message)


@agencies_router.post("", response_model=AgencyRead)
def upsert_agency(
    request: Request,
    dto: AgencyUpsert,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> AgencyRead | JSONResponse:
    if db.get(Agency, dto.id) is not None:
        require_agency_access(db, principal, dto.id, identity=identity)
    try:
        return AgencyRead.model_validate(agency_service.upsert_agency(db, dto))
    except HTTPException as exc:
        return http_error_response(request, exc, "agency_upsert_failed")


@agencies_router.get("/{agency_id}", response_model=AgencyDetailsRead)
def get_agency(
    request: Request,
    agency_id: str,
    db: Session = Depends(get_db),
    _principal: Principal = Depends(require_principal),
) -> AgencyDetailsRead | JSONResponse:
    agency = agency_service.get_agency_details(db, agency_id)
    if agency is None:
        return _not_found(request, "agency_not_found", "agency not found")
    return AgencyDetailsRead.model_validate(agency)


@agencies_router.patch("/{agency_id}", response_model=AgencyRead)
def update_agency(
    request: Request,
    agency_id: str,
    dto: AgencyUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> AgencyRead | JSONResponse:
    require_agency_access(db, principal, agency_id, identity=identity)
    try:
        return AgencyRead.model_validate(agency_service.update_agency_details(db, agency_id, dto))
    except HTTPException as exc:
        return http_error_response(request, exc, "agency_update_failed")


@agencies_router.delete("/{agency_id}", response_model=AgencyRead)
def delete_agency(
    request: Request,
    agency_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> AgencyRead | JSONResponse:
    require_agency_access(db, principal, agency_id, identity=identity)
    deleted = agency_service.delete_agency(db, agency_id)
    if deleted is None:
        return _not_found(request, "agency_not_found", "agency not found")
    return deleted


@agencies_router.get("/{agency_id}/sidebar", response_model=SidebarRead)
def get_agency_sidebar(
    request: Request,
    agency_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
) -> SidebarRead | JSONResponse:
    sidebar = sidebar_service.get_sidebar(db, principal, "agency", agency_id)
    if sidebar is None:
        return _not_found(request, "sidebar_not_found", "sidebar not found")
    return sidebar


@agencies_router.post("/{agency_id}/invitations", response_model=InvitationRead, status_code=status.HTTP_201_CREATED)
def send_invitation(
    request: Request,
    agency_id: str,
    dto: InvitationSendRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> InvitationRead | JSONResponse:
    require_agency_access(db, principal, agency_id, identity=identity)
    try:
        invitation = invitation_service.send_invitation(db, dto.role, dto.email, agency_id, identity=identity)
    except HTTPException as exc:
        return http_error_response(request, exc, "invitation_send_failed")
    except ValidationError as exc:
        return validation_error_response(request, exc, "invitation_send_failed")
    except (IdentityProviderError, httpx.HTTPError) as exc:
        return error_response(
            request,
            status_code=status.HTTP_502_BAD_GATEWAY,
            code="invitation_send_failed",
            message="identity provider rejected the invitation",
            details=str(exc),
        )
    return InvitationRead.model_validate(invitation)


@agencies_router.get("/{agency_id}/invitations", response_model=list[InvitationRead])
def list_invitations(
    agency_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> list[InvitationRead]:
    require_agency_access(db, principal, agency_id, identity=identity)
    return [InvitationRead.model_validate(row) for row in invitation_service.list_invitations(db, agency_id)]


@subaccounts_router.post("", response_model=SubAccountRead)
def upsert_subaccount(
    request: Request,
    dto: SubAccountUpsert,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> SubAccountRead | JSONResponse:
    require_agency_access(db, principal, dto.agency_id, identity=identity)
    existing = db.get(SubAccount, dto.id)
    if existing is not None and existing.agency_id != dto.agency_id:
        require_agency_access(db, principal, existing.agency_id, identity=identity)
    try:
        sub_account = subaccount_service.upsert_subaccount(db, dto)
    except HTTPException as exc:
        return http_error_response(request, exc, "subaccount_upsert_failed")
    if sub_account is None:
        return error_response(
            request,
            status_code=status.HTTP_409_CONFLICT,
            code="subaccount_upsert_failed",
            message="agency owner not found",
        )
    return SubAccountRead.model_validate(sub_account)


@subaccounts_router.get("/{subaccount_id}", response_model=SubAccountWithSidebarRead)
def get_subaccount(
    request: Request,
    subaccount_id: str,
    db: Session = Depends(get_db),
    _principal: Principal = Depends(require_principal),
) -> SubAccountWithSidebarRead | JSONResponse:
    sub_account = subaccount_service.get_subaccount_details(db, subaccount_id)
    if sub_account is None:
        return _not_found(request, "subaccount_not_found", "sub-account not found")
    return SubAccountWithSidebarRead.model_validate(sub_account)


@subaccounts_router.delete("/{subaccount_id}", response_model=SubAccountRead)
def delete_subaccount(
    request: Request,
    subaccount_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> SubAccountRead | JSONResponse:
    sub_account = db.get(SubAccount, subaccount_id)
    if sub_account is None:
        return _not_found(request, "subaccount_not_found", "sub-account not found")
    require_agency_access(db, principal, sub_account.agency_id, identity=identity)
    deleted = subaccount_service.delete_subaccount(db, subaccount_id)
    if deleted is None:
        return _not_found(request, "subaccount_not_found", "sub-account not found")
    return deleted


@subaccounts_router.get("/{subaccount_id}/sidebar", response_model=SidebarRead)
def get_subaccount_sidebar(
    request: Request,
    subaccount_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
) -> SidebarRead | JSONResponse:
    sidebar = sidebar_service.get_sidebar(db, principal, "subaccount", subaccount_id)
    if sidebar is None:
        return _not_found(request, "sidebar_not_found", "sidebar not found")
    return sidebar


@users_router.get("/me", response_model=AuthUserDetailsRead)
def get_me(
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
) -> AuthUserDetailsRead | JSONResponse:
    user = user_service.get_auth_user_details(db, principal)
    if user is None:
        return _not_found(request, "user_not_found", "user not found")
    return AuthUserDetailsRead.model_validate(user)


@users_router.post("/init", response_model=UserRead)
def init_user(
    request: Request,
    dto: UserInit,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> UserRead | JSONResponse:
    try:
        return UserRead.model_validate(user_service.init_user(db, principal, dto, identity=identity))
    except HTTPException as exc:
        return http_error_response(request, exc, "user_init_failed")


@users_router.patch("", response_model=UserRead)
def update_user(
    request: Request,
    dto: UserUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> UserRead | JSONResponse:
    target = user_service.get_user_by_email(db, str(dto.email))
    if target is not None:
        require_user_management(db, principal, target.agency_id, target.email, identity=identity)
        if dto.agency_id and dto.agency_id != target.agency_id:
            require_agency_access(db, principal, dto.agency_id, identity=identity)
    try:
        return UserRead.model_validate(user_service.update_user(db, dto, identity=identity))
    except HTTPException as exc:
        return http_error_response(request, exc, "user_update_failed")


@users_router.get("/{user_id}", response_model=UserRead)
def get_user(
    request: Request,
    user_id: str,
    db: Session = Depends(get_db),
    _principal: Principal = Depends(require_principal),
) -> UserRead | JSONResponse:
    user = user_service.get_user(db, user_id)
    if user is None:
        return _not_found(request, "user_not_found", "user not found")
    return UserRead.model_validate(user)


@users_router.get("/{user_id}/permissions", response_model=list[PermissionWithSubAccountRead])
def get_user_permissions(
    request: Request,
    user_id: str,
    db: Session = Depends(get_db),
    _principal: Principal = Depends(require_principal),
) -> list[PermissionWithSubAccountRead] | JSONResponse:
    try:
        rows = user_service.get_user_permissions(db, user_id)
    except HTTPException as exc:
        return http_error_response(request, exc, "user_permissions_failed")
    return [PermissionWithSubAccountRead.model_validate(row) for row in rows]


@users_router.delete("/{user_id}", response_model=UserRead)
def delete_user(
    request: Request,
    user_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> UserRead | JSONResponse:
    target = db.get(User, user_id)
    if target is None:
        return _not_found(request, "user_not_found", "user not found")
    require_user_management(db, principal, target.agency_id, target.email, identity=identity)
    deleted = user_service.delete_user(db, user_id, identity=identity)
    if deleted is None:
        return _not_found(request, "user_not_found", "user not found")
    return deleted


@permissions_router.put("", response_model=PermissionRead)
def change_user_permissions(
    request: Request,
    dto: PermissionChange,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> PermissionRead | JSONResponse:
    sub_account = db.get(SubAccount, dto.sub_account_id)
    if sub_account is None:
        return _not_found(request, "subaccount_not_found", "sub-account not found")
    require_agency_access(db, principal, sub_account.agency_id, identity=identity)
    permission = permission_service.change_user_permissions(
        db,
        dto.permission_id,
        str(dto.email),
        dto.sub_account_id,
        dto.access,
    )
    if permission is None:
        return error_response(
            request,
            status_code=status.HTTP_409_CONFLICT,
            code="permission_change_failed",
            message="could not update permissions",
        )
    return PermissionRead.model_validate(permission)


@invitations_router.post("/accept", response_model=InvitationAcceptRead)
def accept_invitation(
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> InvitationAcceptRead:
    agency_id = invitation_service.verify_and_accept_invitation(db, principal, identity=identity)
    return InvitationAcceptRead(agency_id=agency_id)
