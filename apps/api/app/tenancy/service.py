from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import httpx
from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.authz.roles import DEFAULT_ROLE, Role
from app.core.config import get_settings
from app.core.database import commit_or_conflict
from app.identity import IdentityProvider, IdentityProviderError, Principal
from app.metrics import observe_identity_sync_failure, observe_invitation_accepted
from app.notifications.service import notification_service
from app.pipelines.models import Pipeline
from app.tenancy.models import Agency, Invitation, Permission, SidebarOption, SubAccount, User
from app.tenancy.schemas import (
    AgencyRead,
    AgencyUpdate,
    AgencyUpsert,
    InvitationCreate,
    SidebarOptionRead,
    SidebarRead,
    SidebarScope,
    SubAccountRead,
    SubAccountUpsert,
    TeamUserCreate,
    UserInit,
    UserRead,
    UserUpdate,
)


logger = logging.getLogger("app.tenancy")

# (name, icon, path below the agency or sub-account root)
AGENCY_SIDEBAR_OPTIONS = (
    ("Dashboard", "category", ""),
    ("Launchpad", "clipboardIcon", "/launchpad"),
    ("Billing", "payment", "/billing"),
    ("Settings", "settings", "/settings"),
    ("Sub Accounts", "person", "/all-subaccounts"),
    ("Team", "shield", "/team"),
)
SUBACCOUNT_SIDEBAR_OPTIONS = (
    ("Launchpad", "clipboardIcon", "/launchpad"),
    ("Settings", "settings", "/settings"),
    ("Funnels", "pipelines", "/funnels"),
    ("Media", "database", "/media"),
    ("Automations", "chip", "/automations"),
    ("Pipelines", "flag", "/pipelines"),
    ("Contacts", "person", "/contacts"),
    ("Dashboard", "category", ""),
)
DEFAULT_PIPELINE_NAME = "Lead Cycle"


def build_sidebar_options(root: str, options: tuple[tuple[str, str, str], ...]) -> list[SidebarOption]:
    return [
        SidebarOption(name=name, icon=icon, link=f"{root}{suffix}", position=position)
        for position, (name, icon, suffix) in enumerate(options)
    ]


def sync_role_metadata(identity: IdentityProvider, user_id: str, role: Role | None, *, operation: str) -> bool:
    """Push the role into the provider's metadata cache; failures are logged, never raised."""
    try:
        identity.update_user_metadata(user_id, role)
    except (IdentityProviderError, httpx.HTTPError) as exc:
        logger.warning(
            "identity.sync_failed",
            extra={"user_id": user_id, "role": role.value if role else None, "reason": operation, "error": str(exc)[:500]},
        )
        observe_identity_sync_failure(operation)
        return False
    return True


class UserService:
    def get_auth_user_details(self, session: Session, principal: Principal | None) -> User | None:
        if principal is None:
            return None
        stmt = (
            select(User)
            .options(
                selectinload(User.agency).selectinload(Agency.sidebar_options),
                selectinload(User.agency).selectinload(Agency.sub_accounts).selectinload(SubAccount.sidebar_options),
                selectinload(User.permissions),
            )
            .where(User.email == principal.email)
        )
        return session.scalar(stmt)

    def get_user(self, session: Session, user_id: str) -> User | None:
        return session.get(User, user_id)

    def get_user_by_email(self, session: Session, email: str) -> User | None:
        return session.scalar(select(User).where(User.email == email))

    def init_user(self, session: Session, principal: Principal, dto: UserInit, *, identity: IdentityProvider) -> User:
        user = self.get_user_by_email(session, principal.email)
        if user is None:
            user = User(
                id=principal.id,
                email=principal.email,
                name=dto.name or principal.name,
                avatar_url=dto.avatar_url or principal.image_url,
                role=(dto.role or DEFAULT_ROLE).value,
                agency_id=dto.agency_id,
            )
            session.add(user)
        else:
            self._apply(user, dto.model_dump(exclude_none=True))
        commit_or_conflict(session, "user already exists")
        session.refresh(user)

        sync_role_metadata(identity, principal.id, Role.parse(user.role) or DEFAULT_ROLE, operation="init_user")
        logger.info("user.initialized", extra={"user_id": user.id, "role": user.role})
        return user

    def update_user(self, session: Session, dto: UserUpdate, *, identity: IdentityProvider) -> User:
        user = self.get_user_by_email(session, dto.email)
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user not found")
        self._apply(user, dto.model_dump(exclude={"email"}, exclude_none=True))
        commit_or_conflict(session, "user update conflicts with existing data")
        session.refresh(user)

        sync_role_metadata(identity, user.id, Role.parse(user.role) or DEFAULT_ROLE, operation="update_user")
        return user

    def get_user_permissions(self, session: Session, user_id: str) -> list[Permission]:
        user = session.get(User, user_id)
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user not found")
        stmt = (
            select(Permission)
            .options(selectinload(Permission.sub_account))
            .where(Permission.email == user.email)
            .order_by(Permission.sub_account_id.asc())
        )
        return list(session.scalars(stmt).all())

    def delete_user(self, session: Session, user_id: str, *, identity: IdentityProvider) -> UserRead | None:
        user = session.get(User, user_id)
        if user is None:
            return None
        sync_role_metadata(identity, user_id, None, operation="delete_user")
        snapshot = UserRead.model_validate(user)
        session.delete(user)
        session.commit()
        logger.info("user.deleted", extra={"user_id": user_id})
        return snapshot

    def create_team_user(self, session: Session, agency_id: str, dto: TeamUserCreate) -> User | None:
        if dto.role == Role.AGENCY_OWNER:
            return None
        user = self.get_user_by_email(session, dto.email)
        if user is None:
            user = User(id=dto.id, email=dto.email)
            session.add(user)
        user.name = dto.name
        user.avatar_url = dto.avatar_url
        user.role = dto.role.value
        user.agency_id = agency_id
        session.commit()
        session.refresh(user)
        return user

    def _apply(self, user: User, values: Mapping[str, Any]) -> None:
        for key, value in values.items():
            setattr(user, key, value.value if isinstance(value, Role) else value)


class PermissionService:
    def change_user_permissions(
        self,
        session: Session,
        permission_id: str | None,
        email: str,
        subaccount_id: str,
        access: bool,
    ) -> Permission | None:
        try:
            permission = session.get(Permission, permission_id) if permission_id else None
            if permission is None:
                permission = Permission(email=email, sub_account_id=subaccount_id, access=access)
                if permission_id:
                    permission.id = permission_id
                session.add(permission)
            else:
                permission.email = email
                permission.sub_account_id = subaccount_id
                permission.access = access
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error(
                "permission.change_failed",
                extra={"email": email, "subaccount_id": subaccount_id, "error": str(exc)[:500]},
            )
            return None
        session.refresh(permission)
        return permission


class InvitationService:
    def verify_and_accept_invitation(
        self,
        session: Session,
        principal: Principal | None,
        *,
        identity: IdentityProvider,
    ) -> str | None:
        """Consume a pending invitation for the principal and return the agency id they belong to.

        Without a pending invitation this only reports the existing membership.
        Owner invitations are never consumed here; they return None and stay pending.
        """
        if principal is None:
            return None

        invitation = session.scalar(
            select(Invitation).where(Invitation.email == principal.email, Invitation.status == "PENDING")
        )
        if invitation is None:
            return session.scalar(select(User.agency_id).where(User.email == principal.email))

        role = Role.parse(invitation.role) or DEFAULT_ROLE
        user = user_service.create_team_user(
            session,
            invitation.agency_id,
            TeamUserCreate(
                id=principal.id,
                email=invitation.email,
                name=principal.name,
                avatar_url=principal.image_url,
                role=role,
                agency_id=invitation.agency_id,
            ),
        )
        if user is None:
            logger.info("invitation.not_consumed", extra={"email": invitation.email, "role": role.value})
            return None

        notification_service.save_activity_log(
            session,
            principal=principal,
            description="Joined",
            agency_id=invitation.agency_id,
        )
        sync_role_metadata(identity, principal.id, Role.parse(user.role) or role, operation="accept_invitation")

        session.delete(invitation)
        session.commit()
        observe_invitation_accepted()
        logger.info("invitation.accepted", extra={"agency_id": user.agency_id, "user_id": user.id, "role": user.role})
        return user.agency_id

    def send_invitation(
        self,
        session: Session,
        role: Role | str,
        email: str,
        agency_id: str,
        *,
        identity: IdentityProvider,
        redirect_url: str | None = None,
    ) -> Invitation:
        dto = InvitationCreate.model_validate({"role": role, "email": email, "agency_id": agency_id})

        invitation = Invitation(email=dto.email, agency_id=dto.agency_id, role=dto.role.value, status="PENDING")
        session.add(invitation)
        commit_or_conflict(session, "invitation already exists")
        session.refresh(invitation)

        try:
            identity.create_invitation(dto.email, dto.role, redirect_url or get_settings().public_url)
        except (IdentityProviderError, httpx.HTTPError) as exc:
            logger.error(
                "invitation.send_failed",
                extra={"email": dto.email, "agency_id": dto.agency_id, "error": str(exc)[:500]},
            )
            raise
        logger.info("invitation.sent", extra={"email": dto.email, "agency_id": dto.agency_id, "role": dto.role.value})
        return invitation

    def list_invitations(self, session: Session, agency_id: str) -> list[Invitation]:
        stmt = select(Invitation).where(Invitation.agency_id == agency_id).order_by(Invitation.created_at.desc())
        return list(session.scalars(stmt).all())


class AgencyService:
    def upsert_agency(self, session: Session, payload: AgencyUpsert | Mapping[str, Any]) -> Agency:
        dto = payload if isinstance(payload, AgencyUpsert) else AgencyUpsert.model_validate(payload)
        values = dto.model_dump(exclude={"id"})

        agency = session.get(Agency, dto.id)
        if agency is not None:
            for key, value in values.items():
                setattr(agency, key, value)
            commit_or_conflict(session, "agency update conflicts with existing data")
            session.refresh(agency)
            return agency

        owner = session.scalar(select(User).where(User.email == dto.company_email))
        if owner is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user not found")

        agency = Agency(id=dto.id, **values)
        agency.sidebar_options = build_sidebar_options(f"/agency/{dto.id}", AGENCY_SIDEBAR_OPTIONS)
        session.add(agency)
        owner.agency = agency
        commit_or_conflict(session, "agency already exists")
        session.refresh(agency)
        logger.info("agency.created", extra={"agency_id": agency.id, "user_id": owner.id})
        return agency

    def get_agency_details(self, session: Session, agency_id: str) -> Agency | None:
        stmt = (
            select(Agency)
            .options(selectinload(Agency.sidebar_options), selectinload(Agency.sub_accounts))
            .where(Agency.id == agency_id)
        )
        return session.scalar(stmt)

    def update_agency_details(self, session: Session, agency_id: str, dto: AgencyUpdate) -> Agency:
        agency = session.get(Agency, agency_id)
        if agency is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="agency not found")
        for key, value in dto.model_dump(exclude_unset=True, exclude_none=True).items():
            setattr(agency, key, value)
        commit_or_conflict(session, "agency update conflicts with existing data")
        session.refresh(agency)
        return agency

    def delete_agency(self, session: Session, agency_id: str) -> AgencyRead | None:
        agency = session.get(Agency, agency_id)
        if agency is None:
            return None
        snapshot = AgencyRead.model_validate(agency)
        session.delete(agency)
        session.commit()
        logger.info("agency.deleted", extra={"agency_id": agency_id})
        return snapshot


class SubAccountService:
    def upsert_subaccount(self, session: Session, payload: SubAccountUpsert | Mapping[str, Any]) -> SubAccount | None:
        dto = payload if isinstance(payload, SubAccountUpsert) else SubAccountUpsert.model_validate(payload)

        owner = session.scalar(
            select(User).where(User.agency_id == dto.agency_id, User.role == Role.AGENCY_OWNER.value)
        )
        if owner is None:
            logger.error("subaccount.owner_missing", extra={"agency_id": dto.agency_id, "subaccount_id": dto.id})
            return None

        values = dto.model_dump(exclude={"id"})
        sub_account = session.get(SubAccount, dto.id)
        if sub_account is not None:
            for key, value in values.items():
                setattr(sub_account, key, value)
            commit_or_conflict(session, "sub-account update conflicts with existing data")
            session.refresh(sub_account)
            return sub_account

        sub_account = SubAccount(id=dto.id, **values)
        sub_account.sidebar_options = build_sidebar_options(f"/subaccount/{dto.id}", SUBACCOUNT_SIDEBAR_OPTIONS)
        sub_account.pipelines = [Pipeline(name=DEFAULT_PIPELINE_NAME)]
        sub_account.permissions = [Permission(email=owner.email, access=True)]
        session.add(sub_account)
        commit_or_conflict(session, "sub-account already exists")
        session.refresh(sub_account)
        logger.info("subaccount.created", extra={"agency_id": dto.agency_id, "subaccount_id": sub_account.id})
        return sub_account

    def get_subaccount_details(self, session: Session, subaccount_id: str) -> SubAccount | None:
        stmt = (
            select(SubAccount)
            .options(selectinload(SubAccount.sidebar_options))
            .where(SubAccount.id == subaccount_id)
        )
        return session.scalar(stmt)

    def delete_subaccount(self, session: Session, subaccount_id: str) -> SubAccountRead | None:
        sub_account = session.get(SubAccount, subaccount_id)
        if sub_account is None:
            return None
        snapshot = SubAccountRead.model_validate(sub_account)
        session.delete(sub_account)
        session.commit()
        logger.info("subaccount.deleted", extra={"subaccount_id": subaccount_id})
        return snapshot


class SidebarService:
    def get_sidebar(
        self,
        session: Session,
        principal: Principal | None,
        scope: SidebarScope,
        scope_id: str,
    ) -> SidebarRead | None:
        user = user_service.get_auth_user_details(session, principal)
        if user is None or user.agency is None:
            return None
        agency = user.agency

        granted = {permission.sub_account_id for permission in user.permissions if permission.access}
        visible = [SubAccountRead.model_validate(sub) for sub in agency.sub_accounts if sub.id in granted]

        if scope == "agency":
            if scope_id != agency.id:
                return None
            return SidebarRead(
                scope="agency",
                id=agency.id,
                name=agency.name,
                logo=agency.agency_logo,
                white_label=agency.white_label,
                options=[SidebarOptionRead.model_validate(option) for option in agency.sidebar_options],
                sub_accounts=visible,
            )

        sub_account = next((sub for sub in agency.sub_accounts if sub.id == scope_id), None)
        if sub_account is None:
            return None
        logo = agency.agency_logo
        if not agency.white_label:
            logo = sub_account.sub_account_logo or agency.agency_logo
        return SidebarRead(
            scope="subaccount",
            id=sub_account.id,
            name=sub_account.name,
            logo=logo,
            white_label=agency.white_label,
            options=[SidebarOptionRead.model_validate(option) for option in sub_account.sidebar_options],
            sub_accounts=visible,
        )


user_service = UserService()
permission_service = PermissionService()
invitation_service = InvitationService()
agency_service = AgencyService()
subaccount_service = SubAccountService()
sidebar_service = SidebarService()
