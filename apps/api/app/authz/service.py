from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from sqlalchemy.orm import Session

from app.authz.roles import NotificationScope, Role
from app.core.config import get_settings
from app.identity import IdentityProvider, Principal
from app.metrics import observe_access_decision
from app.notifications.models import Notification
from app.notifications.service import notification_service
from app.tenancy.models import SubAccount, User
from app.tenancy.service import invitation_service, user_service


logger = logging.getLogger("app.authz")


class DenyReason(str, Enum):
    UNAUTHENTICATED = "UNAUTHENTICATED"
    UNAUTHORIZED = "UNAUTHORIZED"


@dataclass(slots=True)
class AccessDecision:
    allowed: bool
    reason: DenyReason | None = None
    redirect_to: str | None = None
    role: Role | None = None
    agency_id: str | None = None
    subaccount_id: str | None = None
    scope: NotificationScope | None = None
    notifications: list[Notification] = field(default_factory=list)


def resolve_role(user: User | None, principal: Principal) -> Role | None:
    """Datastore role wins; the provider's metadata role is only a fallback cache."""
    if user is not None:
        role = Role.parse(user.role)
        if role is not None:
            return role
    return principal.metadata_role


class AuthorizationResolver:
    def authorize_subaccount(
        self,
        session: Session,
        principal: Principal | None,
        subaccount_id: str,
        *,
        identity: IdentityProvider,
    ) -> AccessDecision:
        if principal is None:
            return self._unauthenticated("subaccount")

        agency_id = invitation_service.verify_and_accept_invitation(session, principal, identity=identity)
        sub_account = session.get(SubAccount, subaccount_id)
        if agency_id is None and sub_account is not None:
            agency_id = sub_account.agency_id

        user = user_service.get_auth_user_details(session, principal)
        role = resolve_role(user, principal)
        if role is None:
            return self._deny("subaccount", principal, "no_role")
        if sub_account is None:
            return self._deny("subaccount", principal, "unknown_subaccount")

        if role.is_agency_privileged:
            member_agency_id = user.agency_id if user is not None else None
            if member_agency_id and member_agency_id != sub_account.agency_id:
                return self._deny("subaccount", principal, "foreign_agency")
        else:
            granted = user is not None and any(
                permission.sub_account_id == subaccount_id and permission.access for permission in user.permissions
            )
            if not granted:
                return self._deny("subaccount", principal, "no_permission")

        scope = NotificationScope.for_role(role)
        notifications: list[Notification] = []
        if agency_id:
            notifications = notification_service.list_for_scope(session, agency_id, scope, subaccount_id)

        observe_access_decision("subaccount", True)
        return AccessDecision(
            allowed=True,
            role=role,
            agency_id=agency_id,
            subaccount_id=subaccount_id,
            scope=scope,
            notifications=notifications,
        )

    def authorize_agency(
        self,
        session: Session,
        principal: Principal | None,
        agency_id: str,
        *,
        identity: IdentityProvider,
    ) -> AccessDecision:
        if principal is None:
            return self._unauthenticated("agency")

        member_agency_id = invitation_service.verify_and_accept_invitation(session, principal, identity=identity)
        user = user_service.get_auth_user_details(session, principal)
        role = resolve_role(user, principal)
        if role is None:
            return self._deny("agency", principal, "no_role")
        if not role.is_agency_privileged:
            return self._deny("agency", principal, "not_privileged")
        if member_agency_id != agency_id:
            return self._deny("agency", principal, "foreign_agency")

        observe_access_decision("agency", True)
        return AccessDecision(
            allowed=True,
            role=role,
            agency_id=agency_id,
            scope=NotificationScope.AGENCY,
            notifications=notification_service.list_for_scope(session, agency_id, NotificationScope.AGENCY),
        )

    def _unauthenticated(self, scope: str) -> AccessDecision:
        observe_access_decision(scope, False)
        return AccessDecision(
            allowed=False,
            reason=DenyReason.UNAUTHENTICATED,
            redirect_to=get_settings().sign_in_path,
        )

    def _deny(self, scope: str, principal: Principal, reason: str) -> AccessDecision:
        logger.info("authz.denied", extra={"user_id": principal.id, "entity": scope, "reason": reason})
        observe_access_decision(scope, False)
        return AccessDecision(allowed=False, reason=DenyReason.UNAUTHORIZED)


authorization_resolver = AuthorizationResolver()
