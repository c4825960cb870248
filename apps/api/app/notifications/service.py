from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from app.authz.roles import NotificationScope
from app.identity import Principal
from app.notifications.models import Notification
from app.tenancy.models import SubAccount, User


logger = logging.getLogger("app.notifications")


class MissingScopeError(Exception):
    """Neither an agency id nor a resolvable sub-account id was supplied."""


class NotificationService:
    def save_activity_log(
        self,
        session: Session,
        *,
        principal: Principal | None,
        description: str,
        agency_id: str | None = None,
        subaccount_id: str | None = None,
    ) -> Notification | None:
        actor = self._resolve_actor(session, principal, subaccount_id)
        if actor is None:
            logger.error("notification.actor_missing", extra={"agency_id": agency_id, "subaccount_id": subaccount_id})
            return None

        resolved_agency_id = agency_id
        if not resolved_agency_id and subaccount_id:
            sub_account = session.get(SubAccount, subaccount_id)
            if sub_account is not None:
                resolved_agency_id = sub_account.agency_id
        if not resolved_agency_id:
            raise MissingScopeError("You need to provide at least an agency id or subaccount id")

        row = Notification(
            notification=f"{actor.name} | {description}",
            agency_id=resolved_agency_id,
            sub_account_id=subaccount_id or None,
            user_id=actor.id,
        )
        session.add(row)
        session.commit()
        session.refresh(row)
        return row

    def get_notifications_with_user(self, session: Session, agency_id: str) -> list[Notification]:
        stmt = (
            select(Notification)
            .options(selectinload(Notification.user))
            .where(Notification.agency_id == agency_id)
            .order_by(Notification.created_at.desc())
        )
        return list(session.scalars(stmt).all())

    def list_for_scope(
        self,
        session: Session,
        agency_id: str,
        scope: NotificationScope,
        subaccount_id: str | None = None,
    ) -> list[Notification]:
        stmt = (
            select(Notification)
            .options(selectinload(Notification.user))
            .where(Notification.agency_id == agency_id)
            .order_by(Notification.created_at.desc())
        )
        if scope == NotificationScope.SUBACCOUNT:
            stmt = stmt.where(Notification.sub_account_id == subaccount_id)
        return list(session.scalars(stmt).all())

    def _resolve_actor(self, session: Session, principal: Principal | None, subaccount_id: str | None) -> User | None:
        if principal is not None:
            return session.scalar(select(User).where(User.email == principal.email))
        if not subaccount_id:
            return None
        # no signed-in user: attribute to the first member of the owning agency
        stmt = (
            select(User)
            .join(SubAccount, SubAccount.agency_id == User.agency_id)
            .where(SubAccount.id == subaccount_id)
            .order_by(User.created_at.asc())
            .limit(1)
        )
        return session.scalar(stmt)


notification_service = NotificationService()
