from __future__ import annotations

from pydantic import BaseModel

from app.authz.roles import NotificationScope, Role
from app.authz.service import AccessDecision
from app.notifications.schemas import NotificationWithUserRead


class AccessDecisionRead(BaseModel):
    allowed: bool
    role: Role | None
    agency_id: str | None
    subaccount_id: str | None
    scope: NotificationScope | None
    notifications: list[NotificationWithUserRead]

    @classmethod
    def from_decision(cls, decision: AccessDecision) -> AccessDecisionRead:
        return cls(
            allowed=decision.allowed,
            role=decision.role,
            agency_id=decision.agency_id,
            subaccount_id=decision.subaccount_id,
            scope=decision.scope,
            notifications=[NotificationWithUserRead.model_validate(row) for row in decision.notifications],
        )
