from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    AGENCY_OWNER = "AGENCY_OWNER"
    AGENCY_ADMIN = "AGENCY_ADMIN"
    SUBACCOUNT_USER = "SUBACCOUNT_USER"
    SUBACCOUNT_GUEST = "SUBACCOUNT_GUEST"

    @property
    def is_agency_privileged(self) -> bool:
        """Owners and admins see every sub-account of their agency."""
        return self in _AGENCY_PRIVILEGED

    @classmethod
    def parse(cls, value: object) -> Role | None:
        if isinstance(value, Role):
            return value
        if not isinstance(value, str) or not value:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


_AGENCY_PRIVILEGED = frozenset({Role.AGENCY_OWNER, Role.AGENCY_ADMIN})

DEFAULT_ROLE = Role.SUBACCOUNT_USER


class NotificationScope(str, Enum):
    AGENCY = "AGENCY"
    SUBACCOUNT = "SUBACCOUNT"

    @classmethod
    def for_role(cls, role: Role) -> NotificationScope:
        return cls.AGENCY if role.is_agency_privileged else cls.SUBACCOUNT
