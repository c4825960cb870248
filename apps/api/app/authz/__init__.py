from app.authz.roles import DEFAULT_ROLE, NotificationScope, Role

__all__ = [
    "DEFAULT_ROLE",
    "NotificationScope",
    "Role",
]
