# pollbuddy/authentication/admin.py

from enum import Enum
from functools import wraps
import logging

from pollbuddy import db
from pollbuddy.database.models import User
from pollbuddy.errors import NotAuthorized

# Role-based access for bot handlers. Admins are the configured main admin
# chat plus any user flagged is_admin.

logger = logging.getLogger(__name__)


class UserRole(Enum):
    VOTER = "voter"
    ADMIN = "admin"


class Permission(Enum):
    VOTE = "vote"
    APPLY = "apply"
    MANAGE_CANDIDATES = "manage_candidates"
    MANAGE_ELECTION = "manage_election"
    MANAGE_USERS = "manage_users"
    VIEW_RESULTS = "view_results"
    AUDIT_VOTES = "audit_votes"


ROLE_PERMISSIONS = {
    UserRole.VOTER: [
        Permission.VOTE,
        Permission.APPLY,
    ],
    UserRole.ADMIN: [
        Permission.VOTE,
        Permission.APPLY,
        Permission.MANAGE_CANDIDATES,
        Permission.MANAGE_ELECTION,
        Permission.MANAGE_USERS,
        Permission.VIEW_RESULTS,
        Permission.AUDIT_VOTES,
    ],
}


class AdminAuthorizer:
    def __init__(self, main_admin_id=''):
        self.main_admin_id = str(main_admin_id or '')

    def is_main_admin(self, telegram_id) -> bool:
        return bool(self.main_admin_id) and str(telegram_id) == self.main_admin_id

    def is_admin(self, telegram_id) -> bool:
        if self.is_main_admin(telegram_id):
            return True
        user = db.session.get(User, str(telegram_id))
        return bool(user and user.is_admin)

    def role_of(self, telegram_id):
        return UserRole.ADMIN if self.is_admin(telegram_id) else UserRole.VOTER

    def has_permission(self, telegram_id, permission):
        if isinstance(permission, str):
            permission = Permission(permission)
        return permission in ROLE_PERMISSIONS.get(self.role_of(telegram_id), [])


def require_permission(permission):
    """Guard a handler method taking ``(self, telegram_id, ...)``.

    The owning object must expose an ``authorizer`` attribute.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(self, telegram_id, *args, **kwargs):
            if not self.authorizer.has_permission(telegram_id, permission):
                logger.warning(f"Denied {permission.value} to {telegram_id}")
                raise NotAuthorized()
            return func(self, telegram_id, *args, **kwargs)
        return wrapper
    return decorator
