# blog_cms/services/permissions.py

"""
Права доступа.

Соответствие "роль -> набор возможностей" задается только здесь,
остальной код спрашивает has_capability(), а не сравнивает строки ролей.
"""

import enum
from typing import Iterable

from blog_cms.models import User, UserRole
from blog_cms.utils.exceptions import PermissionDeniedError, ValidationError


class Capability(str, enum.Enum):
    ACCESS_ADMIN = "access_admin"
    MANAGE_CONTENT = "manage_content"
    MODERATE_COMMENTS = "moderate_comments"
    MANAGE_USERS = "manage_users"
    MANAGE_SETTINGS = "manage_settings"
    ASSIGN_SUPER_ADMIN = "assign_super_admin"


# EDITOR и ADMIN имеют одинаковый доступ к админке
_STAFF_CAPABILITIES = frozenset(Capability) - {Capability.ASSIGN_SUPER_ADMIN}

ROLE_CAPABILITIES: dict[UserRole, frozenset[Capability]] = {
    UserRole.USER: frozenset(),
    UserRole.EDITOR: _STAFF_CAPABILITIES,
    UserRole.ADMIN: _STAFF_CAPABILITIES,
    UserRole.SUPER_ADMIN: frozenset(Capability),
}


def has_capability(user: User | None, capability: Capability) -> bool:
    if user is None:
        return False
    return capability in ROLE_CAPABILITIES.get(user.role, frozenset())


def ensure_capability(user: User, capability: Capability) -> None:
    if not has_capability(user, capability):
        raise PermissionDeniedError("Access denied. Insufficient privileges")


def ensure_can_target(actor: User, targets: Iterable[User]) -> None:
    """
    Деструктивные действия над пользователями (удаление, понижение,
    массовые операции) нельзя направлять на себя и на SUPER_ADMIN.
    """
    for target in targets:
        if target.id == actor.id:
            raise ValidationError("Cannot perform this action on your own account")
        if target.role == UserRole.SUPER_ADMIN:
            raise ValidationError("Cannot perform this action on super admin accounts")
