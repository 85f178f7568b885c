"""
Role-based access control for the vacation workflow.

A single role -> capability table plus a role -> authority-level table.
Callers ask questions of these tables instead of comparing role strings.
"""
import enum
from typing import Dict, FrozenSet

from app.models.user import UserRole


class Permission(str, enum.Enum):
    APPLY_VACATION = "apply_vacation"
    VIEW_OWN_VACATIONS = "view_own_vacations"
    VIEW_ALL_VACATIONS = "view_all_vacations"
    VIEW_DEPARTMENT_VACATIONS = "view_department_vacations"
    APPROVE_AS_CHIEF = "approve_as_chief"
    APPROVE_AS_PRINCIPAL = "approve_as_principal"
    REJECT_VACATION = "reject_vacation"
    CANCEL_VACATION = "cancel_vacation"
    VIEW_OTHERS_PROFILE = "view_others_profile"
    VIEW_STATISTICS = "view_statistics"
    MANAGE_USER_ROLES = "manage_user_roles"


class AuthorityLevel(enum.IntEnum):
    STAFF = 1
    DEPARTMENT_CHIEF = 2
    EXECUTIVE = 3
    ADMINISTRATOR = 4


_STAFF: FrozenSet[Permission] = frozenset({
    Permission.APPLY_VACATION,
    Permission.VIEW_OWN_VACATIONS,
})

_ADMINISTRATOR: FrozenSet[Permission] = frozenset(Permission)

ROLE_PERMISSIONS: Dict[UserRole, FrozenSet[Permission]] = {
    UserRole.SUPER_ADMIN: _ADMINISTRATOR,
    UserRole.REGISTRAR_HEAD: _ADMINISTRATOR,
    UserRole.PRINCIPAL: _STAFF | {
        Permission.VIEW_ALL_VACATIONS,
        Permission.APPROVE_AS_PRINCIPAL,
        Permission.REJECT_VACATION,
        Permission.VIEW_OTHERS_PROFILE,
        Permission.VIEW_STATISTICS,
    },
    UserRole.VICE_PRINCIPAL: _STAFF | {
        Permission.VIEW_ALL_VACATIONS,
        Permission.VIEW_OTHERS_PROFILE,
        Permission.VIEW_STATISTICS,
    },
    UserRole.GENERAL_SHAKHA: _STAFF | {
        Permission.VIEW_ALL_VACATIONS,
        Permission.VIEW_OTHERS_PROFILE,
        Permission.VIEW_STATISTICS,
    },
    UserRole.GENERAL_HEAD: _STAFF | {
        Permission.VIEW_DEPARTMENT_VACATIONS,
        Permission.APPROVE_AS_CHIEF,
        Permission.REJECT_VACATION,
        Permission.VIEW_OTHERS_PROFILE,
        Permission.VIEW_STATISTICS,
    },
    UserRole.CHIEF_INSTRUCTOR: _STAFF | {
        Permission.VIEW_DEPARTMENT_VACATIONS,
        Permission.APPROVE_AS_CHIEF,
        Permission.REJECT_VACATION,
        Permission.VIEW_OTHERS_PROFILE,
        Permission.VIEW_STATISTICS,
    },
    UserRole.INSTRUCTOR: _STAFF,
    UserRole.CRAFT_INSTRUCTOR: _STAFF,
    UserRole.ASSISTANT_INSTRUCTOR: _STAFF,
    UserRole.OFFICE_STAFF: _STAFF,
    UserRole.LAB_ASSISTANT: _STAFF,
    UserRole.LIBRARY_STAFF: _STAFF,
    UserRole.OTHER_EMPLOYEE: _STAFF,
}

ROLE_AUTHORITY: Dict[UserRole, AuthorityLevel] = {
    UserRole.SUPER_ADMIN: AuthorityLevel.ADMINISTRATOR,
    UserRole.REGISTRAR_HEAD: AuthorityLevel.ADMINISTRATOR,
    UserRole.PRINCIPAL: AuthorityLevel.EXECUTIVE,
    UserRole.VICE_PRINCIPAL: AuthorityLevel.EXECUTIVE,
    UserRole.GENERAL_HEAD: AuthorityLevel.DEPARTMENT_CHIEF,
    UserRole.CHIEF_INSTRUCTOR: AuthorityLevel.DEPARTMENT_CHIEF,
    UserRole.GENERAL_SHAKHA: AuthorityLevel.STAFF,
    UserRole.INSTRUCTOR: AuthorityLevel.STAFF,
    UserRole.CRAFT_INSTRUCTOR: AuthorityLevel.STAFF,
    UserRole.ASSISTANT_INSTRUCTOR: AuthorityLevel.STAFF,
    UserRole.OFFICE_STAFF: AuthorityLevel.STAFF,
    UserRole.LAB_ASSISTANT: AuthorityLevel.STAFF,
    UserRole.LIBRARY_STAFF: AuthorityLevel.STAFF,
    UserRole.OTHER_EMPLOYEE: AuthorityLevel.STAFF,
}


def has_permission(role: UserRole, permission: Permission) -> bool:
    return permission in ROLE_PERMISSIONS.get(role, frozenset())


def authority_level(role: UserRole) -> AuthorityLevel:
    return ROLE_AUTHORITY.get(role, AuthorityLevel.STAFF)


def requires_chief_review(role: UserRole) -> bool:
    """
    Chief review is skipped for requesters who already hold department-chief
    authority or higher.
    """
    return authority_level(role) < AuthorityLevel.DEPARTMENT_CHIEF
