"""
当前登录用户 → StaffProfile（角色 / clinic / provider）。

所有 service 入口都从这里拿上下文，不直接读 request。
"""

from .exceptions import PermissionDeniedError, ValidationError
from .models import StaffProfile

PRESCRIBER_ROLES = (
    StaffProfile.ROLE_PROVIDER,
    StaffProfile.ROLE_ADMIN,
    StaffProfile.ROLE_SUPER_ADMIN,
)
APPROVER_ROLES = (
    StaffProfile.ROLE_PROVIDER,
    StaffProfile.ROLE_SUPER_ADMIN,
)


def get_staff_profile(user) -> StaffProfile:
    try:
        return StaffProfile.objects.select_related('clinic', 'provider').get(user=user)
    except StaffProfile.DoesNotExist:
        raise PermissionDeniedError(
            message='User has no staff profile.',
            code='NO_STAFF_PROFILE',
        )


def require_clinic(user) -> StaffProfile:
    """拿 profile，且必须属于某个 clinic（多租户隔离的前提）。"""
    profile = get_staff_profile(user)
    if profile.clinic_id is None:
        raise ValidationError(
            message='Provider must be associated with a clinic',
            code='CLINIC_REQUIRED',
        )
    return profile


def require_role(profile: StaffProfile, roles, message: str = None):
    if profile.role not in roles:
        raise PermissionDeniedError(
            message=message or f"Role '{profile.role}' is not allowed to perform this action.",
            code='ROLE_NOT_ALLOWED',
            detail={'role': profile.role, 'allowed_roles': list(roles)},
        )
    return profile


def scope_to_clinic(queryset, profile: StaffProfile):
    """super_admin 跨 clinic 可见，其他角色只看自己 clinic 的数据。"""
    if profile.role == StaffProfile.ROLE_SUPER_ADMIN:
        return queryset
    return queryset.filter(clinic_id=profile.clinic_id)
