"""User Directory: accounts, role resolution and the superadmin bootstrap."""
from __future__ import annotations

import logging
from typing import Iterable, Mapping

from mongoengine import NotUniqueError, ValidationError
from pydantic import BaseModel

from examdesk.models.user import User, UserPermissions
from examdesk.services import consistency
from examdesk.services.course import missing_course_codes, normalize_code
from examdesk.utils.base import (
    ConflictError,
    NotFoundError,
    ProfileImageSource,
    UserProvider,
    UserRole,
    ValidationFailedError,
)
from examdesk.utils.clock import utcnow
from examdesk.utils.config import settings


logger = logging.getLogger(__name__)

DEFAULT_PERMISSIONS: dict[str, dict[str, bool]] = {
    UserRole.SUPERADMIN.value: {
        "can_manage_courses": True,
        "can_create_exam": True,
        "can_check_exam": True,
        "can_attempt_exam": False,
        "can_view_results": True,
    },
    UserRole.SUBADMIN.value: {
        "can_manage_courses": False,
        "can_create_exam": True,
        "can_check_exam": True,
        "can_attempt_exam": False,
        "can_view_results": True,
    },
    UserRole.STUDENT.value: {
        "can_manage_courses": False,
        "can_create_exam": False,
        "can_check_exam": False,
        "can_attempt_exam": True,
        "can_view_results": True,
    },
}

MANAGED_ROLES = (UserRole.SUBADMIN.value, UserRole.STUDENT.value)


class AuthUser(BaseModel):
    """Session projection of a user handed to the auth layer."""
    id: str
    email: str
    name: str
    role: str
    image: str | None = None
    permissions: dict[str, bool]
    is_active: bool
    course_codes: list[str]

    @classmethod
    def from_user(cls, user: User) -> "AuthUser":
        return cls(
            id=str(user.id),
            email=user.email,
            name=user.name,
            role=user.role,
            image=user.profile_image_path,
            permissions=user.permissions.to_output(),
            is_active=user.is_active,
            course_codes=list(user.course_codes),
        )


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def is_super_admin_email(email: str, super_admin_email: str | None = None) -> bool:
    configured = super_admin_email or settings.super_admin_email
    return normalize_email(email) == normalize_email(configured)


def resolve_role(
    email: str,
    existing_role: str | None = None,
    *,
    super_admin_email: str | None = None,
) -> str:
    """Role for an account: the configured address is always superadmin,
    otherwise the stored role wins, otherwise student."""
    if is_super_admin_email(email, super_admin_email):
        return UserRole.SUPERADMIN.value
    if existing_role:
        return existing_role
    return UserRole.STUDENT.value


def default_permissions(role: str) -> UserPermissions:
    return UserPermissions(**DEFAULT_PERMISSIONS[role])


def build_permissions(role: str, overrides: Mapping[str, bool] | None) -> UserPermissions:
    """Role template with the supplied flags applied on top."""
    return merge_permissions(DEFAULT_PERMISSIONS[role], overrides)


def merge_permissions(current: Mapping[str, bool], overrides: Mapping[str, bool] | None) -> UserPermissions:
    values = dict(current)
    if overrides:
        unknown = set(overrides) - set(UserPermissions._fields)
        if unknown:
            raise ValidationFailedError(f"Unknown permissions: {', '.join(sorted(unknown))}")
        values.update({key: bool(value) for key, value in overrides.items()})
    return UserPermissions(**values)


def validated_course_codes(course_codes: Iterable[str]) -> list[str]:
    codes = list(dict.fromkeys(normalize_code(code) for code in course_codes if code and code.strip()))
    missing = missing_course_codes(codes)
    if missing:
        raise NotFoundError(f"Courses not found: {', '.join(missing)}")
    return codes


def get_user(email: str) -> User | None:
    return User.objects(email=normalize_email(email)).first()


def require_user(email: str) -> User:
    user = get_user(email)
    if not user:
        raise NotFoundError(f"User not found: {normalize_email(email)}")
    return user


def list_users() -> list[User]:
    return list(User.objects.order_by("-created_at"))


def get_auth_user(email: str) -> AuthUser | None:
    user = get_user(email)
    return AuthUser.from_user(user) if user else None


def ensure_super_admin() -> User:
    """Create the superadmin, or repair a record at that address that drifted.

    Idempotent; runs at process start and before every login provisioning.
    """
    email = normalize_email(settings.super_admin_email)
    user = User.objects(email=email).first()
    if not user:
        user = User(
            email=email,
            name=email.split("@")[0],
            provider=UserProvider.GOOGLE.value,
            role=UserRole.SUPERADMIN.value,
            is_active=True,
            permissions=default_permissions(UserRole.SUPERADMIN.value),
            course_codes=[],
        )
        try:
            user.save()
            logger.info("Superadmin %s created", email)
        except NotUniqueError:
            # Another process bootstrapped it first
            user = User.objects(email=email).first()

    changed = False
    if user.role != UserRole.SUPERADMIN.value:
        user.role = UserRole.SUPERADMIN.value
        user.permissions = default_permissions(UserRole.SUPERADMIN.value)
        changed = True
    if not user.is_active:
        user.is_active = True
        changed = True
    had_courses = bool(user.course_codes)
    if had_courses:
        user.course_codes = []
        changed = True

    if changed:
        user.save()
        logger.warning("Superadmin %s repaired (role/activation/courses drifted)", email)
    if had_courses:
        consistency.sync_subadmin_courses(email, [])
    _demote_stale_super_admins(email)
    return user


def _demote_stale_super_admins(email: str) -> None:
    """Superadmin records left behind after the configured address changed become students."""
    for stale in User.objects(role=UserRole.SUPERADMIN.value, email__ne=email):
        stale.role = UserRole.STUDENT.value
        stale.permissions = default_permissions(UserRole.STUDENT.value)
        stale.save()
        logger.warning("Demoted former superadmin %s to %s", stale.email, stale.role)


def can_sign_in(email: str) -> bool:
    if is_super_admin_email(email):
        return True
    user = get_user(email)
    if not user:
        return False
    return bool(user.is_active)


def provision_on_login(
    email: str,
    provider: str,
    avatar_url: str | None = None,
    *,
    name: str | None = None,
) -> AuthUser | None:
    """Record a sign-in. Returns None when the account may not sign in.

    Existing name, permissions, courses and activation are preserved;
    the role is recomputed on every call.
    """
    email = normalize_email(email)
    if provider not in UserProvider.values():
        raise ValidationFailedError(f"Unknown provider: {provider}")

    ensure_super_admin()
    if not can_sign_in(email):
        logger.warning("Sign-in refused for %s", email)
        return None

    user = User.objects(email=email).first()
    user.role = resolve_role(email, user.role)
    user.provider = provider
    if name and name.strip():
        user.name = name.strip()
    if provider == UserProvider.GOOGLE.value and avatar_url:
        user.profile_image_path = avatar_url
        user.profile_image_source = ProfileImageSource.GOOGLE.value
    user.last_login_at = utcnow()
    user.save()
    return AuthUser.from_user(user)


def create_managed_user(
    email: str,
    name: str,
    role: str,
    course_codes: Iterable[str] | None = None,
    permissions: Mapping[str, bool] | None = None,
) -> User:
    """Administrative creation of a subadmin or student, active by default.

    An existing account at the same address is overwritten with the
    supplied values.
    """
    email = normalize_email(email)
    if role not in MANAGED_ROLES:
        raise ValidationFailedError(f"Managed users must be one of: {', '.join(MANAGED_ROLES)}")
    if is_super_admin_email(email):
        logger.warning("Refusing to re-create superadmin %s as %s", email, role)
        return ensure_super_admin()

    name = (name or "").strip()
    if not name:
        raise ValidationFailedError("Name is required")
    codes = validated_course_codes(course_codes or [])
    perms = build_permissions(role, permissions)

    user = User.objects(email=email).first()
    previous_role = user.role if user else None
    if user is None:
        user = User(email=email, provider=UserProvider.GOOGLE.value)
    user.name = name
    user.role = role
    user.is_active = True
    user.permissions = perms
    user.course_codes = codes

    try:
        user.save()
    except ValidationError as exc:
        raise ValidationFailedError(f"Invalid user: {exc}") from exc
    except NotUniqueError as exc:
        raise ConflictError(f"User {email} was created concurrently") from exc

    if role == UserRole.SUBADMIN.value:
        consistency.sync_subadmin_courses(email, codes)
    elif previous_role == UserRole.SUBADMIN.value:
        consistency.sync_subadmin_courses(email, [])

    logger.info("Created %s %s with courses %s", role, email, codes)
    return user


def update_access(
    email: str,
    *,
    is_active: bool | None = None,
    permissions: Mapping[str, bool] | None = None,
    course_codes: Iterable[str] | None = None,
    profile_image_path: str | None = None,
    profile_image_source: str | None = None,
) -> bool:
    """Partially update access fields. Returns False, writing nothing, for the superadmin."""
    user = require_user(email)
    if user.role == UserRole.SUPERADMIN.value:
        logger.warning("Ignoring access update for superadmin %s", user.email)
        return False

    codes = None
    if course_codes is not None:
        codes = validated_course_codes(course_codes)
        user.course_codes = codes
    if is_active is not None:
        user.is_active = bool(is_active)
    if permissions is not None:
        overrides = permissions.to_output() if isinstance(permissions, UserPermissions) else permissions
        # Flags left out of a partial update keep their stored value
        current = user.permissions.to_output() if user.permissions else DEFAULT_PERMISSIONS[user.role]
        user.permissions = merge_permissions(current, overrides)
    if profile_image_path:
        source = profile_image_source or ProfileImageSource.UPLOAD.value
        if source not in ProfileImageSource.values():
            raise ValidationFailedError(f"Unknown profile image source: {source}")
        user.profile_image_path = profile_image_path
        user.profile_image_source = source

    user.save()
    if codes is not None and user.role == UserRole.SUBADMIN.value:
        consistency.sync_subadmin_courses(user.email, codes)

    logger.info("Access updated for %s", user.email)
    return True
