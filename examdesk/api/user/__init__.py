import logging
from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field

from examdesk.services import course as course_service
from examdesk.services import user as user_service
from examdesk.services.auth import require_superadmin
from examdesk.utils.base import ServiceError


logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_superadmin)])


class PermissionsBody(BaseModel):
    can_manage_courses: bool | None = None
    can_create_exam: bool | None = None
    can_check_exam: bool | None = None
    can_attempt_exam: bool | None = None
    can_view_results: bool | None = None


class CreateUserBody(BaseModel):
    role: Literal["subadmin", "student"]
    email: EmailStr
    name: str = Field(min_length=2)
    course_codes: list[str] = []
    permissions: PermissionsBody | None = None


class UpdateAccessBody(BaseModel):
    email: EmailStr
    is_active: bool | None = None
    course_codes: list[str] | None = None
    permissions: PermissionsBody | None = None
    profile_image_path: str | None = None


def _fail(exc: ServiceError):
    logger.warning("User request refused: %s (%s)", exc.message, exc.error_code)
    return exc.to_http()


@router.get("")
def list_users() -> dict:
    """SUPERADMIN: List users (newest first) together with the courses."""
    return {
        "users": [u.to_dict() for u in user_service.list_users()],
        "courses": [c.to_dict() for c in course_service.list_courses()],
    }


@router.post("")
def create_user(body: CreateUserBody) -> dict:
    """SUPERADMIN: Create a subadmin or student."""
    try:
        user = user_service.create_managed_user(
            email=body.email,
            name=body.name,
            role=body.role,
            course_codes=body.course_codes,
            permissions=body.permissions.model_dump(exclude_none=True) if body.permissions else None,
        )
    except ServiceError as exc:
        raise _fail(exc) from exc
    return user.to_dict()


@router.patch("/access")
def update_access(body: UpdateAccessBody) -> dict:
    """SUPERADMIN: Partially update activation, permissions, courses or image.

    Updates aimed at the superadmin are ignored and reported as not applied.
    """
    try:
        applied = user_service.update_access(
            body.email,
            is_active=body.is_active,
            permissions=body.permissions.model_dump(exclude_none=True) if body.permissions else None,
            course_codes=body.course_codes,
            profile_image_path=body.profile_image_path,
        )
    except ServiceError as exc:
        raise _fail(exc) from exc
    return {"status": True, "applied": applied}
