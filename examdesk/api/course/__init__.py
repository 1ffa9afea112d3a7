import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from examdesk.services import course as course_service
from examdesk.services.auth import require_superadmin
from examdesk.utils.base import ServiceError


logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_superadmin)])


class CreateCourseBody(BaseModel):
    name: str = Field(min_length=2)
    code: str | None = None


class RenameCourseBody(BaseModel):
    name: str = Field(min_length=2)


class CourseMembersBody(BaseModel):
    emails: list[str]


def _fail(exc: ServiceError):
    logger.warning("Course request refused: %s (%s)", exc.message, exc.error_code)
    return exc.to_http()


@router.get("")
def list_courses() -> list[dict]:
    """SUPERADMIN: List courses, newest first."""
    return [c.to_dict() for c in course_service.list_courses()]


@router.post("")
def create_course(body: CreateCourseBody) -> dict:
    """SUPERADMIN: Create a course; without a code the next serial code is used."""
    try:
        return course_service.create_course(body.name, body.code).to_dict()
    except ServiceError as exc:
        raise _fail(exc) from exc


@router.patch("/{code}")
def rename_course(code: str, body: RenameCourseBody) -> dict:
    """SUPERADMIN: Rename a course in place."""
    try:
        return course_service.rename_course(code, body.name).to_dict()
    except ServiceError as exc:
        raise _fail(exc) from exc


@router.delete("/{code}")
def delete_course(code: str) -> dict:
    """SUPERADMIN: Delete a course and retract it from every user."""
    try:
        report = course_service.delete_course(code)
    except ServiceError as exc:
        raise _fail(exc) from exc
    return {"status": True, "cascade": report.model_dump()}


@router.put("/{code}/subadmins")
def set_subadmins(code: str, body: CourseMembersBody) -> dict:
    """SUPERADMIN: Replace the subadmins administering a course."""
    try:
        return course_service.set_subadmins(code, body.emails).to_dict()
    except ServiceError as exc:
        raise _fail(exc) from exc


@router.put("/{code}/students")
def set_students(code: str, body: CourseMembersBody) -> dict:
    """SUPERADMIN: Replace the students enrolled in a course."""
    try:
        return course_service.set_students(code, body.emails).to_dict()
    except ServiceError as exc:
        raise _fail(exc) from exc
