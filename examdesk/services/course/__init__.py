"""Course Directory: the set of courses and their serial codes."""
from __future__ import annotations

import logging
import re
from typing import Iterable

from examdesk.models.course import Course
from examdesk.services import consistency
from examdesk.utils.base import NotFoundError, ValidationFailedError
from examdesk.utils.clock import utcnow


logger = logging.getLogger(__name__)

SERIAL_WIDTH = 3
_DIGITS = re.compile(r"\d+")


def normalize_code(code: str) -> str:
    return code.strip().upper()


def next_serial_code(codes: Iterable[str]) -> str:
    """Next auto-generated code: max of the first numeric run in each code, plus one.

    Gaps are never reused: with "005" present the next code is "006"
    even if "002".."004" are missing.
    """
    highest = 0
    for code in codes:
        match = _DIGITS.search(code or "")
        if match:
            highest = max(highest, int(match.group(0)))
    return str(highest + 1).zfill(SERIAL_WIDTH)


def list_courses() -> list[Course]:
    return list(Course.objects.order_by("-created_at"))


def get_course(code: str) -> Course | None:
    return Course.objects(code=normalize_code(code)).first()


def require_course(code: str) -> Course:
    course = get_course(code)
    if not course:
        raise NotFoundError(f"Course not found: {normalize_code(code)}")
    return course


def missing_course_codes(codes: Iterable[str]) -> list[str]:
    """Codes (already canonical) that do not resolve to a course, in request order."""
    codes = list(codes)
    found = {course.code for course in Course.objects(code__in=codes).only("code")}
    return [code for code in codes if code not in found]


def create_course(name: str, code: str | None = None) -> Course:
    """Create a course, or touch `updated_at` if the code already exists.

    Without an explicit code the next serial code is derived from the
    existing ones. The upsert is keyed by the canonical code so repeated
    calls never duplicate a course.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationFailedError("Course name is required")

    if code is None or not code.strip():
        code = next_serial_code(Course.objects.scalar("code"))
    code = normalize_code(code)

    now = utcnow()
    Course.objects(code=code).update_one(
        upsert=True,
        set_on_insert__name=name,
        set_on_insert__subadmin_emails=[],
        set_on_insert__created_at=now,
        set__updated_at=now,
    )
    course = Course.objects(code=code).first()
    if not course:
        raise RuntimeError(f"Failed to create course {code}")
    logger.info("Course %s upserted (%s)", code, course.name)
    return course


def rename_course(code: str, name: str) -> Course:
    course = require_course(code)
    name = (name or "").strip()
    if not name:
        raise ValidationFailedError("Course name is required")
    course.name = name
    course.save()
    logger.info("Course %s renamed to %s", course.code, name)
    return course


def set_subadmins(code: str, emails: Iterable[str]) -> Course:
    """Replace the full subadmin set of a course, keeping both sides in sync."""
    return consistency.assign_course_subadmins(normalize_code(code), emails)


def set_students(code: str, emails: Iterable[str]) -> Course:
    return consistency.assign_course_students(normalize_code(code), emails)


def delete_course(code: str) -> consistency.CourseDeletionReport:
    course = require_course(code)
    course.delete()
    logger.info("Course %s deleted", course.code)
    return consistency.on_course_deleted(course.code)
