"""Cross-document consistency rules for courses, users and exams.

`User.course_codes` and `Course.subadmin_emails` are two stored views of
the same subadmin/course relation. Every write that touches either side
goes through this module, which updates the other side with atomic
`$addToSet` / `$pull` sweeps. Sweeps span many documents and are not
atomic as a whole; readers may briefly see a stale reference.
"""
from __future__ import annotations

import logging
from typing import Iterable

from pydantic import BaseModel

from examdesk.models.course import Course
from examdesk.models.exam import Exam
from examdesk.models.user import User
from examdesk.utils.base import NotFoundError, UserRole, ValidationFailedError
from examdesk.utils.config import settings


logger = logging.getLogger(__name__)


class CourseDeletionReport(BaseModel):
    """Outcome of the cascade that follows a course deletion."""
    code: str
    users_updated: int = 0
    exams_updated: int = 0
    exams_left_unchanged: list[str] = []


def _unique_emails(emails: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for email in emails:
        email = (email or "").strip().lower()
        if email:
            seen.setdefault(email, None)
    return list(seen)


def _require_course(code: str) -> Course:
    course = Course.objects(code=code).first()
    if not course:
        raise NotFoundError(f"Course not found: {code}")
    return course


def _require_role(emails: list[str], role: UserRole) -> None:
    if not emails:
        return
    matched = set(User.objects(email__in=emails, role=role.value).scalar("email"))
    invalid = [email for email in emails if email not in matched]
    if invalid:
        raise ValidationFailedError(f"Not a {role.value}: {', '.join(invalid)}")


def on_course_deleted(code: str) -> CourseDeletionReport:
    """Retract a deleted course from every user, and from exams when enabled."""
    report = CourseDeletionReport(code=code)
    report.users_updated = User.objects(
        course_codes=code,
        role__ne=UserRole.SUPERADMIN.value,
    ).update(pull__course_codes=code) or 0

    if settings.cascade_course_delete_to_exams:
        _retract_course_from_exams(code, report)

    logger.info(
        "Course %s cascade: %s users, %s exams updated",
        code,
        report.users_updated,
        report.exams_updated,
    )
    return report


def _retract_course_from_exams(code: str, report: CourseDeletionReport) -> None:
    for exam in Exam.objects(course_codes=code):
        remaining = [c for c in exam.course_codes if c != code]
        if not remaining:
            # An exam must keep at least one course; leave it for an administrator.
            report.exams_left_unchanged.append(str(exam.id))
            logger.warning("Exam %s only referenced deleted course %s", exam.id, code)
            continue

        assigned = [a.student_email for a in exam.student_set_assignments]
        still_enrolled = set(
            User.objects(
                role=UserRole.STUDENT.value,
                email__in=assigned,
                course_codes__in=remaining,
            ).scalar("email")
        )
        exam.course_codes = remaining
        exam.student_set_assignments = [
            a for a in exam.student_set_assignments if a.student_email in still_enrolled
        ]
        exam.save()
        report.exams_updated += 1


def sync_subadmin_courses(email: str, course_codes: Iterable[str]) -> None:
    """Make every course's subadmin list agree with one subadmin's course codes."""
    email = email.lower()
    codes = list(dict.fromkeys(course_codes))
    if codes:
        Course.objects(code__in=codes).update(add_to_set__subadmin_emails=email)
    Course.objects(code__nin=codes, subadmin_emails=email).update(pull__subadmin_emails=email)


def assign_course_subadmins(code: str, emails: Iterable[str]) -> Course:
    """Replace a course's subadmins and mirror the change onto each subadmin."""
    course = _require_course(code)
    emails = _unique_emails(emails)
    _require_role(emails, UserRole.SUBADMIN)

    course.subadmin_emails = emails
    course.save()

    role = UserRole.SUBADMIN.value
    if emails:
        User.objects(role=role, email__in=emails).update(add_to_set__course_codes=code)
    User.objects(role=role, email__nin=emails, course_codes=code).update(pull__course_codes=code)
    logger.info("Course %s subadmins set to %s", code, emails)
    return course


def assign_course_students(code: str, emails: Iterable[str]) -> Course:
    """Replace the student roster of a course."""
    course = _require_course(code)
    emails = _unique_emails(emails)
    _require_role(emails, UserRole.STUDENT)

    role = UserRole.STUDENT.value
    if emails:
        User.objects(role=role, email__in=emails).update(add_to_set__course_codes=code)
    User.objects(role=role, email__nin=emails, course_codes=code).update(pull__course_codes=code)
    logger.info("Course %s roster set to %s students", code, len(emails))
    return course
