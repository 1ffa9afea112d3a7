from __future__ import annotations

import logging
import random

from examdesk.connections.mongo import init_mongo, close_mongo
from examdesk.models.course import Course
from examdesk.models.exam import Exam
from examdesk.models.user import User
from examdesk.services import course as course_service
from examdesk.services import exam as exam_service
from examdesk.services import user as user_service
from examdesk.utils.base import UserRole
from examdesk.utils.clock import Clock, get_clock


logger = logging.getLogger(__name__)

COURSE_NAMES = ["Algorithms", "Databases", "Operating Systems"]


def _ensure_courses() -> list[Course]:
    courses: list[Course] = []
    for name in COURSE_NAMES:
        course = Course.objects(name=name).first()
        if not course:
            course = course_service.create_course(name)
        courses.append(course)
    return courses


def _ensure_users(courses: list[Course]) -> list[User]:
    users: list[User] = []
    codes = [c.code for c in courses]
    for idx, code in enumerate(codes, start=1):
        users.append(user_service.create_managed_user(
            email=f"subadmin{idx}@example.com",
            name=f"Subadmin {idx}",
            role=UserRole.SUBADMIN.value,
            course_codes=[code],
        ))

    # Enrol each student in one or two random courses
    for idx in range(1, 13):
        users.append(user_service.create_managed_user(
            email=f"student{idx:02d}@example.com",
            name=f"Student {idx:02d}",
            role=UserRole.STUDENT.value,
            course_codes=random.sample(codes, k=random.randint(1, 2)),
        ))
    return users


def _ensure_exam(courses: list[Course], clock: Clock) -> Exam:
    """One exam today for the first course with sets assigned round-robin."""
    course = courses[0]
    exam = exam_service.create_exam(
        course_codes=[course.code],
        exam_date=clock.today(),
        duration_minutes=60,
        sets=[
            {"name": "Set A", "description": "Odd-numbered questions first"},
            {"name": "Set B", "description": "Even-numbered questions first"},
        ],
    )
    students = User.objects(role=UserRole.STUDENT.value, course_codes=course.code).order_by("email")
    assignments = [
        {"student_email": s.email, "set_name": "Set A" if i % 2 == 0 else "Set B"}
        for i, s in enumerate(students)
    ]
    return exam_service.assign_sets(exam.id, assignments, clock=clock)


def seed() -> None:
    init_mongo()
    try:
        Exam.drop_collection()
        Course.drop_collection()
        User.drop_collection()

        user_service.ensure_super_admin()
        courses = _ensure_courses()
        _ensure_users(courses)
        _ensure_exam(courses, get_clock())
        logger.info("Seed completed.")
    finally:
        close_mongo()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    seed()
