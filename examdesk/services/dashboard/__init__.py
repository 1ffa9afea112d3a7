from collections import Counter

from pydantic import BaseModel

from examdesk.models.course import Course
from examdesk.models.exam import ExamStatus
from examdesk.models.user import User
from examdesk.services import exam as exam_service
from examdesk.utils.base import UserRole
from examdesk.utils.clock import Clock


class DashboardSummary(BaseModel):
    """Headline counts for the superadmin dashboard."""
    total_users: int
    superadmins: int
    subadmins: int
    students: int
    courses: int
    exams_by_status: dict[str, int]


def summary(clock: Clock | None = None) -> DashboardSummary:
    by_role = {role.value: User.objects(role=role.value).count() for role in UserRole}
    # Reading exams goes through the engine so overdue exams are expired first
    statuses = Counter(exam.status for exam in exam_service.list_exams(clock))
    return DashboardSummary(
        total_users=sum(by_role.values()),
        superadmins=by_role[UserRole.SUPERADMIN.value],
        subadmins=by_role[UserRole.SUBADMIN.value],
        students=by_role[UserRole.STUDENT.value],
        courses=Course.objects.count(),
        exams_by_status={status.value: statuses.get(status.value, 0) for status in ExamStatus},
    )
