import logging
from datetime import date

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field

from examdesk.models.exam import MAX_DURATION_MINUTES, MIN_DURATION_MINUTES
from examdesk.services import exam as exam_service
from examdesk.services.auth import require_superadmin
from examdesk.services.rate_limit import limit_route
from examdesk.utils.base import ServiceError
from examdesk.utils.clock import Clock, get_clock
from examdesk.utils.config import settings


logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_superadmin)])

transition_limit = Depends(limit_route(settings.transition_rate_limit_seconds))


class ExamSetBody(BaseModel):
    name: str = Field(min_length=1)
    description: str = Field(min_length=1)


class ExamBody(BaseModel):
    course_codes: list[str] = Field(min_length=1)
    exam_date: date
    duration_minutes: int = Field(ge=MIN_DURATION_MINUTES, le=MAX_DURATION_MINUTES)
    sets: list[ExamSetBody] = Field(min_length=1)


class AssignmentBody(BaseModel):
    student_email: EmailStr
    set_name: str = Field(min_length=1)


class AssignSetsBody(BaseModel):
    assignments: list[AssignmentBody]


def _fail(exc: ServiceError):
    logger.warning("Exam request refused: %s (%s)", exc.message, exc.error_code)
    return exc.to_http()


@router.get("")
def list_exams(clock: Clock = Depends(get_clock)) -> list[dict]:
    """SUPERADMIN: List every exam, ending those whose duration has run out."""
    return [exam.to_dict() for exam in exam_service.list_exams(clock)]


@router.post("")
def create_exam(body: ExamBody) -> dict:
    """SUPERADMIN: Schedule an exam against one or more courses."""
    try:
        exam = exam_service.create_exam(
            course_codes=body.course_codes,
            exam_date=body.exam_date,
            duration_minutes=body.duration_minutes,
            sets=[s.model_dump() for s in body.sets],
        )
    except ServiceError as exc:
        raise _fail(exc) from exc
    return exam.to_dict()


@router.get("/{exam_id}")
def get_exam(exam_id: str, clock: Clock = Depends(get_clock)) -> dict:
    """SUPERADMIN: Fetch one exam."""
    try:
        return exam_service.get_exam(exam_id, clock).to_dict()
    except ServiceError as exc:
        raise _fail(exc) from exc


@router.put("/{exam_id}")
def update_exam(exam_id: str, body: ExamBody, clock: Clock = Depends(get_clock)) -> dict:
    """SUPERADMIN: Replace schedule and sets; assignments to removed sets are dropped."""
    try:
        exam = exam_service.update_exam(
            exam_id,
            course_codes=body.course_codes,
            exam_date=body.exam_date,
            duration_minutes=body.duration_minutes,
            sets=[s.model_dump() for s in body.sets],
            clock=clock,
        )
    except ServiceError as exc:
        raise _fail(exc) from exc
    return exam.to_dict()


@router.put("/{exam_id}/assignments", dependencies=[transition_limit])
def assign_sets(exam_id: str, body: AssignSetsBody, clock: Clock = Depends(get_clock)) -> dict:
    """SUPERADMIN | RATE-LIMITED: Replace the student-to-set assignments, all or nothing."""
    try:
        exam = exam_service.assign_sets(
            exam_id,
            [a.model_dump() for a in body.assignments],
            clock=clock,
        )
    except ServiceError as exc:
        raise _fail(exc) from exc
    return exam.to_dict()


@router.post("/{exam_id}/start", dependencies=[transition_limit])
def start_exam(exam_id: str, clock: Clock = Depends(get_clock)) -> dict:
    """SUPERADMIN | RATE-LIMITED: Start a scheduled exam on its date inside the daily window."""
    try:
        return exam_service.start_exam(exam_id, clock).to_dict()
    except ServiceError as exc:
        raise _fail(exc) from exc


@router.post("/{exam_id}/terminate", dependencies=[transition_limit])
def terminate_exam(exam_id: str, clock: Clock = Depends(get_clock)) -> dict:
    """SUPERADMIN | RATE-LIMITED: Stop a started exam immediately."""
    try:
        return exam_service.terminate_exam(exam_id, clock).to_dict()
    except ServiceError as exc:
        raise _fail(exc) from exc


@router.delete("/{exam_id}")
def delete_exam(exam_id: str) -> dict:
    """SUPERADMIN: Delete an exam in any state, assignments included."""
    try:
        exam_service.delete_exam(exam_id)
    except ServiceError as exc:
        raise _fail(exc) from exc
    return {"status": True}
