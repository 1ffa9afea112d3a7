"""Exam Lifecycle Engine.

State machine::

    scheduled --start()--> started --(duration elapses, on read)--> ended
                                   --terminate()-------------------> terminated

`delete_exam` removes an exam in any state. Expiry is lazy: every read
of an exam applies `apply_expiry` before the exam is returned, and the
recorded `ended_at` is the planned end (`started_at + duration`), not
the moment the expiry was observed.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Mapping

from bson.objectid import ObjectId
from pymongo import UpdateOne

from examdesk.models.exam import (
    MAX_DURATION_MINUTES,
    MIN_DURATION_MINUTES,
    Exam,
    ExamSet,
    ExamStatus,
    SetAssignment,
)
from examdesk.models.user import User
from examdesk.services.course import missing_course_codes, normalize_code
from examdesk.utils.base import (
    ConflictError,
    NotFoundError,
    PreconditionFailedError,
    UserRole,
    ValidationFailedError,
)
from examdesk.utils.clock import Clock, as_utc, get_clock
from examdesk.utils.config import settings


logger = logging.getLogger(__name__)


# ----------------------------- Input normalization ----------------------------- #

def normalize_course_codes(course_codes: Iterable[str]) -> list[str]:
    codes = list(dict.fromkeys(normalize_code(code) for code in course_codes if code and code.strip()))
    if not codes:
        raise ValidationFailedError("At least one course is required")
    return codes


def _set_field(item: Any, name: str) -> str:
    if isinstance(item, Mapping):
        return str(item.get(name) or "")
    return str(getattr(item, name, "") or "")


def normalize_sets(sets: Iterable[Any]) -> list[ExamSet]:
    """Trim, drop unnamed sets and keep the first set for each name."""
    unique: dict[str, ExamSet] = {}
    for item in sets:
        name = _set_field(item, "name").strip()
        if not name or name in unique:
            continue
        unique[name] = ExamSet(name=name, description=_set_field(item, "description").strip())

    if not unique:
        raise ValidationFailedError("At least one set is required")
    undescribed = [name for name, exam_set in unique.items() if not exam_set.description]
    if undescribed:
        raise ValidationFailedError(f"Set description is required: {', '.join(undescribed)}")
    return list(unique.values())


def _validate_schedule(exam_date: date, duration_minutes: int) -> None:
    if not isinstance(exam_date, date):
        raise ValidationFailedError("exam_date must be a calendar date")
    if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int):
        raise ValidationFailedError("duration_minutes must be an integer")
    if not MIN_DURATION_MINUTES <= duration_minutes <= MAX_DURATION_MINUTES:
        raise ValidationFailedError(
            f"duration_minutes must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES}"
        )


def _require_courses(codes: list[str]) -> None:
    missing = missing_course_codes(codes)
    if missing:
        raise NotFoundError(f"Courses not found: {', '.join(missing)}")


def _normalize_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


# ----------------------------- Legacy shapes ----------------------------- #

def legacy_update_for(doc: dict) -> dict | None:
    """Update that rewrites a raw exam document into the canonical shape, if needed.

    Older documents carry a single `course_code` string and/or bare
    string entries in `sets`.
    """
    update: dict[str, dict] = {}
    legacy_code = doc.get("course_code")
    if "course_code" in doc:
        if not doc.get("course_codes") and legacy_code:
            update.setdefault("$set", {})["course_codes"] = [str(legacy_code).upper()]
        update["$unset"] = {"course_code": ""}

    raw_sets = doc.get("sets") or []
    if any(isinstance(item, str) for item in raw_sets):
        update.setdefault("$set", {})["sets"] = [
            {"name": item, "description": ""} if isinstance(item, str) else item
            for item in raw_sets
        ]
    return update or None


def normalize_legacy_exams(exam_id: ObjectId | None = None) -> int:
    """Rewrite legacy exam documents in place, returning how many were changed."""
    coll = Exam._get_collection()
    query: dict[str, Any] = {"_id": exam_id} if exam_id is not None else {}
    ops: list[UpdateOne] = []
    for doc in coll.find(query, {"course_code": 1, "course_codes": 1, "sets": 1}):
        update = legacy_update_for(doc)
        if update:
            ops.append(UpdateOne({"_id": doc["_id"]}, update))
    if ops:
        coll.bulk_write(ops, ordered=False)
        logger.info("Normalized %s legacy exam documents", len(ops))
    return len(ops)


# ----------------------------- Lazy expiry ----------------------------- #

def planned_end(exam: Exam) -> datetime | None:
    if not exam.started_at:
        return None
    return as_utc(exam.started_at) + timedelta(minutes=exam.duration_minutes)


def expiry_for(exam: Exam, now: datetime) -> datetime | None:
    """Planned end if a started exam has run out its duration at `now`, else None."""
    if exam.status != ExamStatus.STARTED.value:
        return None
    end = planned_end(exam)
    if end is None or now < end:
        return None
    return end


def apply_expiry(exam: Exam, now: datetime) -> Exam:
    """Persist the started -> ended transition when it is due."""
    end = expiry_for(exam, now)
    if end is None:
        return exam

    # Guarded on status so a concurrent terminate is never overwritten
    updated = Exam.objects(id=exam.id, status=ExamStatus.STARTED.value).update_one(
        set__status=ExamStatus.ENDED.value,
        set__ended_at=end,
        set__updated_at=now,
    )
    if updated:
        logger.info("Exam %s auto-ended at %s", exam.id, end.isoformat())
        exam.status = ExamStatus.ENDED.value
        exam.ended_at = end
    else:
        exam.reload()
    return exam


# ----------------------------- Reads ----------------------------- #

def _object_id(exam_id: str | ObjectId) -> ObjectId:
    if isinstance(exam_id, ObjectId):
        return exam_id
    if not ObjectId.is_valid(str(exam_id)):
        raise NotFoundError(f"Exam not found: {exam_id}")
    return ObjectId(str(exam_id))


def list_exams(clock: Clock | None = None) -> list[Exam]:
    clock = clock or get_clock()
    normalize_legacy_exams()
    now = clock.now()
    return [apply_expiry(exam, now) for exam in Exam.objects.order_by("exam_date", "-created_at")]


def get_exam(exam_id: str | ObjectId, clock: Clock | None = None) -> Exam:
    clock = clock or get_clock()
    oid = _object_id(exam_id)
    normalize_legacy_exams(oid)
    exam: Exam | None = Exam.objects(id=oid).first()
    if not exam:
        raise NotFoundError(f"Exam not found: {exam_id}")
    return apply_expiry(exam, clock.now())


# ----------------------------- Writes ----------------------------- #

def create_exam(
    course_codes: Iterable[str],
    exam_date: date,
    duration_minutes: int,
    sets: Iterable[Any],
) -> Exam:
    codes = normalize_course_codes(course_codes)
    exam_date = _normalize_date(exam_date)
    _validate_schedule(exam_date, duration_minutes)
    exam_sets = normalize_sets(sets)
    _require_courses(codes)

    exam = Exam(
        course_codes=codes,
        exam_date=exam_date,
        duration_minutes=duration_minutes,
        sets=exam_sets,
        student_set_assignments=[],
        status=ExamStatus.SCHEDULED.value,
    )
    exam.save()
    logger.info("Exam %s scheduled on %s for %s", exam.id, exam_date.isoformat(), codes)
    return exam


def update_exam(
    exam_id: str | ObjectId,
    course_codes: Iterable[str],
    exam_date: date,
    duration_minutes: int,
    sets: Iterable[Any],
    clock: Clock | None = None,
) -> Exam:
    """Replace schedule and sets wholesale.

    Assignments that reference a set name that no longer exists are
    dropped silently. Status is not consulted.
    """
    exam = get_exam(exam_id, clock)
    codes = normalize_course_codes(course_codes)
    exam_date = _normalize_date(exam_date)
    _validate_schedule(exam_date, duration_minutes)
    exam_sets = normalize_sets(sets)
    _require_courses(codes)

    set_names = {exam_set.name for exam_set in exam_sets}
    kept = [a for a in exam.student_set_assignments if a.set_name in set_names]
    pruned = len(exam.student_set_assignments) - len(kept)

    exam.course_codes = codes
    exam.exam_date = exam_date
    exam.duration_minutes = duration_minutes
    exam.sets = exam_sets
    exam.student_set_assignments = kept
    exam.save()
    logger.info("Exam %s updated (%s assignments pruned)", exam.id, pruned)
    return exam


def _assignment_field(item: Any, name: str) -> str:
    if isinstance(item, Mapping):
        return str(item.get(name) or "")
    return str(getattr(item, name, "") or "")


def assign_sets(
    exam_id: str | ObjectId,
    assignments: Iterable[Any],
    clock: Clock | None = None,
) -> Exam:
    """Replace the exam's student-set assignments, all or nothing.

    Checks, in order: no student twice, every set exists, every student
    is an active student enrolled in one of the exam's courses.
    """
    exam = get_exam(exam_id, clock)
    set_names = {exam_set.name for exam_set in exam.sets}

    normalized: list[SetAssignment] = []
    seen: set[str] = set()
    for item in assignments:
        email = _assignment_field(item, "student_email").strip().lower()
        set_name = _assignment_field(item, "set_name")
        if email in seen:
            raise ValidationFailedError(f"Each student can be assigned only one set: {email}")
        if set_name not in set_names:
            raise ValidationFailedError(f"Invalid set for {email}: {set_name}")
        seen.add(email)
        normalized.append(SetAssignment(student_email=email, set_name=set_name))

    emails = [a.student_email for a in normalized]
    if emails:
        enrolled = set(
            User.objects(
                role=UserRole.STUDENT.value,
                is_active=True,
                email__in=emails,
                course_codes__in=list(exam.course_codes),
            ).scalar("email")
        )
        if len(enrolled) != len(emails):
            rejected = [email for email in emails if email not in enrolled]
            raise ValidationFailedError(
                f"Only active students enrolled in the exam's courses can be assigned: {', '.join(rejected)}"
            )

    # Only write if every set referenced is still defined on the exam
    query: dict[str, Any] = {"id": exam.id}
    used_sets = sorted({a.set_name for a in normalized})
    if used_sets:
        query["sets__name__all"] = used_sets
    now = (clock or get_clock()).now()
    updated = Exam.objects(**query).update_one(
        set__student_set_assignments=normalized,
        set__updated_at=now,
    )
    if not updated:
        raise ConflictError(f"Exam {exam.id} changed while assigning sets; retry")

    exam.student_set_assignments = normalized
    exam.updated_at = now
    logger.info("Exam %s assignments replaced (%s students)", exam.id, len(normalized))
    return exam


def start_exam(exam_id: str | ObjectId, clock: Clock | None = None) -> Exam:
    clock = clock or get_clock()
    exam = get_exam(exam_id, clock)
    now = clock.now()

    if _normalize_date(exam.exam_date) != now.date():
        raise PreconditionFailedError(
            "Exam can only be started on the scheduled date",
            reason="EXAM_NOT_ON_SCHEDULED_DATE",
        )
    start_hour, end_hour = settings.exam_window_start_hour, settings.exam_window_end_hour
    if not start_hour <= now.hour < end_hour:
        raise PreconditionFailedError(
            f"Exam can only be started between {start_hour}:00 and {end_hour}:00",
            reason="OUTSIDE_START_WINDOW",
        )
    if exam.status != ExamStatus.SCHEDULED.value:
        raise PreconditionFailedError("Only scheduled exams can be started", reason="EXAM_NOT_SCHEDULED")

    updated = Exam.objects(id=exam.id, status=ExamStatus.SCHEDULED.value).update_one(
        set__status=ExamStatus.STARTED.value,
        set__started_at=now,
        set__updated_at=now,
    )
    if not updated:
        raise PreconditionFailedError("Only scheduled exams can be started", reason="EXAM_NOT_SCHEDULED")

    exam.status = ExamStatus.STARTED.value
    exam.started_at = now
    logger.info("Exam %s started at %s", exam.id, now.isoformat())
    return exam


def terminate_exam(exam_id: str | ObjectId, clock: Clock | None = None) -> Exam:
    """Stop a running exam now. `ended_at` is the actual termination instant."""
    clock = clock or get_clock()
    exam = get_exam(exam_id, clock)
    if exam.status != ExamStatus.STARTED.value:
        raise PreconditionFailedError("Only started exams can be terminated", reason="EXAM_NOT_STARTED")

    now = clock.now()
    updated = Exam.objects(id=exam.id, status=ExamStatus.STARTED.value).update_one(
        set__status=ExamStatus.TERMINATED.value,
        set__ended_at=now,
        set__updated_at=now,
    )
    if not updated:
        raise PreconditionFailedError("Only started exams can be terminated", reason="EXAM_NOT_STARTED")

    exam.status = ExamStatus.TERMINATED.value
    exam.ended_at = now
    logger.info("Exam %s terminated at %s", exam.id, now.isoformat())
    return exam


def delete_exam(exam_id: str | ObjectId) -> None:
    oid = _object_id(exam_id)
    deleted = Exam.objects(id=oid).delete()
    if not deleted:
        raise NotFoundError(f"Exam not found: {exam_id}")
    logger.info("Exam %s deleted", oid)
