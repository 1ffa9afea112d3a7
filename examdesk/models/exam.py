from mongoengine import DateTimeField, DateField, StringField, IntField, ListField, EmbeddedDocumentField

from examdesk.models.base import BaseDocument, BaseEmbeddedDocument
from examdesk.utils.base import BaseEnum


MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 600


class ExamStatus(BaseEnum):
    SCHEDULED = "scheduled"
    STARTED = "started"
    ENDED = "ended"
    TERMINATED = "terminated"


class ExamSet(BaseEmbeddedDocument):
    """Embedded: a named variant of the exam. Name is unique within the exam."""
    name = StringField(required=True, null=False)
    description = StringField(required=True, null=False, default="")


class SetAssignment(BaseEmbeddedDocument):
    """Embedded: the set a student sits. One entry per student."""
    student_email = StringField(required=True, null=False)
    set_name = StringField(required=True, null=False)


class Exam(BaseDocument):
    """Exam document.

    Schedules a sitting against one or more courses on a civil date.

    Fields:
    - course_codes (list[str]): at least one existing course
    - exam_date (date): local civil date, no time component
    - duration_minutes (int): 15..600
    - sets (list[ExamSet])
    - student_set_assignments (list[SetAssignment])
    - status (str): scheduled/started/ended/terminated
    - started_at/ended_at (datetime|None)
    """
    course_codes = ListField(StringField(), required=True, null=False)
    exam_date = DateField(required=True, null=False)
    duration_minutes = IntField(
        required=True,
        null=False,
        min_value=MIN_DURATION_MINUTES,
        max_value=MAX_DURATION_MINUTES,
    )
    sets = ListField(EmbeddedDocumentField(ExamSet), null=False, default=list)
    student_set_assignments = ListField(EmbeddedDocumentField(SetAssignment), null=False, default=list)
    status = StringField(required=True, null=False, choices=ExamStatus.choices(), default=ExamStatus.SCHEDULED.value)

    started_at = DateTimeField(required=False, null=True)
    ended_at = DateTimeField(required=False, null=True)

    meta = {
        "collection": "exams",
        "ordering": ["exam_date", "-created_at"],
        "indexes": [
            {"fields": ["exam_date"]},
            {"fields": ["status"]},
            {"fields": ["course_codes"]},
        ],
    }
