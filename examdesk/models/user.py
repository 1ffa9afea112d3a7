from mongoengine import (
    BooleanField,
    DateTimeField,
    EmailField,
    EmbeddedDocumentField,
    ListField,
    StringField,
)

from examdesk.models.base import BaseDocument, BaseEmbeddedDocument
from examdesk.utils.base import ProfileImageSource, UserProvider, UserRole


class UserPermissions(BaseEmbeddedDocument):
    """Embedded: capability flags granted to an account."""
    can_manage_courses = BooleanField(required=True, null=False, default=False)
    can_create_exam = BooleanField(required=True, null=False, default=False)
    can_check_exam = BooleanField(required=True, null=False, default=False)
    can_attempt_exam = BooleanField(required=True, null=False, default=False)
    can_view_results = BooleanField(required=True, null=False, default=False)


class User(BaseDocument):
    """User document.

    Fields:
    - email (str, unique): lowercase login identifier
    - name (str)
    - role (str): superadmin/subadmin/student
    - is_active (bool): inactive accounts cannot sign in
    - permissions (UserPermissions)
    - course_codes (list[str]): administered courses (subadmin) or enrolment (student)
    - provider (str): otp/google, last sign-in method
    - profile_image_path/profile_image_source: image already stored by the blob store
    - last_login_at (datetime|None)
    """
    email = EmailField(required=True, null=False, unique=True)
    name = StringField(required=True, null=False)
    role = StringField(required=True, null=False, choices=UserRole.choices())
    is_active = BooleanField(required=True, null=False, default=True)
    permissions = EmbeddedDocumentField(UserPermissions, required=True, null=False, default=UserPermissions)
    course_codes = ListField(StringField(), null=False, default=list)
    provider = StringField(required=True, null=False, choices=UserProvider.choices(), default=UserProvider.GOOGLE.value)

    profile_image_path = StringField(required=False, null=True)
    profile_image_source = StringField(required=False, null=True, choices=ProfileImageSource.choices())
    last_login_at = DateTimeField(required=False, null=True)

    meta = {
        "collection": "users",
        "indexes": [
            {"fields": ["email"], "unique": True},
            {"fields": ["role"]},
            {"fields": ["course_codes"]},
        ],
    }
