from mongoengine import StringField, ListField

from examdesk.models.base import BaseDocument


class Course(BaseDocument):
    """Course document.

    Fields:
    - code (str, unique): canonical uppercase code, the join key for users and exams
    - name (str)
    - subadmin_emails (list[str]): lowercase emails of the subadmins administering it
    """
    code = StringField(required=True, null=False, unique=True)
    name = StringField(required=True, null=False)
    subadmin_emails = ListField(StringField(), null=False, default=list)

    meta = {
        "collection": "courses",
        "indexes": [
            {"fields": ["code"], "unique": True},
        ],
    }
