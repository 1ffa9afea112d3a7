"""
Shared fixtures: in-memory MongoDB, a pinned exam clock and seed helpers.
"""

from datetime import date, datetime, timezone
from unittest.mock import MagicMock, patch

import mongomock
import pytest
from mongoengine import connect, disconnect

from examdesk.services import course as course_service
from examdesk.services import exam as exam_service
from examdesk.services import user as user_service
from examdesk.utils.clock import FixedClock

TEST_DB = "examdesk_test"
EXAM_DAY = date(2026, 3, 10)


@pytest.fixture(autouse=True)
def mongo():
    """Connect mongoengine to a fresh mongomock database for every test."""
    conn = connect(
        TEST_DB,
        host="mongodb://localhost",
        alias="default",
        mongo_client_class=mongomock.MongoClient,
        tz_aware=True,
    )
    yield conn
    conn.drop_database(TEST_DB)
    disconnect(alias="default")


@pytest.fixture
def clock():
    """Clock pinned to 10:00 UTC on the exam day; tests move `instant` as needed."""
    return FixedClock(datetime(2026, 3, 10, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def mock_redis():
    """Redis stand-in that remembers cooldown keys and their expiry."""
    keys = {}

    def _set(name, value, nx=False, ex=None):
        if nx and name in keys:
            return None
        keys[name] = ex
        return True

    redis = MagicMock()
    redis.keys_store = keys
    redis.set = MagicMock(side_effect=_set)
    redis.ttl = MagicMock(side_effect=lambda name: keys.get(name, -2))
    redis.delete = MagicMock(side_effect=lambda name: int(keys.pop(name, None) is not None))
    with patch("examdesk.services.rate_limit.get_redis", return_value=redis):
        yield redis


@pytest.fixture
def superadmin():
    return user_service.ensure_super_admin()


@pytest.fixture
def course():
    return course_service.create_course("Algorithms")


@pytest.fixture
def other_course():
    return course_service.create_course("Databases")


@pytest.fixture
def student(course):
    return user_service.create_managed_user(
        email="alice@example.com",
        name="Alice",
        role="student",
        course_codes=[course.code],
    )


@pytest.fixture
def second_student(course):
    return user_service.create_managed_user(
        email="bob@example.com",
        name="Bob",
        role="student",
        course_codes=[course.code],
    )


@pytest.fixture
def outsider(other_course):
    """Student enrolled only in a course the exam does not cover."""
    return user_service.create_managed_user(
        email="carol@example.com",
        name="Carol",
        role="student",
        course_codes=[other_course.code],
    )


@pytest.fixture
def subadmin(course):
    return user_service.create_managed_user(
        email="sam@example.com",
        name="Sam",
        role="subadmin",
        course_codes=[course.code],
    )


@pytest.fixture
def exam(course):
    return exam_service.create_exam(
        course_codes=[course.code],
        exam_date=EXAM_DAY,
        duration_minutes=60,
        sets=[
            {"name": "A", "description": "first"},
            {"name": "B", "description": "second"},
            {"name": "C", "description": "third"},
        ],
    )
