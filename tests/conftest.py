"""
Pytest configuration and fixtures for Club Portal tests
"""

import os
import datetime

import pytest

# configuration is read at import time, so it has to be in place first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["API_SECRET_KEY"] = "test-api-key"
os.environ.pop("REVALIDATION_TOKEN", None)

from fastapi.testclient import TestClient  # noqa: E402

from clubportal import database, models, utils  # noqa: E402
from clubportal.models import EventStatus, MembershipRole, UserRole  # noqa: E402

API_KEY = "test-api-key"


@pytest.fixture(scope="session")
def password_hash():
    """Argon2 is slow, hash the shared test password once"""
    return utils.hash_password("password123")


@pytest.fixture(scope="function")
def db():
    """Fresh schema for every test"""
    models.Base.metadata.drop_all(bind=database.engine)
    models.Base.metadata.create_all(bind=database.engine)
    session = database.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db, password_hash):
    counter = {"n": 0}

    def _make(role=UserRole.STUDENT, name=None, is_active=True):
        counter["n"] += 1
        n = counter["n"]
        user = models.User(
            email=f"{role.value}{n}@uni.edu",
            hashed_password=password_hash,
            name=name or f"{role.value.title()} {n}",
            role=role,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def student(make_user):
    return make_user(UserRole.STUDENT, name="Student X")


@pytest.fixture
def other_student(make_user):
    return make_user(UserRole.STUDENT, name="Student Y")


@pytest.fixture
def teacher(make_user):
    return make_user(UserRole.TEACHER, name="Coordinating Teacher")


@pytest.fixture
def outside_teacher(make_user):
    """A teacher with no authority over the test club"""
    return make_user(UserRole.TEACHER, name="Outside Teacher")


@pytest.fixture
def admin(make_user):
    return make_user(UserRole.ADMIN, name="Admin")


@pytest.fixture
def make_club(db, teacher):
    counter = {"n": 0}

    def _make(coordinator=None, is_active=True, members=()):
        counter["n"] += 1
        club = models.Club(
            name=f"Test Club {counter['n']}",
            slug=f"test-club-{counter['n']}",
            description="A club used in tests.",
            category=models.ClubCategory.TECHNICAL,
            coordinator_id=(coordinator or teacher).id,
            is_active=is_active,
        )
        for user, role in members:
            club.members.append(models.ClubMembership(user_id=user.id, role=role))
        db.add(club)
        db.commit()
        db.refresh(club)
        return club

    return _make


@pytest.fixture
def club(make_club):
    return make_club()


@pytest.fixture
def make_event(db, club):
    def _make(target_club=None, max_participants=0, status=EventStatus.UPCOMING, deadline=None):
        now = models.utcnow()
        deadline = deadline or now + datetime.timedelta(days=1)
        event = models.Event(
            slug="test-event",
            title="Test Event",
            description="An event used in tests.",
            club_id=(target_club or club).id,
            event_date=(deadline + datetime.timedelta(days=1)).date(),
            start_time="10:00",
            end_time="12:00",
            venue="Room 101",
            max_participants=max_participants,
            registration_deadline=deadline,
            status=status,
        )
        db.add(event)
        db.commit()
        db.refresh(event)
        return event

    return _make


@pytest.fixture
def event(make_event):
    return make_event()


@pytest.fixture
def set_status(db):
    """Move an event straight to a status, bypassing the transition rules"""
    def _set(event, status):
        event.status = status
        db.commit()
        db.refresh(event)
        return event

    return _set


@pytest.fixture
def client(db):
    from clubportal import main

    def override_get_db():
        yield db

    main.api.dependency_overrides[database.get_db] = override_get_db
    main.limiter.enabled = False
    try:
        yield TestClient(main.api)
    finally:
        main.api.dependency_overrides.clear()
        main.limiter.enabled = True


@pytest.fixture
def auth_headers():
    def _headers(user=None):
        headers = {"X-API-Key": API_KEY}
        if user is not None:
            token = utils.create_access_token(data={"sub": user.id})
            headers["Authorization"] = f"Bearer {token}"
        return headers

    return _headers


@pytest.fixture
def leader_club(make_club, teacher, student):
    """Club where ``student`` holds a leader row"""
    return make_club(members=[(student, MembershipRole.LEADER)])
