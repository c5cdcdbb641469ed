import threading
import time
from datetime import timedelta

import mongomock
import pytest
from fastapi.testclient import TestClient

import config
import slots
from database import ensure_indexes
from schemas import CoachPrice, CoachProfile, Facility, Requester, TimeSlot


@pytest.fixture
def db():
    """Fresh in-memory database with the production indexes."""
    database = mongomock.MongoClient()["sports_booking_test"]
    ensure_indexes(database)
    yield database


@pytest.fixture
def today():
    return slots.today()


@pytest.fixture
def requester():
    return Requester(user_id="user-1", user_name="Nimal", user_email="nimal@example.com", user_phone="0771234567")


@pytest.fixture
def court(db):
    from catalog import create_facility

    return create_facility(
        db,
        Facility(court_number="C1", sport_name="Tennis", sport_category="Outdoor", court_price=1500, image="https://img/c1.png"),
    )


@pytest.fixture
def coach(db, today):
    from coaching import create_coach_profile

    profile = CoachProfile(
        user_id="coach-user-1",
        coach_name="Kamal Perera",
        coach_email="kamal@example.com",
        coach_level="Professional Level",
        coaching_sport="Tennis",
        coach_price=CoachPrice(individual_session_price=3000, group_session_price=2000),
        available_time_slots=[
            TimeSlot(date=today + timedelta(days=2), time_slot="10:00 - 11:00"),
            TimeSlot(date=today + timedelta(days=3), time_slot="14:00 - 15:00"),
        ],
        experience="10 years",
        offer_sessions=["Individual Session", "Group Session"],
        session_description="Footwork and serve",
    )
    return create_coach_profile(db, profile, today_date=today)


@pytest.fixture
def client(db):
    """Test client whose routes use the in-memory database."""
    import main

    main.app.dependency_overrides[main.get_database] = lambda: db
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def atomic_inserts(monkeypatch):
    """Serialize inserts for threaded tests.

    mongomock checks unique keys and stores the document in two steps, a
    server does both at once.
    """
    import coaching
    import database
    import facility_booking

    lock = threading.Lock()
    insert = database.create_document

    def locked_insert(*args, **kwargs):
        try:
            with lock:
                return insert(*args, **kwargs)
        finally:
            # let the other writers in between two claims
            time.sleep(0.001)

    monkeypatch.setattr(coaching, "create_document", locked_insert)
    monkeypatch.setattr(facility_booking, "create_document", locked_insert)
    monkeypatch.setattr(config, "CLAIM_ATTEMPTS", 50)
    monkeypatch.setattr(config, "CLAIM_RETRY_DELAY", 0.001)
