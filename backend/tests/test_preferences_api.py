from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.deps import get_db
from app.db.models.preferences import Preferences
from app.db.models.user import User
from app.main import app

HEADERS = {"X-User-Id": "user-prefs"}

VALID_PREFS = {
    "wakeTime": "07:00",
    "sleepTime": "23:00",
    "peakFocus": "morning",
    "city": "Lisbon",
    "breakStyle": "pomodoro",
    "breakInterval": 25,
    "maxWorkHours": 8,
    "commuteMode": "bike",
}


@pytest.fixture()
def client():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):  # pragma: no cover - sqlite setup
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    User.__table__.create(bind=engine)
    Preferences.__table__.create(bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client, TestingSessionLocal
    app.dependency_overrides.clear()


def test_preferences_absent_by_default(client) -> None:
    test_client, _ = client
    resp = test_client.get("/api/preferences", headers=HEADERS)
    assert resp.status_code == 200
    assert resp.json() == {"preferences": None, "message": "No preferences found"}


def test_save_then_read_preferences(client) -> None:
    test_client, SessionLocal = client

    resp = test_client.post("/api/preferences", json=VALID_PREFS, headers=HEADERS)
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "message": "Preferences saved successfully"}

    read = test_client.get("/api/preferences", headers=HEADERS).json()["preferences"]
    assert read == VALID_PREFS

    with SessionLocal() as db:
        stored = db.get(Preferences, "user-prefs")
        assert stored.break_interval_minutes == 25


def test_save_preferences_upserts_single_row(client) -> None:
    test_client, SessionLocal = client
    test_client.post("/api/preferences", json=VALID_PREFS, headers=HEADERS)

    updated = {**VALID_PREFS, "city": "Porto", "peakFocus": "evening"}
    resp = test_client.post("/api/preferences", json=updated, headers=HEADERS)

    assert resp.status_code == 200
    read = test_client.get("/api/preferences", headers=HEADERS).json()["preferences"]
    assert read["city"] == "Porto"
    assert read["peakFocus"] == "evening"
    with SessionLocal() as db:
        assert db.query(Preferences).count() == 1


@pytest.mark.parametrize(
    "override, message",
    [
        ({"city": ""}, "All preference fields are required"),
        ({"wakeTime": None}, "All preference fields are required"),
        ({"commuteMode": "teleport"}, "commuteMode: Invalid commute mode. Must be one of: none, walk, bike, public, car"),
        ({"peakFocus": "night"}, "peakFocus: Invalid peak focus. Must be one of: morning, afternoon, evening"),
        ({"wakeTime": "7am"}, "wakeTime: Wake time must be in HH:MM format"),
        ({"sleepTime": "24:30"}, "sleepTime: Sleep time must be in HH:MM format"),
        ({"breakInterval": 0}, "breakInterval: Break interval must be a positive number"),
        ({"maxWorkHours": 25}, "maxWorkHours: Max work hours must be between 1 and 24"),
        ({"maxWorkHours": 0}, "maxWorkHours: Max work hours must be between 1 and 24"),
    ],
)
def test_preferences_validation(client, override, message) -> None:
    test_client, SessionLocal = client

    resp = test_client.post("/api/preferences", json={**VALID_PREFS, **override}, headers=HEADERS)

    assert resp.status_code == 400
    assert resp.json() == {"error": message}
    with SessionLocal() as db:
        assert db.get(Preferences, "user-prefs") is None


def test_missing_field_is_rejected(client) -> None:
    test_client, _ = client
    body = dict(VALID_PREFS)
    body.pop("breakStyle")

    resp = test_client.post("/api/preferences", json=body, headers=HEADERS)

    assert resp.status_code == 400
    assert resp.json() == {"error": "All preference fields are required"}
