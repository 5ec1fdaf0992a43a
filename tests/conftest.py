"""
SpaceOps - Test Infrastructure (conftest.py)
=============================================
Provides:
  - Per-test sqlite database (DB_PATH pointed at tmp_path)
  - Recording fake messaging provider
  - FastAPI TestClient with session login
  - Seed helpers for buildings, spaces, users, tasks and schedules
"""

import asyncio
import os
import sys
import json
import datetime
import pytest

# Ensure project root is on path
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, ROOT_DIR)

from app.messaging import BaseProvider, MessagePayload, ProviderResult  # noqa: E402
from app.notifications.dispatcher import NotificationDispatcher  # noqa: E402
from app.storage import Storage, format_ts, get_storage, init_database  # noqa: E402

CRON_SECRET = "test-cron-secret"

# Wednesday 2026-03-11 10:00
NOW = datetime.datetime(2026, 3, 11, 10, 0, 0)


# ============================================================================
# Fake provider
# ============================================================================

class FakeProvider(BaseProvider):
    """Records every send. Set fail / raise_error to simulate outages."""

    channel = "fake"
    display_name = "Fake"

    def _load_config(self):
        self.sms = []
        self.whatsapp = []
        self.fail = False
        self.raise_error = False

    def is_configured(self) -> bool:
        return True

    def _record(self, log, payload: MessagePayload) -> ProviderResult:
        log.append(payload)
        if self.raise_error:
            raise RuntimeError("provider exploded")
        if self.fail:
            return ProviderResult.fail("carrier rejected")
        return ProviderResult.ok(message_id=f"SM{len(log)}")

    def send_sms(self, payload: MessagePayload) -> ProviderResult:
        return self._record(self.sms, payload)

    def send_whatsapp(self, payload: MessagePayload) -> ProviderResult:
        return self._record(self.whatsapp, payload)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def test_env(tmp_path, monkeypatch):
    """Fresh database and deterministic config for every test."""
    db_path = str(tmp_path / "spaceops_test.db")
    monkeypatch.setenv("DB_PATH", db_path)
    monkeypatch.setenv("CRON_SECRET", CRON_SECRET)
    monkeypatch.setenv("SCHEDULER_ENABLED", "false")
    for key in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_FROM_NUMBER",
                "TWILIO_WHATSAPP_FROM_NUMBER", "SENTRY_DSN"):
        monkeypatch.delenv(key, raising=False)
    init_database(db_path)
    yield db_path


@pytest.fixture
def storage(test_env) -> Storage:
    return get_storage()


@pytest.fixture
def fake_provider(monkeypatch) -> FakeProvider:
    """Installs a FakeProvider as the process-wide messaging provider."""
    provider = FakeProvider()
    monkeypatch.setattr("app.messaging._provider", provider)
    monkeypatch.setattr("app.notifications.dispatcher._dispatcher", None)
    return provider


@pytest.fixture
def captured():
    """Telemetry sink: list of (error, context) tuples."""
    return []


@pytest.fixture
def dispatcher(storage, fake_provider, captured) -> NotificationDispatcher:
    return NotificationDispatcher(storage, fake_provider,
                                  capture=lambda e, ctx=None: captured.append((e, ctx)))


@pytest.fixture
def client(test_env, fake_provider):
    """FastAPI TestClient against the per-test database."""
    from starlette.testclient import TestClient
    import main
    with TestClient(main.app, raise_server_exceptions=False) as c:
        yield c


@pytest.fixture
def admin_user(storage):
    return seed_user(storage, name="Avery Admin", role="admin", phone="5551230001")


@pytest.fixture
def admin_session(client, admin_user):
    """Client authenticated as an admin."""
    login(client, admin_user)
    return client


def cron_headers(secret: str = CRON_SECRET):
    return {"Authorization": f"Bearer {secret}"}


def track_send_threads(monkeypatch, provider) -> list:
    """Record, per SMS send, whether it ran on the event loop or a worker thread."""
    seen = []
    real_send = provider.send_sms

    def send_sms(payload):
        try:
            asyncio.get_running_loop()
            seen.append("event-loop")
        except RuntimeError:
            seen.append("worker-thread")
        return real_send(payload)

    monkeypatch.setattr(provider, "send_sms", send_sms)
    return seen


def login(client, user_id: str):
    resp = client.post("/api/session/login", json={"user": user_id})
    assert resp.status_code == 200
    return resp


# ============================================================================
# Seed helpers
# ============================================================================

def seed_building(storage, name="North Tower", archived=False) -> str:
    return storage.insert("buildings", {"name": name, "archived": archived})["id"]


def seed_floor(storage, building_id, name="Level 1") -> str:
    return storage.insert("floors", {"building_id": building_id, "name": name})["id"]


def seed_space(storage, floor_id, name="Room 101", deleted_at=None) -> str:
    return storage.insert("spaces", {
        "floor_id": floor_id, "name": name, "pin_x": 10.0, "pin_y": 20.0,
        "deleted_at": deleted_at,
    })["id"]


def seed_user(storage, name="Sam Staff", role="staff", phone=None, prefs=None) -> str:
    return storage.insert("users", {
        "name": name,
        "role": role,
        "phone": phone,
        "notification_prefs": json.dumps(prefs or {}),
    })["id"]


def seed_task(storage, space_id, created_by, assigned_to=None, due_date=None,
              description="Replace ceiling tile", priority="medium", status="open") -> str:
    return storage.insert("tasks", {
        "space_id": space_id,
        "created_by": created_by,
        "assigned_to": assigned_to,
        "description": description,
        "priority": priority,
        "status": status,
        "due_date": due_date,
        "created_at": format_ts(NOW),
    })["id"]


def seed_inspection(storage, space_id, status="completed", started_at=None, completed_at=None) -> str:
    return storage.insert("inspections", {
        "space_id": space_id,
        "status": status,
        "started_at": started_at or NOW - datetime.timedelta(days=1),
        "completed_at": completed_at,
    })["id"]


def seed_deficiency(storage, space_id, status="open") -> str:
    return storage.insert("deficiencies", {"space_id": space_id, "status": status})["id"]


def seed_schedule(storage, building_id, frequency="weekly", time_of_day="09:00",
                  day_of_week=1, day_of_month=None, assigned_to=None,
                  enabled=True, next_due_at=None) -> str:
    return storage.insert("inspection_schedules", {
        "building_id": building_id,
        "frequency": frequency,
        "time_of_day": time_of_day,
        "day_of_week": day_of_week,
        "day_of_month": day_of_month,
        "assigned_to": assigned_to,
        "enabled": enabled,
        "next_due_at": next_due_at,
        "created_at": format_ts(NOW),
    })["id"]


def assign_to_building(storage, building_id, user_id) -> str:
    return storage.insert("building_assignments", {"building_id": building_id, "user_id": user_id})["id"]


def seed_site(storage, spaces=1):
    """Building with one floor and `spaces` live spaces. Returns (building_id, [space_ids])."""
    building_id = seed_building(storage)
    floor_id = seed_floor(storage, building_id)
    space_ids = [seed_space(storage, floor_id, name=f"Room {100 + i}") for i in range(spaces)]
    return building_id, space_ids


# ============================================================================
# DB helpers
# ============================================================================

def db_count(storage, table, *filters) -> int:
    return storage.count(table, filters)
