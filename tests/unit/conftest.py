from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from app import create_app
from extensions import db
from models import Claim

OWNER = "owner@example.com"
ADMIN = "admin@example.com"
EDITOR = "editor@example.com"
PASSWORD = "correct horse battery"


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class ManualTimer:
    def __init__(self, delay, callback) -> None:
        self.delay = delay
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True


class ManualTimers:
    """Timer factory that only fires when the test says so."""

    def __init__(self) -> None:
        self.created = []

    def __call__(self, delay, callback) -> ManualTimer:
        timer = ManualTimer(delay, callback)
        self.created.append(timer)
        return timer

    def pending(self):
        return [timer for timer in self.created if timer.started and not timer.cancelled]

    def fire_pending(self) -> int:
        fired = 0
        for timer in self.pending():
            timer.cancelled = True
            timer.callback()
            fired += 1
        return fired


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 1, 15, 15, 0, tzinfo=timezone.utc))


@pytest.fixture
def timers() -> ManualTimers:
    return ManualTimers()


@pytest.fixture
def app(tmp_path: Path, clock: FakeClock, timers: ManualTimers):
    flask_app = create_app(
        {
            "TESTING": True,
            "USE_SUPABASE": False,
            "SECRET_KEY": "test-secret",
            "SQLALCHEMY_DATABASE_URI": "sqlite://",
            "DATA_DIR": tmp_path / "data",
            "UPLOAD_FOLDER": tmp_path / "uploads",
            "ADMIN_EMAILS": f"{OWNER},{ADMIN},{EDITOR}",
            "ADMIN_DASHBOARD_PASSWORD": PASSWORD,
            "ADMIN_DASHBOARD_PASSWORD_HASH": None,
            "CONTACT_WEBHOOK_URL": None,
            "CLAIM_DEADLINE": "2025-03-26",
            "SETTLEMENT_TIMEZONE": "America/New_York",
        },
        timer_factory=timers,
        clock=clock,
    )
    yield flask_app
    with flask_app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def services(app) -> dict:
    return app.extensions["claims_portal"]


@pytest.fixture
def make_claim(app):
    def _make(code: str = "2xQ9YNw", **fields) -> dict:
        with app.app_context():
            claim = Claim(unique_code=code, title="Settlement claim", **fields)
            db.session.add(claim)
            db.session.commit()
            return claim.to_row()

    return _make


@pytest.fixture
def admin_token(client):
    def _login(email: str = OWNER) -> str:
        resp = client.post("/api/admin/auth/login", json={"email": email, "password": PASSWORD})
        assert resp.status_code == 200, resp.get_json()
        return resp.get_json()["data"]["token"]

    return _login


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def valid_form(**overrides) -> dict:
    form = {
        "contactInfo": {
            "fullName": "Jane Claimant",
            "email": "jane@example.com",
            "address": "1 Main Street",
            "city": "Springfield",
            "state": "MD",
            "zipCode": "20785",
            "phone": "",
        },
        "harmTypes": {
            "emotionalDistress": {"selected": True, "details": "Calls at night", "hasDocumentation": "no", "uploadedFiles": []},
        },
        "payment": {"method": "paypal", "paypalEmail": "jane@example.com"},
        "signature": {"signature": "Jane Claimant", "printedName": "Jane Claimant", "date": ""},
    }
    form.update(overrides)
    return form
