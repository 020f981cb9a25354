import pytest

from admin_dashboard.settings import DEFAULT_MAINTENANCE_MESSAGE, ClaimsSettingsError, ClaimsSettingsService
from admin_dashboard.store import AdminStore


def _service(tmp_path, clock) -> ClaimsSettingsService:
    return ClaimsSettingsService(AdminStore(tmp_path, clock=clock), "America/New_York", clock=clock)


def test_defaults_to_enabled(tmp_path, clock):
    service = _service(tmp_path, clock)
    assert service.public_status() == {"isEnabled": True, "maintenanceMessage": DEFAULT_MAINTENANCE_MESSAGE}


def test_toggle_records_user_and_activity(tmp_path, clock):
    service = _service(tmp_path, clock)
    settings = service.set_enabled(False, "owner@example.com", "Back Monday")
    assert settings["isEnabled"] is False
    assert settings["toggledBy"] == "owner@example.com"
    assert service.public_status() == {"isEnabled": False, "maintenanceMessage": "Back Monday"}

    entry = service.store.get_activity(limit=1)[0]
    assert entry["type"] == "toggle"
    assert entry["details"]["previousState"] is True
    assert entry["details"]["newState"] is False


def test_toggle_requires_boolean(tmp_path, clock):
    with pytest.raises(ClaimsSettingsError):
        _service(tmp_path, clock).set_enabled("false", "owner@example.com")


def test_blank_message_restores_default(tmp_path, clock):
    service = _service(tmp_path, clock)
    settings = service.update_message("   ", "owner@example.com")
    assert settings["maintenanceMessage"] == DEFAULT_MAINTENANCE_MESSAGE
    with pytest.raises(ClaimsSettingsError):
        service.update_message("x" * 1001, "owner@example.com")


def test_schedule_validation(tmp_path, clock):
    service = _service(tmp_path, clock)
    with pytest.raises(ClaimsSettingsError, match="required"):
        service.schedule_toggle("2025-01-16", "", "disable", "owner@example.com")
    with pytest.raises(ClaimsSettingsError, match="enable"):
        service.schedule_toggle("2025-01-16", "09:00", "pause", "owner@example.com")
    with pytest.raises(ClaimsSettingsError, match="Invalid"):
        service.schedule_toggle("16/01/2025", "09:00", "disable", "owner@example.com")
    # 15:00 UTC is 10:00 in New York.
    with pytest.raises(ClaimsSettingsError, match="future"):
        service.schedule_toggle("2025-01-15", "09:59", "disable", "owner@example.com")


def test_scheduled_toggle_runs_when_due(tmp_path, clock):
    service = _service(tmp_path, clock)
    settings = service.schedule_toggle("2025-01-15", "11:00", "disable", "admin@example.com", reason="Audit")
    schedule = settings["scheduledToggle"]
    assert schedule["scheduledFor"] == "2025-01-15T16:00:00.000Z"
    assert schedule["reason"] == "Audit"

    clock.advance(minutes=59)
    assert service.public_status()["isEnabled"] is True

    clock.advance(minutes=1)
    settings = service.get_settings()
    assert settings["isEnabled"] is False
    assert settings["toggledBy"] == "Scheduled by admin@example.com"
    assert "scheduledToggle" not in settings
    assert service.store.get_activity(limit=1)[0]["message"] == "Scheduled toggle executed: claims disabled"


def test_new_schedule_replaces_the_old_one(tmp_path, clock):
    service = _service(tmp_path, clock)
    service.schedule_toggle("2025-01-20", "09:00", "disable", "owner@example.com")
    settings = service.schedule_toggle("2025-01-21", "09:00", "enable", "owner@example.com")
    assert settings["scheduledToggle"]["action"] == "enable"
    assert service.store.get_activity(limit=1)[0]["details"]["replaced"]["date"] == "2025-01-20"


def test_cancel_and_manual_toggle_clear_schedule(tmp_path, clock):
    service = _service(tmp_path, clock)
    with pytest.raises(ClaimsSettingsError) as excinfo:
        service.cancel_schedule("owner@example.com")
    assert excinfo.value.status_code == 404

    service.schedule_toggle("2025-01-20", "09:00", "disable", "owner@example.com")
    assert "scheduledToggle" not in service.cancel_schedule("owner@example.com")

    service.schedule_toggle("2025-01-20", "09:00", "disable", "owner@example.com")
    assert "scheduledToggle" not in service.set_enabled(True, "owner@example.com")
