import json
from datetime import datetime, timezone

import pytest

from admin_dashboard.store import (
    ACTIVITY_FILE,
    ACTIVITY_LIMIT,
    CONTENT_FILE,
    AdminStore,
    StoreConflict,
    increment_version,
)

NOW = datetime(2025, 1, 15, 15, 0, tzinfo=timezone.utc)


def _store(tmp_path, seed_dir=None) -> AdminStore:
    kwargs = {} if seed_dir is None else {"seed_dir": seed_dir}
    return AdminStore(tmp_path, clock=lambda: NOW, **kwargs)


def test_increment_version():
    assert increment_version("1.0.0") == "1.0.1"
    assert increment_version("2.3.9") == "2.3.10"
    assert increment_version("garbage") == "1.0.1"
    assert increment_version(None) == "1.0.1"


def test_missing_files_fall_back_to_seed(tmp_path):
    store = _store(tmp_path)
    content = store.get_content()
    assert content["version"] == "1.0.0"
    assert content["updatedBy"] == "System"
    assert any(section["id"] == "hero_title" for section in content["sections"])
    faqs = store.get_faqs()
    assert "Getting Started" in faqs["categories"]


def test_save_bumps_version_and_keeps_backup(tmp_path):
    store = _store(tmp_path, seed_dir=False)
    first = store.save_content([{"id": "a", "title": "A", "content": "x"}], "owner@example.com")
    assert first["version"] == "1.0.1"
    second = store.save_content([{"id": "a", "title": "A", "content": "y"}], "owner@example.com",
                                expected_version="1.0.1")
    assert second["version"] == "1.0.2"

    backup = json.loads((tmp_path / (CONTENT_FILE + ".backup")).read_text())
    assert backup["sections"][0]["content"] == "x"
    assert store.get_content()["updatedBy"] == "owner@example.com"


def test_stale_version_conflicts(tmp_path):
    store = _store(tmp_path)
    store.save_faqs([], "owner@example.com")
    with pytest.raises(StoreConflict) as excinfo:
        store.save_faqs([], "admin@example.com", expected_version="1.0.0")
    assert excinfo.value.current_version == "1.0.1"


def test_activity_log_is_newest_first_and_capped(tmp_path):
    store = _store(tmp_path)
    log = [{"id": str(i), "type": "system", "message": str(i)} for i in range(ACTIVITY_LIMIT)]
    (tmp_path / ACTIVITY_FILE).write_text(json.dumps(log))

    entry = store.log_activity("login", "Admin login", user="owner@example.com", ip="127.0.0.1")
    activity = store.get_activity(limit=ACTIVITY_LIMIT + 10)
    assert len(activity) == ACTIVITY_LIMIT
    assert activity[0]["id"] == entry["id"]
    assert activity[0]["timestamp"] == "2025-01-15T15:00:00.000Z"
    assert store.get_activity(limit=5, activity_type="login") == [entry]


def test_unknown_activity_type_is_stored_as_system(tmp_path):
    store = _store(tmp_path)
    assert store.log_activity("weird", "x")["type"] == "system"


def test_backup_and_health(tmp_path):
    store = _store(tmp_path)
    created = store.initialize_defaults()
    assert created == ["admin-content.json", "admin-faqs.json", "admin-dates.json"]
    assert store.initialize_defaults() == []

    path = store.create_backup(user="owner@example.com")
    assert path.name == "backup-2025-01-15T15-00-00.json"
    exported = json.loads(path.read_text())
    assert set(exported) >= {"content", "faqs", "dates", "claimsSettings", "activity"}

    report = store.health_check()
    assert report["status"] == "healthy"
    assert report["files"]["admin-content.json"] == "ok"

    (tmp_path / CONTENT_FILE).write_text("{broken")
    report = store.health_check()
    assert report["status"] == "unhealthy"
    assert report["files"]["admin-content.json"] == "corrupt"
