from admin_dashboard.auth import LoginThrottle

from conftest import ADMIN, EDITOR, OWNER, PASSWORD, auth_header, valid_form


def test_login_returns_token_and_role(client, admin_token):
    token = admin_token(ADMIN)
    me = client.get("/api/admin/auth/me", headers=auth_header(token)).get_json()["data"]["user"]
    assert me["email"] == ADMIN
    assert me["role"] == "admin"


def test_login_failures_count_down_then_lock(client):
    resp = client.post("/api/admin/auth/login", json={"email": OWNER})
    assert resp.status_code == 400

    resp = client.post("/api/admin/auth/login", json={"email": "stranger@example.com", "password": PASSWORD})
    assert resp.status_code == 403
    assert resp.get_json()["remainingAttempts"] == 4

    for expected in (3, 2, 1):
        resp = client.post("/api/admin/auth/login", json={"email": OWNER, "password": "wrong"})
        assert resp.status_code == 401
        assert resp.get_json()["remainingAttempts"] == expected

    resp = client.post("/api/admin/auth/login", json={"email": OWNER, "password": "wrong"})
    assert resp.status_code == 423

    resp = client.post("/api/admin/auth/login", json={"email": OWNER, "password": PASSWORD})
    assert resp.status_code == 423
    assert resp.get_json()["retryAfter"] > 0


def test_lockout_holds_without_session_cookies(app):
    statuses = []
    for _ in range(6):
        fresh = app.test_client(use_cookies=False)
        resp = fresh.post("/api/admin/auth/login", json={"email": OWNER, "password": "wrong"})
        statuses.append(resp.status_code)
    assert statuses == [401, 401, 401, 401, 423, 423]

    elsewhere = app.test_client(use_cookies=False).post(
        "/api/admin/auth/login",
        json={"email": OWNER, "password": PASSWORD},
        environ_base={"REMOTE_ADDR": "203.0.113.9"},
    )
    assert elsewhere.status_code == 200


def test_login_throttle_lock_expires():
    now = [1000.0]
    throttle = LoginThrottle(max_attempts=2, lock_seconds=60, clock=lambda: now[0])
    assert throttle.record_failure("10.0.0.1") == (False, 1)
    assert throttle.record_failure("10.0.0.1") == (True, 0)
    assert throttle.locked_for("10.0.0.1") == 60
    assert throttle.locked_for("10.0.0.2") is None

    now[0] += 61
    assert throttle.locked_for("10.0.0.1") is None
    assert throttle.remaining("10.0.0.1") == 2


def test_token_and_permission_checks(client, admin_token):
    assert client.get("/api/admin/claims-toggle").get_json()["error"] == "Authorization token required"
    resp = client.get("/api/admin/claims-toggle", headers=auth_header("forged"))
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Invalid or expired token"

    editor = admin_token(EDITOR)
    resp = client.get("/api/admin/claims-toggle", headers=auth_header(editor))
    assert resp.status_code == 403
    assert resp.get_json()["required"] == "claims:toggle"
    assert client.get("/api/admin/dashboard/stats", headers=auth_header(editor)).status_code == 403
    assert client.get("/api/admin/content", headers=auth_header(editor)).status_code == 200


def test_claims_toggle_updates_public_status(client, admin_token):
    headers = auth_header(admin_token(ADMIN))
    resp = client.post("/api/admin/claims-toggle", headers=headers,
                       json={"isEnabled": False, "maintenanceMessage": "Paused for review"})
    assert resp.status_code == 200
    assert resp.get_json()["message"] == "Claims filing disabled successfully"

    status = client.get("/api/public/claims-status").get_json()
    assert status["isEnabled"] is False
    assert status["maintenanceMessage"] == "Paused for review"

    resp = client.post("/api/admin/claims-toggle", headers=headers, json={"isEnabled": "yes"})
    assert resp.status_code == 400

    resp = client.patch("/api/admin/claims-toggle", headers=headers, json={"maintenanceMessage": "Soon"})
    assert resp.get_json()["data"]["maintenanceMessage"] == "Soon"


def test_schedule_and_cancel(client, admin_token):
    headers = auth_header(admin_token(OWNER))
    resp = client.post("/api/admin/claims-toggle/schedule", headers=headers,
                       json={"date": "2025-02-01", "time": "08:00", "action": "disable", "reason": "Close"})
    assert resp.status_code == 200
    assert resp.get_json()["data"]["scheduledToggle"]["action"] == "disable"

    resp = client.post("/api/admin/claims-toggle/schedule", headers=headers,
                       json={"date": "2024-02-01", "time": "08:00", "action": "disable"})
    assert resp.status_code == 400

    assert client.delete("/api/admin/claims-toggle", headers=headers).status_code == 200
    assert client.delete("/api/admin/claims-toggle", headers=headers).status_code == 404


def test_content_section_lifecycle(client, admin_token):
    headers = auth_header(admin_token(EDITOR))
    hero = client.get("/api/admin/content?category=hero", headers=headers).get_json()["data"]
    assert hero["sections"]
    assert {section["category"] for section in hero["sections"]} == {"hero"}

    section = {"id": "notice_banner", "title": "Notice", "content": "<script>x()</script>Hello",
               "type": "html", "category": "general"}
    resp = client.post("/api/admin/content", headers=headers, json=section)
    assert resp.status_code == 201
    document = resp.get_json()["data"]
    assert document["version"] == "1.0.1"
    created = next(item for item in document["sections"] if item["id"] == "notice_banner")
    assert "<script>" not in created["content"]
    assert client.post("/api/admin/content", headers=headers, json=section).status_code == 409

    resp = client.put("/api/admin/content/notice_banner", headers=headers,
                      json={"title": "Notice", "content": "Updated", "type": "text", "category": "general"})
    assert resp.status_code == 200
    assert resp.get_json()["data"]["version"] == "1.0.2"
    assert client.put("/api/admin/content/missing", headers=headers,
                      json={"title": "X", "content": "Y"}).status_code == 404

    resp = client.delete("/api/admin/content/hero_title", headers=headers)
    assert resp.status_code == 400
    assert client.delete("/api/admin/content/notice_banner", headers=headers).status_code == 200

    owner = auth_header(admin_token(OWNER))
    security = client.get("/api/admin/dashboard/activity?type=security", headers=owner).get_json()["data"]
    assert len(security) == 1
    assert security[0]["user"] == EDITOR


def test_content_version_conflict_and_validation(client, admin_token):
    headers = auth_header(admin_token(OWNER))
    sections = [{"id": "hero_title", "title": "Main Headline", "content": "New title", "category": "hero"}]
    resp = client.post("/api/admin/content", headers=headers,
                       json={"sections": sections, "expectedVersion": "0.0.9"})
    assert resp.status_code == 409
    assert resp.get_json()["currentVersion"] == "1.0.0"

    resp = client.post("/api/admin/content", headers=headers,
                       json={"sections": sections, "expectedVersion": "1.0.0"})
    assert resp.status_code == 200
    assert client.get("/").data.count(b"New title") >= 1

    resp = client.post("/api/admin/content", headers=headers,
                       json={"sections": [{"id": "Bad Id", "title": ""}]})
    assert resp.status_code == 400
    assert len(resp.get_json()["details"]) == 2


def test_faq_replace_and_validation(client, admin_token):
    headers = auth_header(admin_token(EDITOR))
    faqs = [
        {"id": 2, "question": "Second?", "answer": "B", "category": "General", "order": 2},
        {"id": 1, "question": "First?", "answer": "A", "category": "Payments", "order": 1},
    ]
    resp = client.post("/api/admin/faqs", headers=headers, json={"faqs": faqs})
    assert resp.status_code == 200
    document = resp.get_json()["data"]
    assert [faq["id"] for faq in document["faqs"]] == [1, 2]
    assert document["categories"] == ["Payments", "General"]
    assert document["faqs"][0]["modifiedBy"] == EDITOR

    resp = client.post("/api/admin/faqs", headers=headers,
                       json={"faqs": [{"id": "one", "question": "Q", "answer": ""}]})
    assert resp.status_code == 400
    assert resp.get_json()["details"] == ["FAQ 1: id must be a number.", "FAQ 1: answer is required."]


def test_date_lifecycle_tracks_changes(client, admin_token):
    headers = auth_header(admin_token(ADMIN))
    resp = client.post("/api/admin/dates", headers=headers, json={
        "title": "Hearing Moved", "date": "2025-05-01", "description": "New hearing date", "type": "event",
    })
    assert resp.status_code == 201
    ids = [item["id"] for item in resp.get_json()["data"]["dates"]]
    assert "hearing-moved" in ids

    assert client.put("/api/admin/dates/hearing-moved", headers=headers, json={"time": "25:00"}).status_code == 400
    resp = client.put("/api/admin/dates/hearing-moved", headers=headers, json={"isUrgent": True})
    assert resp.status_code == 200

    activity = client.get("/api/admin/dashboard/activity?type=date&limit=1", headers=headers).get_json()["data"]
    assert activity[0]["details"]["changes"]["modified"] == [{"id": "hearing-moved", "fields": ["isUrgent"]}]

    assert client.delete("/api/admin/dates/hearing-moved", headers=headers).status_code == 200
    assert client.delete("/api/admin/dates/hearing-moved", headers=headers).status_code == 404
    assert client.put("/api/admin/dates/nowhere", headers=headers, json={"isUrgent": True}).status_code == 404


def test_dashboard_stats(client, admin_token, make_claim):
    make_claim("2xQ9YNw")
    make_claim("draft-code")
    assert client.post("/claim/2xQ9YNw/submit", json=valid_form()).status_code == 200
    client.post("/claim/draft-code/draft", json={"contactInfo": {"city": "Springfield"}})

    headers = auth_header(admin_token(ADMIN))
    stats = client.get("/api/admin/dashboard/stats", headers=headers).get_json()["data"]
    assert stats["submissions"] == {
        "total": 1, "today": 1, "thisWeek": 1, "thisMonth": 1, "drafts": 1, "available": True,
    }
    assert stats["claims"]["isEnabled"] is True
    assert stats["nextDeadline"]["id"] == "exclusion-objection-deadline"
    assert stats["daysUntilDeadline"] == 70


def test_dashboard_stats_accepts_full_timestamp_deadlines(client, admin_token, services):
    store = services["admin_store"]
    dates = store.get_dates()["dates"]
    for item in dates:
        if item["id"] == "exclusion-objection-deadline":
            item["date"] = "2025-03-26T04:00:00Z"
    store.save_dates(dates, user="seed")

    headers = auth_header(admin_token(ADMIN))
    resp = client.get("/api/admin/dashboard/stats", headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()["data"]["daysUntilDeadline"] == 70


def test_activity_filter_rejects_unknown_type(client, admin_token):
    headers = auth_header(admin_token(ADMIN))
    resp = client.get("/api/admin/dashboard/activity?type=nonsense", headers=headers)
    assert resp.status_code == 400
    logins = client.get("/api/admin/dashboard/activity?type=login", headers=headers).get_json()["data"]
    assert logins[0]["message"] == f"Admin login: {ADMIN}"


def test_maintenance_endpoints(client, admin_token):
    admin = auth_header(admin_token(ADMIN))
    owner = auth_header(admin_token(OWNER))

    assert client.post("/api/admin/backup", headers=admin).status_code == 403
    resp = client.post("/api/admin/backup", headers=owner)
    assert resp.status_code == 201
    assert resp.get_json()["data"]["file"].startswith("backup-")

    exported = client.get("/api/admin/export", headers=admin).get_json()["data"]
    assert set(exported) >= {"content", "faqs", "dates", "activity"}

    health = client.get("/api/admin/health", headers=owner)
    assert health.status_code == 200
    assert health.get_json()["data"]["database"] == "ok"
