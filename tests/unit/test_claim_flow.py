from datetime import datetime, timezone

from conftest import valid_form

CODE = "2xQ9YNw"


def test_gate_accepts_open_code(client, make_claim):
    make_claim(CODE)
    resp = client.post("/", json={"code": f"  {CODE} "})
    assert resp.status_code == 200
    assert resp.get_json()["data"] == {"redirect": f"/claim/{CODE}"}


def test_gate_html_form_redirects_to_claim(client, make_claim):
    make_claim(CODE)
    resp = client.post("/", data={"claim_code": CODE})
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith(f"/claim/{CODE}")


def test_gate_rejects_unknown_code(client):
    resp = client.post("/", json={"code": "nope"})
    assert resp.status_code == 404
    body = resp.get_json()
    assert body["reason"] == "not_found"
    assert body["error"] == "Invalid claim code. Please check your code and try again."

    resp = client.post("/", data={"claim_code": "nope"})
    assert resp.status_code == 400
    assert b"Invalid claim code" in resp.data


def test_gate_reports_closed_codes(client, make_claim):
    make_claim("used-code", is_used=True)
    make_claim("old-code", expires_at=datetime(2025, 1, 1, tzinfo=timezone.utc))
    make_claim("off-code", is_active=False)

    used = client.post("/", json={"code": "used-code"}).get_json()
    assert used["reason"] == "used"
    assert used["redirect"] == "/claim/used-code/already-used"
    assert used["error"] == "This claim code has already been used and cannot be used again."

    expired = client.post("/", json={"code": "old-code"}).get_json()
    assert expired["reason"] == "expired"
    assert expired["error"] == "This claim code has expired."

    inactive = client.post("/", json={"code": "off-code"}).get_json()
    assert inactive["reason"] == "inactive"
    assert inactive["error"] == "This claim code is no longer active."


def test_end_to_end_claim(client, make_claim, services, timers):
    claim = make_claim(CODE)
    repository = services["claims_repository"]

    assert client.post("/", json={"code": CODE}).status_code == 200

    page = client.get(f"/claim/{CODE}")
    assert page.status_code == 200
    assert b'id="claim-config"' in page.data
    assert client.get(f"/claim/{CODE}/state").get_json()["data"]["phase"] == "editing"

    draft = valid_form()
    resp = client.post(f"/claim/{CODE}/autosave", json=draft)
    assert resp.status_code == 202
    assert resp.get_json()["data"]["queued"] is True
    assert resp.get_json()["data"]["hasPendingChanges"] is True

    assert timers.fire_pending() == 1
    stored = repository.get_submission(claim["id"])
    assert stored["status"] == "draft"
    assert stored["form_data"]["contactInfo"]["fullName"] == "Jane Claimant"
    assert client.get(f"/claim/{CODE}/state").get_json()["data"]["lastSavedAt"] is not None

    reloaded = client.get(f"/claim/{CODE}")
    assert b'value="Jane Claimant"' in reloaded.data

    resp = client.post(f"/claim/{CODE}/submit", json=draft)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["data"] == {"code": CODE, "submittedAt": "2025-01-15T15:00:00.000Z"}
    assert body["redirect"] == f"/claim/{CODE}/success"

    submitted = repository.find_submitted(CODE)
    assert submitted["form_data"]["signature"]["date"] == "2025-01-15"
    assert repository.get_claim(CODE)["is_used"] is True

    again = client.post("/", json={"code": CODE}).get_json()
    assert again["reason"] == "used"

    late = client.post(f"/claim/{CODE}/autosave", json=draft)
    assert late.status_code == 409
    assert late.get_json()["reason"] == "already_used"
    assert late.get_json()["redirect"] == f"/claim/{CODE}/already-used"

    resp = client.get(f"/claim/{CODE}")
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith(f"/claim/{CODE}/already-used")
    assert client.get(f"/claim/{CODE}/already-used").status_code == 200


def test_submit_with_errors_returns_field_messages(client, make_claim, services):
    make_claim(CODE)
    resp = client.post(f"/claim/{CODE}/submit", json=valid_form(payment={"method": None}))
    assert resp.status_code == 422
    fields = {error["field"]: error["message"] for error in resp.get_json()["fields"]}
    assert fields["payment"] == "Please select a payment method"

    assert services["claims_repository"].find_submitted(CODE) is None
    assert client.get(f"/claim/{CODE}/state").get_json()["data"]["phase"] == "editing"


def test_manual_draft_save(client, make_claim, timers):
    make_claim(CODE)
    client.post(f"/claim/{CODE}/autosave", json={"contactInfo": {"city": "Queued"}})
    resp = client.post(f"/claim/{CODE}/draft", json={"contactInfo": {"city": "Manual"}})
    assert resp.status_code == 200
    assert resp.get_json()["data"]["savedAt"] == "2025-01-15T15:00:00+00:00"
    assert timers.pending() == []


def test_form_data_must_be_an_object(client, make_claim):
    make_claim(CODE)
    resp = client.post(f"/claim/{CODE}/autosave", json=["not", "a", "form"])
    assert resp.status_code == 400


def test_unknown_claim_form(client):
    resp = client.get("/claim/missing")
    assert resp.status_code == 302
    resp = client.post("/claim/missing/autosave", json={})
    assert resp.status_code == 404
    assert resp.get_json()["reason"] == "not_found"


def test_expired_claim_redirects(client, make_claim):
    make_claim(CODE, expires_at=datetime(2025, 1, 1, tzinfo=timezone.utc))
    resp = client.get(f"/claim/{CODE}")
    assert resp.headers["Location"].endswith(f"/claim/{CODE}/expired")

    resp = client.post(f"/claim/{CODE}/submit", json=valid_form())
    assert resp.status_code == 410
    assert resp.get_json()["redirect"] == f"/claim/{CODE}/expired"


def test_claims_disabled_shows_maintenance(app, client, make_claim, services):
    make_claim(CODE)
    with app.app_context():
        services["settings_service"].set_enabled(False, "owner@example.com", "Back on Monday")
    resp = client.get(f"/claim/{CODE}")
    assert resp.status_code == 503
    assert b"Back on Monday" in resp.data


def test_disabling_claims_blocks_an_open_form(app, client, make_claim, services):
    make_claim(CODE)
    assert client.get(f"/claim/{CODE}").status_code == 200
    with app.app_context():
        services["settings_service"].set_enabled(False, "owner@example.com", "Back on Monday")

    for action in ("autosave", "draft", "submit"):
        resp = client.post(f"/claim/{CODE}/{action}", json=valid_form())
        assert resp.status_code == 503, action
        body = resp.get_json()
        assert body["reason"] == "maintenance"
        assert body["error"] == "Back on Monday"
    assert services["claims_repository"].find_submitted(CODE) is None


def test_autosave_reply_precedes_the_write(client, make_claim, timers):
    make_claim(CODE)
    client.get(f"/claim/{CODE}")
    queued = client.post(f"/claim/{CODE}/autosave", json=valid_form()).get_json()["data"]
    assert queued["lastSavedAt"] is None
    assert [timer.delay for timer in timers.pending()] == [2.0]

    assert timers.fire_pending() == 1
    state = client.get(f"/claim/{CODE}/state").get_json()["data"]
    assert state["hasPendingChanges"] is False
    assert state["lastSavedAt"] == "2025-01-15T15:00:00+00:00"


def test_gate_ignores_non_object_json(client, make_claim):
    make_claim(CODE)
    resp = client.post("/", json=[CODE])
    assert resp.status_code == 404
    assert resp.get_json()["reason"] == "not_found"
