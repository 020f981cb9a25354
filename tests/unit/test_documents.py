import io
import json
import re

from PIL import Image

from documents.validation import format_file_size, preview_kind, validate_upload

from conftest import valid_form

CODE = "2xQ9YNw"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def _upload(client, data=b"call log\n", name="calls.txt", content_type="text/plain",
            harm="emotionalDistress", code=CODE):
    return client.post(
        "/api/files/upload",
        data={"claimCode": code, "harmType": harm, "file": (io.BytesIO(data), name, content_type)},
        content_type="multipart/form-data",
    )


def _png() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (2, 2), color="red").save(buffer, "PNG")
    return buffer.getvalue()


def test_validate_upload_rules():
    assert validate_upload("scan.pdf", "application/pdf", 1024) == []
    assert validate_upload("", "application/pdf", 10) == ["File name is required."]
    assert validate_upload("../etc.pdf", "application/pdf", 10) == ["Invalid file name."]
    assert validate_upload("a.pdf", "application/pdf", 0) == ["File is empty."]
    assert validate_upload("a.pdf", "application/pdf", 11, max_size=10) == ["File size must be less than 10 Bytes."]
    assert validate_upload("a.exe", "application/x-msdownload", 10)[0].startswith("File type not allowed")


def test_preview_kind_and_size_labels():
    assert preview_kind("image/png") == "image"
    assert preview_kind("application/pdf") == "pdf"
    assert preview_kind("text/csv") == "text"
    assert preview_kind(DOCX) == "other"
    assert format_file_size(0) == "0 Bytes"
    assert format_file_size(1536) == "1.5 KB"
    assert format_file_size(100 * 1024 * 1024) == "100 MB"


def test_upload_stores_file_and_metadata(client, make_claim, services, app):
    make_claim(CODE)
    resp = _upload(client)
    assert resp.status_code == 201
    data = resp.get_json()["data"]
    assert data["name"] == "calls.txt"
    assert data["size"] == 9
    assert data["url"] == f"/api/files/{data['id']}?claim={CODE}"
    assert data["storagePath"] == f"emotionalDistress/{CODE}-emotionalDistress-1736953200000.txt"
    assert data["uploadedAt"] == "2025-01-15T15:00:00.000Z"

    stored = app.config["UPLOAD_FOLDER"] / data["storagePath"]
    assert stored.read_bytes() == b"call log\n"

    documents = services["claims_repository"].list_documents(code=CODE)
    assert [doc["file_hash"] for doc in documents] == [data["fileHash"]]
    assert services["claims_repository"].count_drafts() == 1


def test_duplicate_upload_is_rejected(client, make_claim, clock):
    make_claim(CODE)
    assert _upload(client).status_code == 201
    clock.advance(seconds=1)
    resp = _upload(client, name="copy.txt", harm="other")
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "DUPLICATE_FILE"


def test_category_limit(client, make_claim, clock):
    make_claim(CODE)
    for index in range(5):
        assert _upload(client, data=f"file {index}".encode()).status_code == 201
        clock.advance(seconds=1)
    resp = _upload(client, data=b"one too many")
    assert resp.status_code == 400
    assert "at most 5 files" in resp.get_json()["error"]
    assert _upload(client, data=b"other category", harm="creditDenied").status_code == 201


def test_upload_rejections(client, make_claim):
    make_claim(CODE)
    resp = _upload(client, name="tool.exe", content_type="application/x-msdownload")
    assert resp.status_code == 400
    assert resp.get_json()["details"][0].startswith("File type not allowed")

    resp = _upload(client, data=b"not really a png", name="photo.png", content_type="image/png")
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "The image file appears to be corrupted."

    assert _upload(client, harm="sunburn").status_code == 400
    assert _upload(client, code="unknown").status_code == 403


def test_real_image_upload(client, make_claim):
    make_claim(CODE)
    resp = _upload(client, data=_png(), name="receipt.png", content_type="image/png")
    assert resp.status_code == 201


def test_upload_after_submission_is_forbidden(client, make_claim):
    make_claim(CODE)
    assert client.post(f"/claim/{CODE}/submit", json=valid_form()).status_code == 200
    resp = _upload(client)
    assert resp.status_code == 403


def test_signed_download_and_preview(client, make_claim):
    make_claim(CODE)
    document_id = _upload(client).get_json()["data"]["id"]

    resp = client.get(f"/api/files/{document_id}?claim={CODE}")
    assert resp.status_code == 302
    location = resp.headers["Location"]
    assert "/api/files/local/" in location
    download = client.get(location)
    assert download.status_code == 200
    assert download.data == b"call log\n"

    assert client.get(f"/api/files/{document_id}").status_code == 400
    assert client.get(f"/api/files/{document_id}?claim=someone-else").status_code == 404
    assert client.get("/api/files/local/forged-token").status_code == 403

    preview = client.get(f"/api/files/{document_id}/preview?claim={CODE}").get_json()["data"]
    assert preview["kind"] == "text"
    assert preview["expiresIn"] == 3600
    assert "message" not in preview


def test_preview_fallback_for_office_documents(client, make_claim):
    make_claim(CODE)
    document_id = _upload(client, data=b"PK fake docx", name="letter.docx", content_type=DOCX).get_json()["data"]["id"]
    preview = client.get(f"/api/files/{document_id}/preview?claim={CODE}").get_json()["data"]
    assert preview["kind"] == "other"
    assert preview["message"].startswith("Preview is not available")


def test_delete_is_soft_and_owner_checked(client, make_claim, services, app):
    make_claim(CODE)
    data = _upload(client).get_json()["data"]
    document_id = data["id"]

    assert client.delete(f"/api/files/{document_id}").status_code == 400
    assert client.delete(f"/api/files/{document_id}?claim=someone-else").status_code == 404

    resp = client.delete(f"/api/files/{document_id}?claim={CODE}")
    assert resp.status_code == 200
    assert not (app.config["UPLOAD_FOLDER"] / data["storagePath"]).exists()

    row = services["claims_repository"].get_document(document_id)
    assert row["is_active"] is False
    assert client.get(f"/api/files/{document_id}?claim={CODE}").status_code == 404
    assert client.delete(f"/api/files/{document_id}?claim={CODE}").status_code == 404


def test_documents_grouped_by_claim(app, client, make_claim, services, clock):
    make_claim(CODE)
    _upload(client)
    clock.advance(seconds=1)
    _upload(client, data=b"denial letter", name="denial.pdf", content_type="application/pdf", harm="creditDenied")
    with app.app_context():
        groups = services["document_service"].documents_by_claim()
    assert len(groups) == 1
    assert groups[0]["code"] == CODE
    assert groups[0]["total"] == 2
    assert [category["key"] for category in groups[0]["categories"]] == ["emotionalDistress", "creditDenied"]


def _page_config(page) -> dict:
    match = re.search(rb'<script id="claim-config" type="application/json">(.*?)</script>', page.data, re.S)
    return json.loads(match.group(1))


def test_reloaded_draft_keeps_uploaded_file_details(client, make_claim, services, timers):
    make_claim(CODE)
    assert client.get(f"/claim/{CODE}").status_code == 200
    uploaded = _upload(client, data=b"denial letter", name="statement.txt", harm="creditDenied").get_json()["data"]

    draft = valid_form()
    draft["harmTypes"]["creditDenied"] = {
        "selected": True, "details": "Card declined", "hasDocumentation": "yes", "uploadedFiles": [uploaded],
    }
    assert client.post(f"/claim/{CODE}/autosave", json=draft).status_code == 202
    assert timers.fire_pending() == 1

    config = _page_config(client.get(f"/claim/{CODE}"))
    assert config["uploadedFiles"]["creditDenied"] == [uploaded]
    assert config["uploadedFiles"]["other"] == []

    draft["harmTypes"]["creditDenied"]["uploadedFiles"] = config["uploadedFiles"]["creditDenied"]
    resp = client.post(f"/claim/{CODE}/submit", json=draft)
    assert resp.status_code == 200, resp.get_json()
    stored = services["claims_repository"].find_submitted(CODE)["form_data"]
    assert stored["harmTypes"]["creditDenied"]["uploadedFiles"][0]["url"] == uploaded["url"]


def test_upload_refused_while_claims_disabled(app, client, make_claim, services):
    make_claim(CODE)
    with app.app_context():
        services["settings_service"].set_enabled(False, "owner@example.com", "Back on Monday")
    resp = _upload(client)
    assert resp.status_code == 503
    assert resp.get_json()["error"] == "Back on Monday"
    assert services["claims_repository"].list_documents(code=CODE) == []
