"""File endpoints used by the claim form's upload widget and the admin viewer."""

from __future__ import annotations

import mimetypes
from typing import Optional

from flask import Blueprint, abort, redirect, request, send_file

from responses import api_error, api_success
from .service import DocumentService, DocumentServiceError
from .storage import LocalDocumentStorage


def create_documents_blueprint(document_service: DocumentService) -> Blueprint:
    bp = Blueprint("documents", __name__, url_prefix="/api/files")

    def _error(exc: DocumentServiceError):
        extra = {key: value for key, value in exc.payload.items() if key != "error"}
        return api_error(exc.message, status=exc.status_code, **extra)

    @bp.post("/upload")
    def upload():
        try:
            result = document_service.upload(
                request.form.get("claimCode"),
                request.form.get("harmType"),
                request.files.get("file"),
            )
        except DocumentServiceError as exc:
            return _error(exc)
        return api_success(result, status=201, message="File uploaded successfully")

    @bp.get("/<document_id>")
    def download(document_id: str):
        code: Optional[str] = request.args.get("claim")
        if not code:
            return api_error("Claim code is required.", status=400)
        try:
            url = document_service.signed_url(document_id, code)
        except DocumentServiceError as exc:
            return _error(exc)
        return redirect(url)

    @bp.delete("/<document_id>")
    def delete(document_id: str):
        try:
            document_service.delete(document_id, request.args.get("claim"))
        except DocumentServiceError as exc:
            return _error(exc)
        return api_success(message="File deleted successfully")

    @bp.get("/<document_id>/preview")
    def preview(document_id: str):
        code = request.args.get("claim")
        if not code:
            return api_error("Claim code is required.", status=400)
        try:
            result = document_service.preview(document_id, code)
        except DocumentServiceError as exc:
            return _error(exc)
        return api_success(result)

    @bp.get("/local/<token>")
    def local_file(token: str):
        storage = document_service.storage
        if not isinstance(storage, LocalDocumentStorage):
            abort(404)
        target = storage.open_signed(token)
        if target is None:
            abort(403)
        mimetype = mimetypes.guess_type(target.name)[0] or "application/octet-stream"
        return send_file(target, mimetype=mimetype, max_age=0)

    return bp
