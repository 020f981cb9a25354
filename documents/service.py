"""Upload, list, sign, preview and soft-delete claim documents."""

from __future__ import annotations

import hashlib
from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from flask import current_app
from werkzeug.utils import secure_filename

from claims.drafts import blank_form
from claims.repository import ClaimsRepository, RepositoryError
from claims.schemas import HARM_TYPE_LABELS, HARM_TYPES
from claims.service import STATE_OPEN, claim_state
from clock import isoformat_z, utc_now
from .storage import DocumentStorage, StorageError
from .validation import (
    MAX_FILE_SIZE_BYTES,
    MAX_FILES_PER_CATEGORY,
    check_image_content,
    extension_for,
    format_file_size,
    preview_kind,
    validate_upload,
)

DEFAULT_SIGNED_URL_TTL = 3600

PREVIEW_FALLBACK_MESSAGE = "Preview is not available for this file type. Download or open externally."


class DocumentServiceError(Exception):
    """Raised when a document operation fails."""

    def __init__(self, message: str, status_code: int = 400, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload or {"error": message}


class DocumentService:
    def __init__(
        self,
        repository: ClaimsRepository,
        storage: DocumentStorage,
        signed_url_ttl: int = DEFAULT_SIGNED_URL_TTL,
        max_files_per_category: int = MAX_FILES_PER_CATEGORY,
        max_file_size: int = MAX_FILE_SIZE_BYTES,
        clock: Callable[[], datetime] = utc_now,
        status_provider: Optional[Callable[[], dict]] = None,
    ) -> None:
        self.repository = repository
        self.storage = storage
        self._status_provider = status_provider
        self.signed_url_ttl = signed_url_ttl
        self.max_files_per_category = max_files_per_category
        self.max_file_size = max_file_size
        self._clock = clock

    def _ensure_enabled(self) -> None:
        if self._status_provider is None:
            return
        status = self._status_provider()
        if not status.get("isEnabled", True):
            message = status.get("maintenanceMessage") or "Claims filing is temporarily unavailable."
            raise DocumentServiceError(message, status_code=503, payload={"error": message, "reason": "maintenance"})

    def upload(self, code: Optional[str], harm_type: Optional[str], file_storage) -> dict:
        """Store an uploaded file for ``harm_type`` on the claim's draft submission."""
        code = (code or "").strip()
        harm_type = (harm_type or "").strip()
        if not code or not harm_type or file_storage is None:
            raise DocumentServiceError("Missing required fields: file, claimCode, and harmType are required.")
        if harm_type not in HARM_TYPES:
            raise DocumentServiceError("Invalid harm type.")
        self._ensure_enabled()

        data = file_storage.read()
        content_type = (file_storage.mimetype or file_storage.content_type or "").lower()
        errors = validate_upload(file_storage.filename, content_type, len(data), self.max_file_size)
        if not errors:
            image_error = check_image_content(content_type, data)
            if image_error:
                errors.append(image_error)
        if errors:
            raise DocumentServiceError(errors[0], payload={"error": errors[0], "details": errors})

        try:
            claim = self.repository.find_redeemable_claim(code)
            if claim is None or claim_state(claim, self._clock()) != STATE_OPEN:
                raise DocumentServiceError("Invalid or inactive claim code.", status_code=403)
            if self.repository.find_submitted(code):
                raise DocumentServiceError("This claim has already been submitted.", status_code=403)

            submission = self.repository.get_submission(claim["id"])
            if submission is None:
                submission = self.repository.save_draft(claim, blank_form())

            file_hash = hashlib.sha256(data).hexdigest()
            existing = self.repository.list_documents(submission_id=submission["id"])
            if any(doc.get("file_hash") == file_hash for doc in existing):
                raise DocumentServiceError(
                    "This file has already been uploaded.",
                    status_code=409,
                    payload={"error": "This file has already been uploaded.", "code": "DUPLICATE_FILE"},
                )
            in_category = [doc for doc in existing if doc.get("upload_category") == harm_type]
            if len(in_category) >= self.max_files_per_category:
                raise DocumentServiceError(
                    f"You can upload at most {self.max_files_per_category} files per harm type."
                )

            uploaded_at = self._clock()
            original_name = file_storage.filename.strip()
            ext = extension_for(secure_filename(original_name) or original_name, content_type)
            stamp = int(uploaded_at.timestamp() * 1000)
            storage_path = f"{harm_type}/{code}-{harm_type}-{stamp}.{ext}"

            try:
                self.storage.upload(storage_path, data, content_type)
            except StorageError as exc:
                current_app.logger.error("Document upload failed for claim %s: %s", code, exc)
                raise DocumentServiceError("Failed to upload file. Please try again.", status_code=500) from exc

            row = self.repository.insert_document({
                "submission_id": submission["id"],
                "unique_code": code,
                "file_name": original_name,
                "file_path": storage_path,
                "file_size": len(data),
                "file_type": content_type,
                "file_hash": file_hash,
                "upload_category": harm_type,
                "is_active": True,
                "uploaded_at": uploaded_at,
            })
        except RepositoryError as exc:
            current_app.logger.error("Document metadata error for claim %s: %s", code, exc)
            raise DocumentServiceError("Failed to save file information.", status_code=500) from exc

        current_app.logger.info("Stored %s document for claim %s at %s", harm_type, code, storage_path)
        return {
            "id": row["id"],
            "name": original_name,
            "url": f"/api/files/{row['id']}?claim={code}",
            "size": len(data),
            "uploadedAt": isoformat_z(uploaded_at),
            "fileHash": file_hash,
            "storagePath": storage_path,
        }

    def _active_document(self, document_id: str, code: Optional[str]) -> dict:
        try:
            document = self.repository.get_document(document_id)
        except RepositoryError as exc:
            current_app.logger.error("Loading document %s failed: %s", document_id, exc)
            raise DocumentServiceError("Failed to load file information.", status_code=500) from exc
        if not document or not document.get("is_active"):
            raise DocumentServiceError("File not found.", status_code=404)
        if code is not None and document.get("unique_code") != code:
            raise DocumentServiceError("File not found.", status_code=404)
        return document

    def delete(self, document_id: Optional[str], code: Optional[str]) -> None:
        """Soft-delete a document; removing the stored object is best effort."""
        if not document_id or not code:
            raise DocumentServiceError("File ID and claim code are required.")
        document = self._active_document(document_id, code)

        try:
            self.storage.remove(document["file_path"])
        except StorageError as exc:
            current_app.logger.warning("Storage removal failed for %s: %s", document["file_path"], exc)

        try:
            updated = self.repository.deactivate_document(document_id)
        except RepositoryError as exc:
            current_app.logger.error("Soft delete failed for document %s: %s", document_id, exc)
            updated = False
        if not updated:
            raise DocumentServiceError("Failed to delete file.", status_code=500)
        current_app.logger.info("Document %s deleted for claim %s", document_id, code)

    def signed_url(self, document_id: str, code: Optional[str] = None) -> str:
        document = self._active_document(document_id, code)
        try:
            return self.storage.create_signed_url(document["file_path"], self.signed_url_ttl)
        except StorageError as exc:
            current_app.logger.error("Signing %s failed: %s", document["file_path"], exc)
            raise DocumentServiceError("Failed to generate download link.", status_code=500) from exc

    def preview(self, document_id: str, code: Optional[str] = None) -> dict:
        document = self._active_document(document_id, code)
        kind = preview_kind(document.get("file_type"))
        preview = {
            "id": document["id"],
            "name": document.get("file_name"),
            "type": document.get("file_type"),
            "size": document.get("file_size"),
            "sizeLabel": format_file_size(int(document.get("file_size") or 0)),
            "kind": kind,
            "url": self.signed_url(document_id, code),
            "expiresIn": self.signed_url_ttl,
        }
        if kind == "other":
            preview["message"] = PREVIEW_FALLBACK_MESSAGE
        return preview

    def documents_by_claim(self, code: Optional[str] = None) -> List[dict]:
        """Group active documents by claim code, then by harm category."""
        try:
            rows = self.repository.list_documents(code=code)
        except RepositoryError as exc:
            current_app.logger.error("Listing documents failed: %s", exc)
            raise DocumentServiceError("Failed to load documents.", status_code=500) from exc

        grouped: Dict[str, Dict[str, List[dict]]] = defaultdict(lambda: defaultdict(list))
        for row in rows:
            grouped[row["unique_code"]][row.get("upload_category") or "other"].append({
                **row,
                "size_label": format_file_size(int(row.get("file_size") or 0)),
                "preview_kind": preview_kind(row.get("file_type")),
            })

        claims = []
        for claim_code in sorted(grouped):
            categories = grouped[claim_code]
            claims.append({
                "code": claim_code,
                "total": sum(len(items) for items in categories.values()),
                "categories": [
                    {"key": key, "label": HARM_TYPE_LABELS.get(key, key), "documents": categories[key]}
                    for key in HARM_TYPES
                    if key in categories
                ],
            })
        return claims
