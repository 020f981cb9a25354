"""Database models backing the claims portal when Supabase is disabled.

The column names mirror the Supabase tables so both repositories hand the
services the same row dictionaries.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func

from extensions import db


def _new_id() -> str:
    return str(uuid.uuid4())


class Claim(db.Model):
    """A settlement claim code handed to a class member."""

    __tablename__ = "claims"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    unique_code = db.Column(db.String(64), unique=True, nullable=False, index=True)
    title = db.Column(db.String(200), nullable=True)
    description = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    is_used = db.Column(db.Boolean, default=False, nullable=False)
    used_at = db.Column(db.DateTime(timezone=True), nullable=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), server_default=func.now(), nullable=False)

    def to_row(self) -> dict:
        return {
            "id": self.id,
            "unique_code": self.unique_code,
            "title": self.title,
            "description": self.description,
            "is_active": bool(self.is_active),
            "is_used": bool(self.is_used),
            "used_at": _isoformat(self.used_at),
            "expires_at": _isoformat(self.expires_at),
            "created_at": _isoformat(self.created_at),
        }


class ClaimSubmission(db.Model):
    """Draft or submitted claim form; one row per claim."""

    __tablename__ = "claim_submissions"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    claim_id = db.Column(db.String(36), db.ForeignKey("claims.id"), unique=True, nullable=False)
    unique_code = db.Column(db.String(64), nullable=False, index=True)
    form_data = db.Column(db.JSON, nullable=False, default=dict)
    status = db.Column(db.String(20), nullable=False, default="draft")

    created_at = db.Column(db.DateTime(timezone=True), server_default=func.now(), nullable=False)
    last_updated = db.Column(db.DateTime(timezone=True), nullable=True)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    STATUS_DRAFT = "draft"
    STATUS_SUBMITTED = "submitted"

    @property
    def is_submitted(self) -> bool:
        return self.status == self.STATUS_SUBMITTED

    def to_row(self) -> dict:
        return {
            "id": self.id,
            "claim_id": self.claim_id,
            "unique_code": self.unique_code,
            "form_data": self.form_data,
            "status": self.status,
            "created_at": _isoformat(self.created_at),
            "last_updated": _isoformat(self.last_updated),
            "submitted_at": _isoformat(self.submitted_at),
        }


class ClaimDocument(db.Model):
    """Metadata for a supporting document stored in the claim documents bucket."""

    __tablename__ = "claim_documents"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    submission_id = db.Column(db.String(36), db.ForeignKey("claim_submissions.id"), nullable=False)
    unique_code = db.Column(db.String(64), nullable=False, index=True)

    file_name = db.Column(db.String(255), nullable=False)
    file_path = db.Column(db.String(500), nullable=False)
    file_size = db.Column(db.Integer, nullable=False)
    file_type = db.Column(db.String(120), nullable=False)
    file_hash = db.Column(db.String(64), nullable=True, index=True)
    upload_category = db.Column(db.String(50), nullable=False)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    uploaded_at = db.Column(db.DateTime(timezone=True), server_default=func.now(), nullable=False)

    def to_row(self) -> dict:
        return {
            "id": self.id,
            "submission_id": self.submission_id,
            "unique_code": self.unique_code,
            "file_name": self.file_name,
            "file_path": self.file_path,
            "file_size": self.file_size,
            "file_type": self.file_type,
            "file_hash": self.file_hash,
            "upload_category": self.upload_category,
            "is_active": bool(self.is_active),
            "uploaded_at": _isoformat(self.uploaded_at),
        }


def _ensure_aware(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _isoformat(dt: Optional[datetime]) -> Optional[str]:
    aware = _ensure_aware(dt)
    return aware.isoformat() if aware else None
