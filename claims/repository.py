"""Persistence for claims, claim submissions and document metadata.

Two interchangeable implementations hand the services plain row dicts:
:class:`SupabaseClaimsRepository` for the hosted database and
:class:`SqlClaimsRepository` (Flask-SQLAlchemy) when Supabase is disabled.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import List, Optional, Protocol

from flask import Flask, current_app, has_app_context

from clock import isoformat_z, utc_now
from extensions import db
from models import Claim, ClaimDocument, ClaimSubmission

CLAIMS_TABLE = "claims"
SUBMISSIONS_TABLE = "claim_submissions"
DOCUMENTS_TABLE = "claim_documents"

STATUS_DRAFT = ClaimSubmission.STATUS_DRAFT
STATUS_SUBMITTED = ClaimSubmission.STATUS_SUBMITTED


class RepositoryError(Exception):
    """Raised when the backing store cannot complete an operation."""


class SubmissionLocked(Exception):
    """Raised when writing to a submission that has already been submitted."""


class ClaimsRepository(Protocol):
    def get_claim(self, code: str) -> Optional[dict]: ...

    def find_redeemable_claim(self, code: str) -> Optional[dict]: ...

    def get_submission(self, claim_id: str) -> Optional[dict]: ...

    def find_submitted(self, code: str) -> Optional[dict]: ...

    def save_draft(self, claim: dict, form_data: dict) -> dict: ...

    def save_submission(self, claim: dict, form_data: dict, submitted_at: datetime) -> dict: ...

    def mark_claim_used(self, code: str, used_at: datetime) -> bool: ...

    def insert_document(self, row: dict) -> dict: ...

    def get_document(self, document_id: str) -> Optional[dict]: ...

    def list_documents(self, code: Optional[str] = None, submission_id: Optional[str] = None) -> List[dict]: ...

    def deactivate_document(self, document_id: str) -> bool: ...

    def submitted_timestamps(self) -> List[Optional[str]]: ...

    def count_drafts(self) -> int: ...


class SupabaseClaimsRepository:
    """Claims storage backed by the Supabase tables."""

    def __init__(self, client) -> None:
        self._client = client

    def _execute(self, action: str, query):
        try:
            return query.execute()
        except Exception as exc:  # pragma: no cover - external service dependency
            raise RepositoryError(f"Supabase error while {action}: {exc}") from exc

    def _first(self, action: str, query) -> Optional[dict]:
        resp = self._execute(action, query.limit(1))
        data = resp.data or []
        return data[0] if data else None

    def get_claim(self, code: str) -> Optional[dict]:
        return self._first(
            "looking up claim",
            self._client.table(CLAIMS_TABLE).select("*").eq("unique_code", code),
        )

    def find_redeemable_claim(self, code: str) -> Optional[dict]:
        return self._first(
            "looking up redeemable claim",
            self._client.table(CLAIMS_TABLE)
            .select("*")
            .eq("unique_code", code)
            .eq("is_active", True)
            .eq("is_used", False),
        )

    def get_submission(self, claim_id: str) -> Optional[dict]:
        return self._first(
            "loading claim submission",
            self._client.table(SUBMISSIONS_TABLE).select("*").eq("claim_id", claim_id),
        )

    def find_submitted(self, code: str) -> Optional[dict]:
        return self._first(
            "checking for submitted claim",
            self._client.table(SUBMISSIONS_TABLE)
            .select("*")
            .eq("unique_code", code)
            .eq("status", STATUS_SUBMITTED),
        )

    def _write_submission(self, claim: dict, fields: dict) -> dict:
        existing = self.get_submission(claim["id"])
        now = isoformat_z()
        if existing:
            if existing.get("status") == STATUS_SUBMITTED:
                raise SubmissionLocked(claim["unique_code"])
            resp = self._execute(
                "updating claim submission",
                self._client.table(SUBMISSIONS_TABLE)
                .update({**fields, "last_updated": now})
                .eq("id", existing["id"])
                .neq("status", STATUS_SUBMITTED),
            )
            if not resp.data:
                raise SubmissionLocked(claim["unique_code"])
            return resp.data[0]

        payload = {
            "claim_id": claim["id"],
            "unique_code": claim["unique_code"],
            "created_at": now,
            "last_updated": now,
            **fields,
        }
        resp = self._execute(
            "inserting claim submission",
            self._client.table(SUBMISSIONS_TABLE).insert(payload),
        )
        return (resp.data or [payload])[0]

    def save_draft(self, claim: dict, form_data: dict) -> dict:
        return self._write_submission(claim, {"form_data": form_data, "status": STATUS_DRAFT})

    def save_submission(self, claim: dict, form_data: dict, submitted_at: datetime) -> dict:
        return self._write_submission(
            claim,
            {
                "form_data": form_data,
                "status": STATUS_SUBMITTED,
                "submitted_at": isoformat_z(submitted_at),
            },
        )

    def mark_claim_used(self, code: str, used_at: datetime) -> bool:
        resp = self._execute(
            "marking claim used",
            self._client.table(CLAIMS_TABLE)
            .update({"is_used": True, "used_at": isoformat_z(used_at)})
            .eq("unique_code", code)
            .eq("is_active", True)
            .eq("is_used", False),
        )
        return bool(resp.data)

    def insert_document(self, row: dict) -> dict:
        row = {key: isoformat_z(value) if isinstance(value, datetime) else value for key, value in row.items()}
        resp = self._execute(
            "inserting document metadata",
            self._client.table(DOCUMENTS_TABLE).insert(row),
        )
        return (resp.data or [row])[0]

    def get_document(self, document_id: str) -> Optional[dict]:
        return self._first(
            "loading document metadata",
            self._client.table(DOCUMENTS_TABLE).select("*").eq("id", document_id),
        )

    def list_documents(self, code: Optional[str] = None, submission_id: Optional[str] = None) -> List[dict]:
        query = self._client.table(DOCUMENTS_TABLE).select("*").eq("is_active", True)
        if code:
            query = query.eq("unique_code", code)
        if submission_id:
            query = query.eq("submission_id", submission_id)
        resp = self._execute("listing documents", query.order("uploaded_at", desc=True))
        return resp.data or []

    def deactivate_document(self, document_id: str) -> bool:
        resp = self._execute(
            "soft-deleting document",
            self._client.table(DOCUMENTS_TABLE).update({"is_active": False}).eq("id", document_id),
        )
        return bool(resp.data)

    def submitted_timestamps(self) -> List[Optional[str]]:
        resp = self._execute(
            "loading submission stats",
            self._client.table(SUBMISSIONS_TABLE).select("submitted_at").eq("status", STATUS_SUBMITTED),
        )
        return [row.get("submitted_at") for row in resp.data or []]

    def count_drafts(self) -> int:
        resp = self._execute(
            "counting drafts",
            self._client.table(SUBMISSIONS_TABLE).select("id", count="exact").eq("status", STATUS_DRAFT),
        )
        if resp.count is not None:
            return int(resp.count)
        return len(resp.data or [])


class SqlClaimsRepository:
    """Claims storage backed by the local SQLAlchemy models."""

    def __init__(self, app: Optional[Flask] = None) -> None:
        self._app = app

    @contextmanager
    def _context(self):
        # Autosave timers call in from worker threads without an app context.
        if has_app_context() or self._app is None:
            yield
        else:
            with self._app.app_context():
                yield

    def _commit(self, action: str) -> None:
        try:
            db.session.commit()
        except Exception as exc:
            db.session.rollback()
            current_app.logger.error("Claims database error while %s: %s", action, exc)
            raise RepositoryError(f"Database error while {action}") from exc

    def get_claim(self, code: str) -> Optional[dict]:
        with self._context():
            claim = Claim.query.filter_by(unique_code=code).first()
            return claim.to_row() if claim else None

    def find_redeemable_claim(self, code: str) -> Optional[dict]:
        with self._context():
            claim = Claim.query.filter_by(unique_code=code, is_active=True, is_used=False).first()
            return claim.to_row() if claim else None

    def get_submission(self, claim_id: str) -> Optional[dict]:
        with self._context():
            submission = ClaimSubmission.query.filter_by(claim_id=claim_id).first()
            return submission.to_row() if submission else None

    def find_submitted(self, code: str) -> Optional[dict]:
        with self._context():
            submission = ClaimSubmission.query.filter_by(
                unique_code=code, status=STATUS_SUBMITTED
            ).first()
            return submission.to_row() if submission else None

    def _write_submission(self, claim: dict, form_data: dict, status: str, submitted_at=None) -> dict:
        with self._context():
            submission = ClaimSubmission.query.filter_by(claim_id=claim["id"]).first()
            if submission and submission.is_submitted:
                raise SubmissionLocked(claim["unique_code"])
            if submission is None:
                submission = ClaimSubmission(claim_id=claim["id"], unique_code=claim["unique_code"])
                db.session.add(submission)
            submission.form_data = form_data
            submission.status = status
            submission.last_updated = utc_now()
            if submitted_at is not None:
                submission.submitted_at = submitted_at
            self._commit(f"saving {status} submission")
            return submission.to_row()

    def save_draft(self, claim: dict, form_data: dict) -> dict:
        return self._write_submission(claim, form_data, STATUS_DRAFT)

    def save_submission(self, claim: dict, form_data: dict, submitted_at: datetime) -> dict:
        return self._write_submission(claim, form_data, STATUS_SUBMITTED, submitted_at)

    def mark_claim_used(self, code: str, used_at: datetime) -> bool:
        with self._context():
            updated = Claim.query.filter_by(unique_code=code, is_active=True, is_used=False).update(
                {"is_used": True, "used_at": used_at}
            )
            self._commit("marking claim used")
            return bool(updated)

    def insert_document(self, row: dict) -> dict:
        with self._context():
            document = ClaimDocument(**row)
            db.session.add(document)
            self._commit("inserting document metadata")
            return document.to_row()

    def get_document(self, document_id: str) -> Optional[dict]:
        with self._context():
            document = db.session.get(ClaimDocument, document_id)
            return document.to_row() if document else None

    def list_documents(self, code: Optional[str] = None, submission_id: Optional[str] = None) -> List[dict]:
        with self._context():
            query = ClaimDocument.query.filter_by(is_active=True)
            if code:
                query = query.filter_by(unique_code=code)
            if submission_id:
                query = query.filter_by(submission_id=submission_id)
            return [doc.to_row() for doc in query.order_by(ClaimDocument.uploaded_at.desc()).all()]

    def deactivate_document(self, document_id: str) -> bool:
        with self._context():
            updated = ClaimDocument.query.filter_by(id=document_id).update({"is_active": False})
            self._commit("soft-deleting document")
            return bool(updated)

    def submitted_timestamps(self) -> List[Optional[str]]:
        with self._context():
            rows = ClaimSubmission.query.filter_by(status=STATUS_SUBMITTED).all()
            return [row.to_row()["submitted_at"] for row in rows]

    def count_drafts(self) -> int:
        with self._context():
            return ClaimSubmission.query.filter_by(status=STATUS_DRAFT).count()
