"""Claim gate, draft loading, autosave and submission."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from flask import current_app

from clock import isoformat_z, parse_timestamp, utc_now
from .autosave import AutosaveBusy, DraftAutosaver, DraftLocked, TimerFactory
from .drafts import blank_form, decode_form_data, merge_with_blank
from .repository import ClaimsRepository, RepositoryError, SubmissionLocked
from .schemas import validate_claim_form

logger = logging.getLogger(__name__)

STATE_OPEN = "open"
STATE_USED = "used"
STATE_INACTIVE = "inactive"
STATE_EXPIRED = "expired"

GATE_MESSAGES = {
    STATE_USED: "This claim code has already been used and cannot be used again.",
    STATE_INACTIVE: "This claim code is no longer active.",
    STATE_EXPIRED: "This claim code has expired.",
    "not_found": "Invalid claim code. Please check your code and try again.",
    "error": "An error occurred. Please try again.",
}
ALREADY_SUBMITTED_MESSAGE = "This claim has already been submitted."
MAINTENANCE_MESSAGE = "Claims filing is temporarily unavailable. Please check back later."

StatusProvider = Callable[[], Dict[str, Any]]


class ClaimServiceError(Exception):
    """Raised when a claim operation cannot be completed."""

    def __init__(self, message: str, status_code: int = 400, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload or {"error": message}

    @property
    def reason(self) -> Optional[str]:
        return self.payload.get("reason")


@dataclass
class GateResult:
    ok: bool
    reason: str
    code: str
    message: str = ""


@dataclass
class FormContext:
    status: str
    code: str
    claim: Optional[dict] = None
    form_data: dict = field(default_factory=blank_form)
    maintenance_message: str = ""


def claim_state(claim: dict, reference: Optional[datetime] = None) -> str:
    """Classify a claim row as open, used, inactive or expired."""
    if claim.get("is_used"):
        return STATE_USED
    if not claim.get("is_active"):
        return STATE_INACTIVE
    expires = parse_timestamp(claim.get("expires_at"))
    if expires and expires < (reference or utc_now()):
        return STATE_EXPIRED
    return STATE_OPEN


def _already_used_error() -> ClaimServiceError:
    return ClaimServiceError(
        ALREADY_SUBMITTED_MESSAGE,
        status_code=409,
        payload={"error": ALREADY_SUBMITTED_MESSAGE, "reason": "already_used"},
    )


class ClaimService:
    def __init__(
        self,
        repository: ClaimsRepository,
        status_provider: StatusProvider,
        autosave_delay: float = 2.0,
        timer_factory: Optional[TimerFactory] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository
        self._status_provider = status_provider
        self._clock = clock
        self.autosaver = DraftAutosaver(self._write_draft, autosave_delay, timer_factory)

    # ------------------------------------------------------------------- gate

    def check_claim_code(self, raw_code: Optional[str]) -> GateResult:
        """Decide whether ``raw_code`` may open the claim form."""
        code = (raw_code or "").strip()
        if not code:
            return GateResult(False, "not_found", code, GATE_MESSAGES["not_found"])

        try:
            claim = self.repository.find_redeemable_claim(code)
            if claim:
                if claim_state(claim, self._clock()) == STATE_EXPIRED:
                    return GateResult(False, STATE_EXPIRED, code, GATE_MESSAGES[STATE_EXPIRED])
                if self.repository.find_submitted(code):
                    return GateResult(False, STATE_USED, code, GATE_MESSAGES[STATE_USED])
                return GateResult(True, STATE_OPEN, code)
            claim = self.repository.get_claim(code)
        except RepositoryError as exc:
            current_app.logger.error("Claim gate lookup failed for %s: %s", code, exc)
            return GateResult(False, "error", code, GATE_MESSAGES["error"])

        if claim is None:
            return GateResult(False, "not_found", code, GATE_MESSAGES["not_found"])
        state = claim_state(claim, self._clock())
        if state == STATE_OPEN:
            return GateResult(False, "not_found", code, GATE_MESSAGES["not_found"])
        return GateResult(False, state, code, GATE_MESSAGES[state])

    # ------------------------------------------------------------------- form

    def open_form(self, code: str) -> FormContext:
        """Load the claim and its draft, moving the form session out of ``loading``."""
        self.autosaver.begin_loading(code)

        status = self._status_provider()
        if not status.get("isEnabled", True):
            self.autosaver.fail(code, "claims disabled")
            return FormContext("maintenance", code, maintenance_message=status.get("maintenanceMessage", ""))

        try:
            claim = self.repository.get_claim(code)
            if claim is None:
                self.autosaver.fail(code, "claim not found")
                return FormContext("not_found", code)
            if claim.get("is_used") or self.repository.find_submitted(code):
                self.autosaver.mark_already_used(code)
                return FormContext("already_used", code, claim)
            if claim_state(claim, self._clock()) != STATE_OPEN:
                self.autosaver.fail(code, "claim closed")
                return FormContext("expired", code, claim)
            submission = self.repository.get_submission(claim["id"])
        except RepositoryError as exc:
            current_app.logger.error("Loading claim form %s failed: %s", code, exc)
            self.autosaver.fail(code, "load failed")
            raise ClaimServiceError(GATE_MESSAGES["error"], status_code=503) from exc

        form_data = decode_form_data(submission.get("form_data") if submission else None)
        self.autosaver.finish_loading(code)
        return FormContext("ready", code, claim, form_data)

    def _ensure_enabled(self) -> None:
        status = self._status_provider()
        if status.get("isEnabled", True):
            return
        message = status.get("maintenanceMessage") or MAINTENANCE_MESSAGE
        raise ClaimServiceError(
            message,
            status_code=503,
            payload={"error": message, "reason": "maintenance", "maintenanceMessage": message},
        )

    def _ensure_session(self, code: str) -> None:
        if not self.autosaver.known(code):
            context = self.open_form(code)
            if context.status == "already_used":
                raise _already_used_error()
            if context.status != "ready":
                raise ClaimServiceError(
                    "This claim form is not available.",
                    status_code=410 if context.status == "expired" else 404,
                    payload={"error": "This claim form is not available.", "reason": context.status},
                )

    def queue_autosave(self, code: str, values: Any) -> dict:
        if not isinstance(values, dict):
            raise ClaimServiceError("Form data must be a JSON object.")
        self._ensure_enabled()
        self._ensure_session(code)
        if self.autosaver.is_terminal(code):
            raise _already_used_error()
        queued = self.autosaver.schedule(code, values)
        return {"queued": queued, **self.autosaver.snapshot(code)}

    def save_draft(self, code: str, values: Any) -> datetime:
        """Save immediately (the "Save draft" button)."""
        if not isinstance(values, dict):
            raise ClaimServiceError("Form data must be a JSON object.")
        self._ensure_enabled()
        self._ensure_session(code)
        try:
            return self.autosaver.save_now(code, values)
        except DraftLocked as exc:
            raise _already_used_error() from exc
        except AutosaveBusy as exc:
            raise ClaimServiceError("A save is already in progress.", status_code=409) from exc
        except RepositoryError as exc:
            current_app.logger.error("Manual draft save failed for %s: %s", code, exc)
            raise ClaimServiceError("Could not save your draft. Please try again.", status_code=503) from exc

    def _write_draft(self, code: str, values: dict) -> datetime:
        claim = self.repository.find_redeemable_claim(code)
        if claim is None or claim_state(claim, self._clock()) != STATE_OPEN:
            raise DraftLocked(code)
        if self.repository.find_submitted(code):
            raise DraftLocked(code)
        try:
            self.repository.save_draft(claim, merge_with_blank(values))
        except SubmissionLocked as exc:
            raise DraftLocked(code) from exc
        saved_at = self._clock()
        logger.debug("Saved draft for claim %s", code)
        return saved_at

    # ------------------------------------------------------------- submission

    def submit(self, code: str, values: Any) -> dict:
        """Validate and submit the claim, then mark the code used."""
        if not isinstance(values, dict):
            raise ClaimServiceError("Form data must be a JSON object.")
        self._ensure_enabled()
        self._ensure_session(code)
        if not self.autosaver.begin_submit(code):
            if self.autosaver.is_terminal(code):
                raise _already_used_error()
            raise ClaimServiceError(
                "Your claim is already being submitted.",
                status_code=409,
                payload={"error": "Your claim is already being submitted.", "reason": "in_progress"},
            )

        succeeded = False
        try:
            claim = self.repository.get_claim(code)
            if claim is None:
                raise ClaimServiceError(GATE_MESSAGES["not_found"], status_code=404)
            if claim.get("is_used") or self.repository.find_submitted(code):
                self.autosaver.mark_already_used(code)
                raise _already_used_error()
            if claim_state(claim, self._clock()) != STATE_OPEN:
                raise ClaimServiceError(GATE_MESSAGES[STATE_EXPIRED], status_code=410, payload={
                    "error": GATE_MESSAGES[STATE_EXPIRED],
                    "reason": "expired",
                })

            form, errors = validate_claim_form(values)
            if errors:
                raise ClaimServiceError(
                    "Please correct the highlighted fields.",
                    status_code=422,
                    payload={"error": "Please correct the highlighted fields.", "fields": errors},
                )

            submitted_at = self._clock()
            payload = form.to_payload()
            payload["signature"]["date"] = submitted_at.date().isoformat()

            try:
                self.repository.save_submission(claim, payload, submitted_at)
            except SubmissionLocked as exc:
                self.autosaver.mark_already_used(code)
                raise _already_used_error() from exc

            if not self.repository.mark_claim_used(code, submitted_at):
                current_app.logger.warning("Claim %s was submitted but could not be marked used", code)

            succeeded = True
            current_app.logger.info("Claim %s submitted", code)
            return {"code": code, "submittedAt": isoformat_z(submitted_at)}
        except RepositoryError as exc:
            current_app.logger.error("Submitting claim %s failed: %s", code, exc)
            raise ClaimServiceError(
                "An error occurred while submitting your claim. Please try again.",
                status_code=503,
            ) from exc
        finally:
            self.autosaver.finish_submit(code, succeeded)
