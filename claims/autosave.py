"""Debounced draft autosave and the per-claim form state machine.

Each claim code gets a :class:`FormSession`. Field changes reported through
:meth:`DraftAutosaver.schedule` restart an idle timer; when it fires the
latest values are written through the save callback. Timers run on their
own threads, so everything touching a session goes through one lock.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_IDLE_SECONDS = 2.0


class FormPhase(str, Enum):
    LOADING = "loading"
    EDITING = "editing"
    SAVING = "saving"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    ALREADY_USED = "already_used"
    ERROR = "error"


TERMINAL_PHASES = frozenset({FormPhase.SUBMITTED, FormPhase.ALREADY_USED})


class DraftLocked(Exception):
    """Raised by a save callback when the claim can no longer take drafts."""


class AutosaveBusy(Exception):
    """Raised when a manual save collides with a save or submission in flight."""


SaveCallback = Callable[[str, dict], Optional[datetime]]
TimerFactory = Callable[[float, Callable[[], None]], Any]


def thread_timer(delay: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    return timer


@dataclass
class FormSession:
    code: str
    phase: FormPhase = FormPhase.LOADING
    is_data_loading: bool = True
    is_saving: bool = False
    is_submitting: bool = False
    pending_values: Optional[dict] = None
    timer: Any = None
    last_saved_at: Optional[datetime] = None
    last_error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    def to_dict(self) -> dict:
        return {
            "phase": self.phase.value,
            "isDataLoading": self.is_data_loading,
            "isSaving": self.is_saving,
            "isSubmitting": self.is_submitting,
            "hasPendingChanges": self.pending_values is not None,
            "lastSavedAt": self.last_saved_at.isoformat() if self.last_saved_at else None,
        }


class DraftAutosaver:
    """Registry of form sessions keyed by claim code."""

    def __init__(
        self,
        save_callback: SaveCallback,
        delay_seconds: float = DEFAULT_IDLE_SECONDS,
        timer_factory: Optional[TimerFactory] = None,
    ) -> None:
        self._save = save_callback
        self.delay_seconds = float(delay_seconds)
        self._timer_factory = timer_factory or thread_timer
        self._sessions: Dict[str, FormSession] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------ state

    def _session(self, code: str) -> FormSession:
        session = self._sessions.get(code)
        if session is None:
            session = FormSession(code=code)
            self._sessions[code] = session
        return session

    def snapshot(self, code: str) -> dict:
        with self._lock:
            session = self._sessions.get(code) or FormSession(code=code)
            return session.to_dict()

    def phase(self, code: str) -> FormPhase:
        with self._lock:
            return self._session(code).phase

    def known(self, code: str) -> bool:
        with self._lock:
            return code in self._sessions

    def is_terminal(self, code: str) -> bool:
        with self._lock:
            session = self._sessions.get(code)
            return bool(session and session.is_terminal)

    def begin_loading(self, code: str) -> None:
        with self._lock:
            session = self._session(code)
            self._cancel_timer(session)
            session.pending_values = None
            session.is_data_loading = True
            if not session.is_terminal:
                session.phase = FormPhase.LOADING

    def finish_loading(self, code: str) -> None:
        with self._lock:
            session = self._session(code)
            session.is_data_loading = False
            if not session.is_terminal:
                session.phase = FormPhase.EDITING

    def fail(self, code: str, message: str) -> None:
        with self._lock:
            session = self._session(code)
            self._cancel_timer(session)
            session.pending_values = None
            session.is_data_loading = False
            session.last_error = message
            if not session.is_terminal:
                session.phase = FormPhase.ERROR

    def mark_already_used(self, code: str) -> None:
        with self._lock:
            self._lock_out(self._session(code), FormPhase.ALREADY_USED)

    # --------------------------------------------------------------- autosave

    def schedule(self, code: str, values: dict) -> bool:
        """Queue ``values`` for the idle-timer save; False when suppressed."""
        with self._lock:
            session = self._session(code)
            if session.is_terminal or session.is_data_loading or session.is_submitting:
                return False
            session.pending_values = values
            self._cancel_timer(session)
            self._start_timer(session)
            return True

    def _start_timer(self, session: FormSession) -> None:
        code = session.code
        timer = self._timer_factory(self.delay_seconds, lambda: self._fire(code))
        session.timer = timer
        timer.start()

    @staticmethod
    def _cancel_timer(session: FormSession) -> None:
        if session.timer is not None:
            session.timer.cancel()
            session.timer = None

    def _fire(self, code: str) -> None:
        with self._lock:
            session = self._sessions.get(code)
            if session is None:
                return
            session.timer = None
            if session.is_data_loading or session.is_saving or session.is_submitting or session.is_terminal:
                return
            values = session.pending_values
            if values is None:
                return
            session.pending_values = None
            session.is_saving = True
            session.phase = FormPhase.SAVING

        try:
            saved_at = self._save(code, values)
        except DraftLocked:
            logger.info("Autosave stopped for claim %s; claim no longer accepts drafts", code)
            with self._lock:
                session.is_saving = False
                self._lock_out(session, FormPhase.ALREADY_USED)
            return
        except Exception as exc:
            # Background saves never surface errors to the claimant.
            logger.warning("Autosave failed for claim %s: %s", code, exc)
            saved_at = None

        with self._lock:
            session.is_saving = False
            if saved_at is not None:
                session.last_saved_at = saved_at
            if session.phase == FormPhase.SAVING:
                session.phase = FormPhase.EDITING
            # A change that arrived mid-save still needs its own write.
            if session.pending_values is not None and session.timer is None and session.phase == FormPhase.EDITING:
                self._start_timer(session)

    def save_now(self, code: str, values: dict) -> datetime:
        """Write ``values`` immediately, dropping any queued autosave."""
        with self._lock:
            session = self._session(code)
            if session.is_terminal:
                raise DraftLocked(code)
            if session.is_submitting or session.is_saving:
                raise AutosaveBusy(code)
            self._cancel_timer(session)
            session.pending_values = None
            session.is_saving = True
            session.phase = FormPhase.SAVING

        try:
            saved_at = self._save(code, values) or datetime.now(timezone.utc)
        except DraftLocked:
            with self._lock:
                session.is_saving = False
                self._lock_out(session, FormPhase.ALREADY_USED)
            raise
        except Exception:
            with self._lock:
                session.is_saving = False
                if session.phase == FormPhase.SAVING:
                    session.phase = FormPhase.EDITING
            raise

        with self._lock:
            session.is_saving = False
            session.last_saved_at = saved_at
            if session.phase == FormPhase.SAVING:
                session.phase = FormPhase.EDITING
        return saved_at

    # ------------------------------------------------------------- submission

    def begin_submit(self, code: str) -> bool:
        """Enter the submitting state; False if a submission is already running."""
        with self._lock:
            session = self._session(code)
            if session.is_submitting or session.is_terminal:
                return False
            self._cancel_timer(session)
            session.pending_values = None
            session.is_submitting = True
            session.phase = FormPhase.SUBMITTING
            return True

    def finish_submit(self, code: str, succeeded: bool) -> None:
        with self._lock:
            session = self._session(code)
            session.is_submitting = False
            if succeeded:
                self._lock_out(session, FormPhase.SUBMITTED)
            elif not session.is_terminal:
                session.phase = FormPhase.EDITING

    def _lock_out(self, session: FormSession, phase: FormPhase) -> None:
        self._cancel_timer(session)
        session.pending_values = None
        session.is_data_loading = False
        session.phase = phase
