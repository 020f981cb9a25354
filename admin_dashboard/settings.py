"""Claims availability toggle with an optional single scheduled toggle."""

from __future__ import annotations

import copy
import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from flask import current_app, has_app_context

from clock import isoformat_z, parse_timestamp, settlement_zone, utc_now
from .store import AdminStore, StoreError

logger = logging.getLogger(__name__)

DEFAULT_MAINTENANCE_MESSAGE = (
    "Claims filing is temporarily unavailable for maintenance. Please check back later."
)
SCHEDULE_ACTIONS = ("enable", "disable")
MAX_MESSAGE_LENGTH = 1000


class ClaimsSettingsError(Exception):
    def __init__(self, message: str, status_code: int = 400, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload or {"error": message}


class ClaimsSettingsService:
    def __init__(
        self,
        store: AdminStore,
        timezone_name: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
        default_message: str = DEFAULT_MAINTENANCE_MESSAGE,
    ) -> None:
        self.store = store
        self.zone = settlement_zone(timezone_name)
        self.default_message = default_message
        self._clock = clock
        self._lock = threading.Lock()

    def _defaults(self) -> dict:
        return {
            "isEnabled": True,
            "lastToggled": isoformat_z(self._clock()),
            "toggledBy": "System",
            "maintenanceMessage": self.default_message,
        }

    def _load(self) -> dict:
        settings = self.store.read_claims_settings()
        if settings is None:
            return self._defaults()
        merged = {**self._defaults(), **settings}
        merged["isEnabled"] = bool(merged.get("isEnabled"))
        return merged

    def get_settings(self) -> dict:
        """Current settings, after running a scheduled toggle that has come due."""
        with self._lock:
            settings = self._load()
            settings = self._apply_due_schedule(settings)
            return copy.deepcopy(settings)

    def public_status(self) -> dict:
        try:
            settings = self.get_settings()
        except StoreError as exc:
            _log("error", "Reading claims status failed: %s", exc)
            return {"isEnabled": True, "maintenanceMessage": self.default_message}
        return {
            "isEnabled": settings["isEnabled"],
            "maintenanceMessage": settings.get("maintenanceMessage") or self.default_message,
        }

    def set_enabled(self, is_enabled: Any, user: str, maintenance_message: Optional[str] = None,
                    ip: Optional[str] = None) -> dict:
        """Turn claim filing on or off; clears any pending schedule."""
        if not isinstance(is_enabled, bool):
            raise ClaimsSettingsError("isEnabled must be a boolean value")
        with self._lock:
            settings = self._load()
            previous = settings["isEnabled"]
            settings["isEnabled"] = is_enabled
            settings["lastToggled"] = isoformat_z(self._clock())
            settings["toggledBy"] = user
            if maintenance_message is not None:
                settings["maintenanceMessage"] = self._clean_message(maintenance_message)
            settings.pop("scheduledToggle", None)
            self.store.write_claims_settings(settings)

        state = "enabled" if is_enabled else "disabled"
        self.store.log_activity("toggle", f"Claims filing {state}", user=user, ip=ip, details={
            "previousState": previous,
            "newState": is_enabled,
            "maintenanceMessage": settings["maintenanceMessage"],
        })
        _log("info", "Claims filing %s by %s", state, user)
        return copy.deepcopy(settings)

    def update_message(self, message: Any, user: str, ip: Optional[str] = None) -> dict:
        if not isinstance(message, str):
            raise ClaimsSettingsError("maintenanceMessage must be a string")
        with self._lock:
            settings = self._load()
            settings["maintenanceMessage"] = self._clean_message(message)
            self.store.write_claims_settings(settings)
        self.store.log_activity("toggle", "Maintenance message updated", user=user, ip=ip)
        return copy.deepcopy(settings)

    def _clean_message(self, message: str) -> str:
        cleaned = message.strip()
        if len(cleaned) > MAX_MESSAGE_LENGTH:
            raise ClaimsSettingsError(f"Maintenance message must be {MAX_MESSAGE_LENGTH} characters or fewer")
        return cleaned or self.default_message

    def schedule_toggle(self, date_value: Any, time_value: Any, action: Any, user: str,
                        reason: Optional[str] = None, ip: Optional[str] = None) -> dict:
        """Schedule one future enable/disable; replaces any existing schedule."""
        if not date_value or not time_value or not action:
            raise ClaimsSettingsError("Date, time, and action are required")
        if action not in SCHEDULE_ACTIONS:
            raise ClaimsSettingsError('Action must be either "enable" or "disable"')
        due_at = self._scheduled_at({"date": date_value, "time": time_value})
        if due_at is None:
            raise ClaimsSettingsError("Invalid date or time format")
        if due_at <= self._clock():
            raise ClaimsSettingsError("Scheduled time must be in the future")

        with self._lock:
            settings = self._apply_due_schedule(self._load())
            replaced = settings.get("scheduledToggle")
            settings["scheduledToggle"] = {
                "date": str(date_value),
                "time": str(time_value),
                "action": action,
                "scheduledBy": user,
                "scheduledAt": isoformat_z(self._clock()),
                "scheduledFor": isoformat_z(due_at),
                "reason": (reason or "").strip() or None,
            }
            self.store.write_claims_settings(settings)

        if replaced:
            _log("info", "Replacing scheduled claims %s for %s %s", replaced.get("action"),
                 replaced.get("date"), replaced.get("time"))
        self.store.log_activity(
            "toggle",
            f"Scheduled claims {action} for {date_value} {time_value}",
            user=user,
            ip=ip,
            details={"scheduledFor": isoformat_z(due_at), "replaced": replaced},
        )
        return copy.deepcopy(settings)

    def cancel_schedule(self, user: str, ip: Optional[str] = None) -> dict:
        with self._lock:
            settings = self._load()
            cancelled = settings.pop("scheduledToggle", None)
            if not cancelled:
                raise ClaimsSettingsError("There is no scheduled toggle to cancel", status_code=404)
            self.store.write_claims_settings(settings)
        self.store.log_activity("toggle", "Scheduled toggle cancelled", user=user, ip=ip,
                                details={"cancelled": cancelled})
        return copy.deepcopy(settings)

    def _scheduled_at(self, schedule: dict) -> Optional[datetime]:
        try:
            naive = datetime.strptime(f"{schedule['date']} {schedule['time']}", "%Y-%m-%d %H:%M")
        except (KeyError, TypeError, ValueError):
            return parse_timestamp(schedule.get("scheduledFor")) if isinstance(schedule, dict) else None
        return naive.replace(tzinfo=self.zone)

    def _apply_due_schedule(self, settings: dict) -> dict:
        schedule = settings.get("scheduledToggle")
        if not isinstance(schedule, dict):
            settings.pop("scheduledToggle", None)
            return settings
        due_at = self._scheduled_at(schedule)
        if due_at is None or due_at > self._clock():
            return settings

        action = schedule.get("action")
        settings["isEnabled"] = action == "enable"
        settings["lastToggled"] = isoformat_z(self._clock())
        settings["toggledBy"] = f"Scheduled by {schedule.get('scheduledBy') or 'System'}"
        settings.pop("scheduledToggle", None)
        self.store.write_claims_settings(settings)
        self.store.log_activity("toggle", f"Scheduled toggle executed: claims {action}d", user="System",
                                details={"schedule": schedule})
        _log("info", "Executed scheduled claims %s", action)
        return settings


def _log(level: str, message: str, *args) -> None:
    log = current_app.logger if has_app_context() else logger
    getattr(log, level)(message, *args)
