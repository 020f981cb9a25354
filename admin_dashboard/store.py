"""JSON file store behind the admin dashboard.

Content sections, FAQs, important dates, claims settings and the activity
log each live in their own file under the data directory. Every write
copies the previous file to ``<name>.backup`` first. Saves carry a
``major.minor.patch`` version that is bumped each time; callers may pass
the version they loaded and get :class:`StoreConflict` if someone else
saved in between.
"""

from __future__ import annotations

import copy
import json
import os
import shutil
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from clock import isoformat_z, utc_now

CONTENT_FILE = "admin-content.json"
FAQ_FILE = "admin-faqs.json"
DATES_FILE = "admin-dates.json"
SETTINGS_FILE = "admin-settings.json"
ACTIVITY_FILE = "admin-activity.json"

ACTIVITY_LIMIT = 1000
ACTIVITY_TYPES = ("claim", "content", "system", "login", "toggle", "faq", "date", "security", "contact")
INITIAL_VERSION = "1.0.0"

SEED_DIR = Path(__file__).resolve().parent / "seed"


class StoreError(Exception):
    """Raised when a data file cannot be written."""


class StoreConflict(StoreError):
    """Raised when a save names a version older than the stored one."""

    def __init__(self, current_version: str):
        super().__init__(f"Data was changed by someone else (current version {current_version}).")
        self.current_version = current_version


def increment_version(version: Optional[str]) -> str:
    """Bump the patch number; unparseable versions restart at ``1.0.1``."""
    parts = str(version or "").split(".")
    try:
        numbers = [int(part) for part in parts]
    except ValueError:
        numbers = []
    if not numbers:
        numbers = [1, 0, 0]
    while len(numbers) < 3:
        numbers.append(0)
    numbers[2] += 1
    return ".".join(str(number) for number in numbers[:3])


class AdminStore:
    def __init__(
        self,
        data_dir: Path,
        seed_dir: Optional[Path] = SEED_DIR,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.data_dir = Path(data_dir)
        self.seed_dir = Path(seed_dir) if seed_dir else None
        self._clock = clock
        self._lock = threading.RLock()

    # ------------------------------------------------------------------ files

    def _path(self, name: str) -> Path:
        return self.data_dir / name

    def _read(self, name: str, default: Any) -> Any:
        path = self._path(name)
        try:
            with path.open("r", encoding="utf-8") as handle:
                return json.load(handle)
        except (OSError, ValueError):
            return copy.deepcopy(default)

    def _write(self, name: str, data: Any) -> None:
        path = self._path(name)
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            if path.exists():
                shutil.copyfile(path, path.with_name(path.name + ".backup"))
            tmp_path = path.with_name(path.name + ".tmp")
            with tmp_path.open("w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2, ensure_ascii=False)
            os.replace(tmp_path, path)
        except OSError as exc:
            raise StoreError(f"Could not write {name}: {exc}") from exc

    def _seed(self, name: str) -> dict:
        if self.seed_dir is None:
            return {}
        try:
            with (self.seed_dir / name).open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (OSError, ValueError):
            return {}
        return payload if isinstance(payload, dict) else {}

    def _now(self) -> str:
        return isoformat_z(self._clock())

    def _default_document(self, name: str, key: str) -> dict:
        seed = self._seed(name)
        document = {
            key: seed.get(key, []),
            "lastUpdated": self._now(),
            "updatedBy": "System",
            "version": INITIAL_VERSION,
        }
        if key == "faqs":
            document["categories"] = _faq_categories(document["faqs"])
        return document

    def _load_document(self, name: str, key: str) -> dict:
        document = self._read(name, None)
        if not isinstance(document, dict) or not isinstance(document.get(key), list):
            return self._default_document(name, key)
        document.setdefault("version", INITIAL_VERSION)
        return document

    def _save_document(
        self,
        name: str,
        key: str,
        items: List[dict],
        user: str,
        expected_version: Optional[str],
        activity_type: str,
        message: str,
        ip: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> dict:
        with self._lock:
            current = self._load_document(name, key)
            if expected_version and expected_version != current.get("version"):
                raise StoreConflict(current.get("version", INITIAL_VERSION))
            document = {
                key: items,
                "lastUpdated": self._now(),
                "updatedBy": user,
                "version": increment_version(current.get("version")),
            }
            if key == "faqs":
                document["categories"] = _faq_categories(items)
            self._write(name, document)
            self.log_activity(activity_type, message, user=user, ip=ip, details=details)
            return document

    # ---------------------------------------------------------------- content

    def get_content(self) -> dict:
        return self._load_document(CONTENT_FILE, "sections")

    def save_content(self, sections: List[dict], user: str, expected_version: Optional[str] = None,
                     ip: Optional[str] = None, message: Optional[str] = None,
                     details: Optional[dict] = None) -> dict:
        return self._save_document(
            CONTENT_FILE, "sections", sections, user, expected_version, "content",
            message or f"Updated {len(sections)} content sections", ip, details,
        )

    # ------------------------------------------------------------------- faqs

    def get_faqs(self) -> dict:
        return self._load_document(FAQ_FILE, "faqs")

    def save_faqs(self, faqs: List[dict], user: str, expected_version: Optional[str] = None,
                  ip: Optional[str] = None, message: Optional[str] = None) -> dict:
        return self._save_document(
            FAQ_FILE, "faqs", faqs, user, expected_version, "faq",
            message or f"Updated FAQs ({len(faqs)} total)", ip, {"faqCount": len(faqs)},
        )

    # ------------------------------------------------------------------ dates

    def get_dates(self) -> dict:
        return self._load_document(DATES_FILE, "dates")

    def save_dates(self, dates: List[dict], user: str, expected_version: Optional[str] = None,
                   ip: Optional[str] = None, message: Optional[str] = None,
                   details: Optional[dict] = None) -> dict:
        return self._save_document(
            DATES_FILE, "dates", dates, user, expected_version, "date",
            message or f"Updated important dates ({len(dates)} total)", ip, details,
        )

    # --------------------------------------------------------------- settings

    def read_claims_settings(self) -> Optional[dict]:
        payload = self._read(SETTINGS_FILE, {})
        settings = payload.get("claimsSettings") if isinstance(payload, dict) else None
        return settings if isinstance(settings, dict) else None

    def write_claims_settings(self, settings: dict) -> None:
        with self._lock:
            payload = self._read(SETTINGS_FILE, {})
            if not isinstance(payload, dict):
                payload = {}
            payload["claimsSettings"] = settings
            self._write(SETTINGS_FILE, payload)

    # --------------------------------------------------------------- activity

    def log_activity(self, activity_type: str, message: str, user: Optional[str] = None,
                     ip: Optional[str] = None, details: Optional[dict] = None) -> dict:
        entry = {
            "id": uuid.uuid4().hex,
            "type": activity_type if activity_type in ACTIVITY_TYPES else "system",
            "message": message,
            "timestamp": self._now(),
            "user": user,
            "ip": ip,
            "details": details,
        }
        with self._lock:
            log = self._read(ACTIVITY_FILE, [])
            if not isinstance(log, list):
                log = []
            log.insert(0, entry)
            self._write(ACTIVITY_FILE, log[:ACTIVITY_LIMIT])
        return entry

    def get_activity(self, limit: int = 50, activity_type: Optional[str] = None) -> List[dict]:
        log = self._read(ACTIVITY_FILE, [])
        if not isinstance(log, list):
            return []
        if activity_type:
            log = [entry for entry in log if entry.get("type") == activity_type]
        return log[: max(0, limit)]

    # ------------------------------------------------------------ maintenance

    def export_all(self) -> dict:
        return {
            "content": self.get_content(),
            "faqs": self.get_faqs(),
            "dates": self.get_dates(),
            "claimsSettings": self.read_claims_settings(),
            "activity": self.get_activity(limit=100),
            "exportedAt": self._now(),
        }

    def create_backup(self, user: str = "System") -> Path:
        backup_dir = self.data_dir / "backups"
        stamp = self._clock().strftime("%Y-%m-%dT%H-%M-%S")
        path = backup_dir / f"backup-{stamp}.json"
        with self._lock:
            try:
                backup_dir.mkdir(parents=True, exist_ok=True)
                with path.open("w", encoding="utf-8") as handle:
                    json.dump(self.export_all(), handle, indent=2, ensure_ascii=False)
            except OSError as exc:
                raise StoreError(f"Could not write backup: {exc}") from exc
            self.log_activity("system", f"Backup created: {path.name}", user=user)
        return path

    def health_check(self) -> Dict[str, Any]:
        """Report whether each data file reads and whether the directory is writable."""
        files: Dict[str, str] = {}
        for name in (CONTENT_FILE, FAQ_FILE, DATES_FILE, SETTINGS_FILE, ACTIVITY_FILE):
            path = self._path(name)
            if not path.exists():
                files[name] = "missing"
                continue
            try:
                with path.open("r", encoding="utf-8") as handle:
                    json.load(handle)
                files[name] = "ok"
            except (OSError, ValueError):
                files[name] = "corrupt"

        writable = os.access(self.data_dir, os.W_OK) if self.data_dir.exists() else False
        healthy = writable and "corrupt" not in files.values()
        return {
            "status": "healthy" if healthy else "unhealthy",
            "writable": writable,
            "files": files,
            "checkedAt": self._now(),
        }

    def initialize_defaults(self) -> List[str]:
        """Create any missing data files from the packaged seed data."""
        created: List[str] = []
        with self._lock:
            for name, key in ((CONTENT_FILE, "sections"), (FAQ_FILE, "faqs"), (DATES_FILE, "dates")):
                if not self._path(name).exists():
                    self._write(name, self._default_document(name, key))
                    created.append(name)
            if created:
                self.log_activity("system", "Default data initialized", user="System",
                                  details={"files": created})
        return created


def _faq_categories(faqs: List[dict]) -> List[str]:
    seen: List[str] = []
    for faq in faqs:
        category = faq.get("category") if isinstance(faq, dict) else None
        if category and category not in seen:
            seen.append(category)
    return seen
