"""Admin operations on content sections, FAQs and important dates."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from flask import current_app

from .records import (
    date_changes,
    describe_date_changes,
    next_faq_id,
    section_threats,
    validate_dates,
    validate_faqs,
    validate_section,
    validate_sections,
)
from .store import AdminStore, StoreConflict, StoreError


class AdminServiceError(Exception):
    def __init__(self, message: str, status_code: int = 400, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload or {"error": message}


def _validation_error(message: str, errors: List[str]) -> AdminServiceError:
    return AdminServiceError(message, status_code=400, payload={"error": message, "details": errors})


class AdminContentService:
    def __init__(self, store: AdminStore) -> None:
        self.store = store

    def _save(self, saver, *args, **kwargs) -> dict:
        try:
            return saver(*args, **kwargs)
        except StoreConflict as exc:
            raise AdminServiceError(
                str(exc),
                status_code=409,
                payload={"error": str(exc), "currentVersion": exc.current_version},
            ) from exc
        except StoreError as exc:
            current_app.logger.error("Admin store write failed: %s", exc)
            raise AdminServiceError("Failed to save changes.", status_code=500) from exc

    def _record_threats(self, sections: List[Any], user: str, ip: Optional[str]) -> None:
        threats = section_threats(sections)
        if not threats:
            return
        current_app.logger.warning("Suspicious content submitted by %s: %s", user,
                                   ", ".join(threat.rule_id for threat in threats))
        self.store.log_activity(
            "security",
            "Suspicious input removed from content update",
            user=user,
            ip=ip,
            details={"threats": [threat.to_dict() for threat in threats]},
        )

    # ---------------------------------------------------------------- content

    def get_content(self, category: Optional[str] = None) -> dict:
        document = self.store.get_content()
        if category:
            document = {**document, "sections": [
                section for section in document["sections"] if section.get("category") == category
            ]}
        return document

    def replace_sections(self, sections: Any, user: str, expected_version: Optional[str] = None,
                         ip: Optional[str] = None) -> dict:
        cleaned, errors = validate_sections(sections)
        if errors:
            raise _validation_error("Invalid content data", errors)
        self._record_threats(sections, user, ip)
        return self._save(self.store.save_content, cleaned, user, expected_version, ip)

    def save_section(self, raw: Any, user: str, *, create: bool = False,
                     expected_version: Optional[str] = None, ip: Optional[str] = None) -> dict:
        section, errors = validate_section(raw)
        if errors:
            raise _validation_error("Invalid content section", errors)
        document = self.store.get_content()
        sections = list(document["sections"])
        index = next((i for i, item in enumerate(sections) if item.get("id") == section["id"]), None)
        if create and index is not None:
            raise AdminServiceError("A content section with that id already exists.", status_code=409)
        if not create and index is None:
            raise AdminServiceError("Content section not found.", status_code=404)
        if index is None:
            sections.append(section)
            message = f"Created content section {section['id']}"
        else:
            sections[index] = section
            message = f"Updated content section {section['id']}"
        self._record_threats([raw], user, ip)
        return self._save(self.store.save_content, sections, user,
                          expected_version or document.get("version"), ip, message,
                          {"sectionId": section["id"]})

    def delete_section(self, section_id: str, user: str, expected_version: Optional[str] = None,
                       ip: Optional[str] = None) -> dict:
        document = self.store.get_content()
        sections = list(document["sections"])
        target = next((item for item in sections if item.get("id") == section_id), None)
        if target is None:
            raise AdminServiceError("Content section not found.", status_code=404)
        if target.get("required"):
            raise AdminServiceError("Required content sections cannot be deleted.", status_code=400)
        sections.remove(target)
        return self._save(self.store.save_content, sections, user,
                          expected_version or document.get("version"), ip,
                          f"Deleted content section {section_id}", {"sectionId": section_id})

    # ------------------------------------------------------------------- faqs

    def get_faqs(self, visible_only: bool = False) -> dict:
        document = self.store.get_faqs()
        faqs = sorted(document["faqs"], key=lambda faq: (faq.get("order", 0), faq.get("id", 0)))
        if visible_only:
            faqs = [faq for faq in faqs if faq.get("isVisible", True)]
        return {**document, "faqs": faqs}

    def replace_faqs(self, faqs: Any, user: str, expected_version: Optional[str] = None,
                     ip: Optional[str] = None) -> dict:
        cleaned, errors = validate_faqs(faqs, user)
        if errors:
            raise _validation_error("Invalid FAQ data", errors)
        return self._save(self.store.save_faqs, cleaned, user, expected_version, ip)

    def save_faq(self, raw: dict, user: str, ip: Optional[str] = None) -> dict:
        """Add (no id) or update one FAQ from the dashboard form."""
        document = self.store.get_faqs()
        faqs = [dict(faq) for faq in document["faqs"]]
        entry = dict(raw)
        if entry.get("id") in (None, ""):
            entry["id"] = next_faq_id(faqs)
            entry.setdefault("order", len(faqs) + 1)
            faqs.append(entry)
            message = "Added FAQ"
        else:
            try:
                entry["id"] = int(entry["id"])
            except (TypeError, ValueError) as exc:
                raise AdminServiceError("FAQ id must be a number.") from exc
            index = next((i for i, faq in enumerate(faqs) if faq.get("id") == entry["id"]), None)
            if index is None:
                raise AdminServiceError("FAQ not found.", status_code=404)
            entry.pop("lastModified", None)
            entry.pop("modifiedBy", None)
            faqs[index] = {**faqs[index], **entry, "lastModified": None, "modifiedBy": user}
            message = f"Updated FAQ {entry['id']}"
        cleaned, errors = validate_faqs(faqs, user)
        if errors:
            raise _validation_error("Invalid FAQ data", errors)
        return self._save(self.store.save_faqs, cleaned, user, document.get("version"), ip, message)

    def delete_faq(self, faq_id: int, user: str, ip: Optional[str] = None) -> dict:
        document = self.store.get_faqs()
        faqs = [faq for faq in document["faqs"] if faq.get("id") != faq_id]
        if len(faqs) == len(document["faqs"]):
            raise AdminServiceError("FAQ not found.", status_code=404)
        return self._save(self.store.save_faqs, faqs, user, document.get("version"), ip,
                          f"Deleted FAQ {faq_id}")

    def set_faq_visibility(self, faq_id: int, visible: bool, user: str, ip: Optional[str] = None) -> dict:
        return self.save_faq({"id": faq_id, "isVisible": bool(visible)}, user, ip)

    # ------------------------------------------------------------------ dates

    def get_dates(self, visible_only: bool = False) -> dict:
        document = self.store.get_dates()
        dates = sorted(document["dates"], key=lambda item: str(item.get("date", "")))
        if visible_only:
            dates = [item for item in dates if item.get("isVisible", True)]
        return {**document, "dates": dates}

    def replace_dates(self, dates: Any, user: str, expected_version: Optional[str] = None,
                      ip: Optional[str] = None) -> dict:
        cleaned, errors = validate_dates(dates)
        if errors:
            raise _validation_error("Invalid date data", errors)
        current = self.store.get_dates()
        changes = date_changes(current["dates"], cleaned)
        return self._save(
            self.store.save_dates, cleaned, user, expected_version, ip,
            f"Updated important dates ({describe_date_changes(changes)})", {"changes": changes},
        )

    def save_date(self, raw: dict, user: str, *, create: bool = False,
                  expected_version: Optional[str] = None, ip: Optional[str] = None) -> dict:
        document = self.store.get_dates()
        dates = [dict(item) for item in document["dates"]]
        entry = dict(raw)
        if create and not entry.get("id"):
            entry["id"] = _unique_slug(entry.get("title") or "date", {item.get("id") for item in dates})
        index = next((i for i, item in enumerate(dates) if item.get("id") == entry.get("id")), None)
        if create and index is not None:
            raise AdminServiceError("A date with that id already exists.", status_code=409)
        if not create and index is None:
            raise AdminServiceError("Date not found.", status_code=404)
        entry["lastModified"] = None
        if index is None:
            dates.append(entry)
        else:
            dates[index] = {**dates[index], **entry}
        return self.replace_dates(dates, user, expected_version or document.get("version"), ip)

    def delete_date(self, date_id: str, user: str, expected_version: Optional[str] = None,
                    ip: Optional[str] = None) -> dict:
        document = self.store.get_dates()
        dates = [item for item in document["dates"] if item.get("id") != date_id]
        if len(dates) == len(document["dates"]):
            raise AdminServiceError("Date not found.", status_code=404)
        return self.replace_dates(dates, user, expected_version or document.get("version"), ip)


def _unique_slug(title: str, taken: set) -> str:
    base = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-") or "date"
    slug = base
    counter = 2
    while slug in taken:
        slug = f"{base}-{counter}"
        counter += 1
    return slug
