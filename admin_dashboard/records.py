"""Validation and change tracking for admin-edited content, FAQs and dates."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Tuple

from clock import isoformat_z, parse_date
from input_sanitizer import InputSanitizer, ThreatMatch

CONTENT_TYPES = ("text", "html", "number", "date")
CONTENT_CATEGORIES = ("hero", "settlement", "contact", "footer", "general")
DATE_TYPES = ("deadline", "event", "milestone", "announcement")
TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")
TRACKED_DATE_FIELDS = ("title", "date", "time", "description", "type", "isUrgent", "isVisible")

_SANITIZER = InputSanitizer()


# ------------------------------------------------------------------ content

def validate_sections(sections: Any) -> Tuple[List[dict], List[str]]:
    if not isinstance(sections, list):
        return [], ["Sections must be a list."]
    errors: List[str] = []
    seen: set = set()
    cleaned: List[dict] = []
    for index, raw in enumerate(sections, start=1):
        section, section_errors = validate_section(raw, index)
        errors.extend(section_errors)
        if section:
            if section["id"] in seen:
                errors.append(f"Section {index}: duplicate id {section['id']!r}.")
            seen.add(section["id"])
            cleaned.append(section)
    return cleaned, errors


def validate_section(raw: Any, index: int = 1) -> Tuple[Optional[dict], List[str]]:
    label = f"Section {index}"
    if not isinstance(raw, dict):
        return None, [f"{label}: must be an object."]
    errors: List[str] = []
    section_id = str(raw.get("id") or "").strip()
    title = str(raw.get("title") or "").strip()
    content = raw.get("content")
    content_type = raw.get("type") or "text"
    category = raw.get("category") or "general"

    if not section_id:
        errors.append(f"{label}: id is required.")
    elif not re.fullmatch(r"[a-z0-9_\-]+", section_id):
        errors.append(f"{label}: id may only contain lowercase letters, digits, '-' and '_'.")
    if not title:
        errors.append(f"{label}: title is required.")
    if content is None:
        content = ""
    if not isinstance(content, str):
        errors.append(f"{label}: content must be a string.")
        content = ""
    if content_type not in CONTENT_TYPES:
        errors.append(f"{label}: type must be one of {', '.join(CONTENT_TYPES)}.")
    if category not in CONTENT_CATEGORIES:
        errors.append(f"{label}: category must be one of {', '.join(CONTENT_CATEGORIES)}.")
    if raw.get("required") and not content.strip():
        errors.append(f"{label}: {title or section_id} is required and cannot be empty.")
    if content_type == "date" and content.strip() and parse_date(content) is None:
        errors.append(f"{label}: content must be a valid date.")
    max_length = raw.get("maxLength")
    if isinstance(max_length, int) and max_length > 0 and len(content) > max_length:
        errors.append(f"{label}: content must be {max_length} characters or fewer.")
    if errors:
        return None, errors

    if content_type == "html":
        content = _SANITIZER.clean_html(content)
    else:
        content = _SANITIZER.clean_text(content)

    section = {
        "id": section_id,
        "title": _SANITIZER.clean_text(title, 200),
        "content": content,
        "type": content_type,
        "category": category,
    }
    for optional in ("placeholder", "required", "maxLength"):
        if optional in raw and raw[optional] is not None:
            section[optional] = raw[optional]
    return section, []


def section_threats(sections: List[Any]) -> List[ThreatMatch]:
    values: List[Optional[str]] = []
    for section in sections:
        if isinstance(section, dict):
            values.extend(str(section.get(key) or "") for key in ("title", "content"))
    return _SANITIZER.inspect_many(values)


# --------------------------------------------------------------------- faqs

def validate_faqs(faqs: Any, user: str) -> Tuple[List[dict], List[str]]:
    if not isinstance(faqs, list):
        return [], ["FAQs must be a list."]
    errors: List[str] = []
    cleaned: List[dict] = []
    seen_ids: set = set()
    for index, raw in enumerate(faqs, start=1):
        label = f"FAQ {index}"
        before = len(errors)
        if not isinstance(raw, dict):
            errors.append(f"{label}: must be an object.")
            continue
        faq_id = raw.get("id")
        if not isinstance(faq_id, int) or isinstance(faq_id, bool):
            errors.append(f"{label}: id must be a number.")
        elif faq_id in seen_ids:
            errors.append(f"{label}: duplicate id {faq_id}.")
        else:
            seen_ids.add(faq_id)
        question = raw.get("question")
        answer = raw.get("answer")
        if not isinstance(question, str) or not question.strip():
            errors.append(f"{label}: question is required.")
        if not isinstance(answer, str) or not answer.strip():
            errors.append(f"{label}: answer is required.")
        category = raw.get("category", "General")
        if not isinstance(category, str):
            errors.append(f"{label}: category must be a string.")
        is_visible = raw.get("isVisible", True)
        if not isinstance(is_visible, bool):
            errors.append(f"{label}: isVisible must be true or false.")
        order = raw.get("order", index)
        if not isinstance(order, int) or isinstance(order, bool) or order < 1:
            errors.append(f"{label}: order must be a number of at least 1.")
        if len(errors) > before:
            continue
        cleaned.append({
            "id": faq_id,
            "question": _SANITIZER.clean_text(question, 500),
            "answer": _SANITIZER.clean_html(answer.strip()),
            "category": _SANITIZER.clean_text(category, 100) or "General",
            "isVisible": is_visible,
            "order": order,
            "lastModified": raw.get("lastModified") or isoformat_z(),
            "modifiedBy": raw.get("modifiedBy") or user,
        })
    cleaned.sort(key=lambda faq: (faq["order"], faq["id"]))
    return cleaned, errors


def next_faq_id(faqs: List[dict]) -> int:
    ids = [faq.get("id") for faq in faqs if isinstance(faq.get("id"), int)]
    return max(ids, default=0) + 1


# -------------------------------------------------------------------- dates

def validate_date_entry(raw: Any, index: int = 1) -> Tuple[Optional[dict], List[str]]:
    label = f"Date {index}"
    if not isinstance(raw, dict):
        return None, [f"{label}: must be an object."]
    errors: List[str] = []
    date_id = raw.get("id")
    title = raw.get("title")
    description = raw.get("description")
    date_type = raw.get("type")
    time_value = raw.get("time") or ""
    if not isinstance(date_id, str) or not date_id.strip():
        errors.append(f"{label}: id must be a string.")
    if not isinstance(title, str) or not title.strip():
        errors.append(f"{label}: title is required.")
    if parse_date(raw.get("date")) is None:
        errors.append(f"{label}: date must be a valid date.")
    if not isinstance(description, str) or not description.strip():
        errors.append(f"{label}: description is required.")
    if date_type not in DATE_TYPES:
        errors.append(f"{label}: type must be one of {', '.join(DATE_TYPES)}.")
    for flag in ("isUrgent", "isVisible"):
        if flag in raw and not isinstance(raw[flag], bool):
            errors.append(f"{label}: {flag} must be true or false.")
    if time_value and (not isinstance(time_value, str) or not TIME_PATTERN.match(time_value)):
        errors.append(f"{label}: time must be in HH:MM format.")
    if errors:
        return None, errors
    entry = {
        "id": date_id.strip(),
        "title": _SANITIZER.clean_text(title, 200),
        "date": parse_date(raw["date"]).isoformat(),
        "description": _SANITIZER.clean_text(description, 2000),
        "type": date_type,
        "isUrgent": bool(raw.get("isUrgent", False)),
        "isVisible": bool(raw.get("isVisible", True)),
        "lastModified": raw.get("lastModified") or isoformat_z(),
    }
    if time_value:
        entry["time"] = time_value
    return entry, []


def validate_dates(dates: Any) -> Tuple[List[dict], List[str]]:
    if not isinstance(dates, list):
        return [], ["Dates must be a list."]
    errors: List[str] = []
    cleaned: List[dict] = []
    seen: set = set()
    for index, raw in enumerate(dates, start=1):
        entry, entry_errors = validate_date_entry(raw, index)
        errors.extend(entry_errors)
        if entry:
            if entry["id"] in seen:
                errors.append(f"Date {index}: duplicate id {entry['id']!r}.")
            seen.add(entry["id"])
            cleaned.append(entry)
    cleaned.sort(key=lambda item: item["date"])
    return cleaned, errors


def date_changes(old: List[dict], new: List[dict]) -> Dict[str, list]:
    """Summarize added, modified (with field names) and removed date ids."""
    old_by_id = {item.get("id"): item for item in old if isinstance(item, dict)}
    new_by_id = {item.get("id"): item for item in new if isinstance(item, dict)}
    added = [item_id for item_id in new_by_id if item_id not in old_by_id]
    removed = [item_id for item_id in old_by_id if item_id not in new_by_id]
    modified = []
    for item_id, item in new_by_id.items():
        previous = old_by_id.get(item_id)
        if previous is None:
            continue
        fields = [key for key in TRACKED_DATE_FIELDS if previous.get(key) != item.get(key)]
        if fields:
            modified.append({"id": item_id, "fields": fields})
    return {"added": added, "modified": modified, "removed": removed}


def describe_date_changes(changes: Dict[str, list]) -> str:
    parts = []
    if changes["added"]:
        parts.append(f"{len(changes['added'])} added")
    if changes["modified"]:
        parts.append(f"{len(changes['modified'])} modified")
    if changes["removed"]:
        parts.append(f"{len(changes['removed'])} removed")
    return ", ".join(parts) or "no changes"


def date_status(value: Any, today) -> str:
    """``passed``, ``today`` or ``upcoming`` relative to ``today`` (a date)."""
    parsed = parse_date(value)
    if parsed is None:
        return "upcoming"
    if parsed < today:
        return "passed"
    if parsed == today:
        return "today"
    return "upcoming"


def next_deadline(dates: List[dict], today) -> Optional[dict]:
    """Earliest visible deadline falling on or after ``today``."""
    candidates = []
    for item in dates:
        if item.get("type") != "deadline" or not item.get("isVisible", True):
            continue
        parsed = parse_date(item.get("date"))
        if parsed is not None and parsed >= today:
            candidates.append((parsed, item))
    if not candidates:
        return None
    candidates.sort(key=lambda pair: pair[0])
    return candidates[0][1]
