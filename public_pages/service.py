"""Read-side helpers for the public FAQ, dates and contact pages."""

from __future__ import annotations

from datetime import date, datetime
from typing import Callable, Dict, Optional

import requests
from flask import current_app

from admin_dashboard.records import date_status, next_deadline
from admin_dashboard.store import AdminStore, StoreError
from clock import isoformat_z, parse_date, settlement_zone, utc_now
from .forms import ContactForm

DEFAULT_DEADLINE = "2025-03-26"
DATE_STATUSES = ("passed", "today", "upcoming")
WEBHOOK_TIMEOUT_SECONDS = 10


class ContactDeliveryError(Exception):
    """Raised when a contact message could not be forwarded or recorded."""


def format_deadline(value: date) -> str:
    return f"{value:%B} {value.day}, {value.year}".upper()


class PublicContentService:
    def __init__(
        self,
        store: AdminStore,
        timezone_name: Optional[str] = None,
        default_deadline: Optional[str] = None,
        contact_webhook_url: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
        http_post: Callable = requests.post,
    ) -> None:
        self.store = store
        self.zone = settlement_zone(timezone_name)
        self.default_deadline = parse_date(default_deadline) or parse_date(DEFAULT_DEADLINE)
        self.contact_webhook_url = contact_webhook_url
        self._clock = clock
        self._http_post = http_post

    def today(self) -> date:
        return self._clock().astimezone(self.zone).date()

    # ------------------------------------------------------------------ faqs

    def faqs(self, query: Optional[str] = None, category: Optional[str] = None) -> dict:
        document = self.store.get_faqs()
        visible = sorted(
            (faq for faq in document.get("faqs", []) if faq.get("isVisible", True)),
            key=lambda faq: (faq.get("order", 0), faq.get("id", 0)),
        )
        counts: Dict[str, int] = {}
        for faq in visible:
            name = faq.get("category") or "General"
            counts[name] = counts.get(name, 0) + 1

        matches = visible
        if category:
            matches = [faq for faq in matches if (faq.get("category") or "General") == category]
        needle = (query or "").strip().lower()
        if needle:
            matches = [
                faq for faq in matches
                if needle in str(faq.get("question", "")).lower() or needle in str(faq.get("answer", "")).lower()
            ]
        return {
            "faqs": matches,
            "categories": counts,
            "total": len(visible),
            "lastUpdated": document.get("lastUpdated"),
        }

    # ----------------------------------------------------------------- dates

    def important_dates(self, date_type: Optional[str] = None, status: Optional[str] = None) -> dict:
        today = self.today()
        entries = []
        for item in self.store.get_dates().get("dates", []):
            if not item.get("isVisible", True):
                continue
            parsed = parse_date(item.get("date"))
            entry = dict(item)
            entry["status"] = date_status(parsed, today)
            entry["daysUntil"] = (parsed - today).days if parsed else None
            entries.append(entry)
        entries.sort(key=lambda entry: str(entry.get("date", "")))
        if date_type:
            entries = [entry for entry in entries if entry.get("type") == date_type]
        if status in DATE_STATUSES:
            entries = [entry for entry in entries if entry["status"] == status]
        return {"dates": entries, "today": today.isoformat()}

    def deadline(self) -> dict:
        """Next visible deadline from the dates file, or the configured default."""
        found = None
        try:
            found = next_deadline(self.store.get_dates().get("dates", []), self.today())
        except StoreError as exc:
            current_app.logger.warning("Loading deadline failed, using default: %s", exc)
        if found:
            value = parse_date(found["date"])
            return {
                "date": value.isoformat(),
                "formatted": format_deadline(value),
                "title": found.get("title"),
                "isFromDatabase": True,
            }
        return {
            "date": self.default_deadline.isoformat(),
            "formatted": format_deadline(self.default_deadline),
            "isFromDatabase": False,
        }

    # --------------------------------------------------------------- contact

    def submit_contact(self, form: ContactForm, ip: Optional[str] = None) -> str:
        """Forward to the webhook when configured, otherwise record an activity."""
        payload = form.model_dump()
        payload["receivedAt"] = isoformat_z(self._clock())
        if self.contact_webhook_url:
            try:
                resp = self._http_post(self.contact_webhook_url, json=payload, timeout=WEBHOOK_TIMEOUT_SECONDS)
                resp.raise_for_status()
            except requests.RequestException as exc:
                current_app.logger.error("Contact webhook delivery failed: %s", exc)
                raise ContactDeliveryError("We could not send your message. Please try again later.") from exc
            current_app.logger.info("Contact message from %s forwarded", form.email)
            return "webhook"
        try:
            self.store.log_activity(
                "contact",
                f"Contact form: {form.subject}",
                user=form.email,
                ip=ip,
                details=payload,
            )
        except StoreError as exc:
            current_app.logger.error("Recording contact message failed: %s", exc)
            raise ContactDeliveryError("We could not send your message. Please try again later.") from exc
        return "activity"

