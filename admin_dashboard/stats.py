"""Numbers for the dashboard overview."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Optional

from flask import current_app

from claims.repository import RepositoryError
from clock import parse_date, parse_timestamp, utc_now
from .records import next_deadline
from .settings import ClaimsSettingsService
from .store import AdminStore


def dashboard_stats(
    store: AdminStore,
    settings_service: ClaimsSettingsService,
    repository,
    clock: Callable[[], datetime] = utc_now,
) -> dict:
    zone = settings_service.zone
    now_local = clock().astimezone(zone)
    today = now_local.date()
    week_start = today - timedelta(days=today.weekday())
    month_start = today.replace(day=1)

    submissions = {"total": 0, "today": 0, "thisWeek": 0, "thisMonth": 0, "drafts": 0}
    available = True
    try:
        stamps = repository.submitted_timestamps()
        submissions["drafts"] = repository.count_drafts()
    except RepositoryError as exc:
        current_app.logger.error("Loading claim statistics failed: %s", exc)
        stamps = []
        available = False
    for raw in stamps:
        submissions["total"] += 1
        submitted_at = parse_timestamp(raw)
        if submitted_at is None:
            continue
        local_day = submitted_at.astimezone(zone).date()
        if local_day == today:
            submissions["today"] += 1
        if local_day >= week_start:
            submissions["thisWeek"] += 1
        if local_day >= month_start:
            submissions["thisMonth"] += 1
    submissions["available"] = available

    settings = settings_service.get_settings()
    content = store.get_content()
    deadline = next_deadline(store.get_dates().get("dates", []), today)
    days_until: Optional[int] = None
    if deadline:
        days_until = (parse_date(deadline["date"]) - today).days

    return {
        "submissions": submissions,
        "claims": {
            "isEnabled": settings["isEnabled"],
            "lastToggled": settings.get("lastToggled"),
            "toggledBy": settings.get("toggledBy"),
            "scheduledToggle": settings.get("scheduledToggle"),
        },
        "content": {
            "sections": len(content.get("sections", [])),
            "lastUpdated": content.get("lastUpdated"),
            "updatedBy": content.get("updatedBy"),
        },
        "nextDeadline": deadline,
        "daysUntilDeadline": days_until,
    }
