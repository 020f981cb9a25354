"""Session-based admin dashboard pages."""

from __future__ import annotations

import json
from typing import Callable, Optional

from flask import (
    Blueprint,
    Response,
    current_app,
    flash,
    g,
    redirect,
    render_template,
    request,
    session,
    url_for,
)

from clock import isoformat_z
from documents.service import DocumentService, DocumentServiceError
from .auth import SESSION_TOKEN_KEY, AdminAuthBackend, AuthError, LoginThrottle, make_dashboard_guard
from .records import CONTENT_CATEGORIES, CONTENT_TYPES, DATE_TYPES
from .service import AdminContentService, AdminServiceError
from .settings import ClaimsSettingsError, ClaimsSettingsService
from .stats import dashboard_stats
from .store import StoreError

URL_PREFIX = "/admin-dashboard-Logix"


def create_admin_dashboard_blueprint(
    settings_service: ClaimsSettingsService,
    content_service: AdminContentService,
    auth_backend: AdminAuthBackend,
    document_service: DocumentService,
    claims_repository,
    login_throttle: Optional[LoginThrottle] = None,
    clock: Optional[Callable] = None,
) -> Blueprint:
    """Factory so the pages share the app's auth backend and services."""

    bp = Blueprint("admin_dashboard", __name__, url_prefix=URL_PREFIX)
    store = content_service.store
    admin_required = make_dashboard_guard(auth_backend)
    throttle = login_throttle or LoginThrottle()

    def _user() -> str:
        return g.admin_user.email

    def _flash_error(exc) -> None:
        details = exc.payload.get("details") if isinstance(exc.payload, dict) else None
        flash(exc.message, "error")
        for detail in details or []:
            flash(detail, "error")

    @bp.context_processor
    def inject_admin_user():
        return {"admin_user": getattr(g, "admin_user", None)}

    # ------------------------------------------------------------------ login

    @bp.route("/login", methods=["GET", "POST"])
    def login():
        if auth_backend.resolve(session.get(SESSION_TOKEN_KEY)) is not None:
            return redirect(url_for("admin_dashboard.dashboard"))

        locked_for = throttle.locked_for()
        email = ""
        if request.method == "POST" and not locked_for:
            email = (request.form.get("email") or "").strip()
            password = request.form.get("password") or ""
            try:
                user, token = auth_backend.sign_in(email, password)
            except AuthError as exc:
                locked, remaining = throttle.record_failure()
                store.log_activity("login", f"Failed admin login for {email or 'unknown'}",
                                   user=email or None, ip=request.remote_addr, details={"locked": locked})
                if locked:
                    current_app.logger.warning("Admin dashboard login locked for %s", email or "unknown")
                    store.log_activity("security", "Admin login locked after repeated failures",
                                       user=email or None, ip=request.remote_addr)
                    locked_for = throttle.lock_seconds
                else:
                    flash(f"{exc.message} {remaining} attempt(s) remaining.", "error")
            else:
                throttle.reset()
                session[SESSION_TOKEN_KEY] = token
                store.log_activity("login", f"Admin login: {user.email}", user=user.email,
                                   ip=request.remote_addr)
                current_app.logger.info("Admin %s signed in (%s)", user.email, user.role)
                return redirect(url_for("admin_dashboard.dashboard"))

        status = 423 if locked_for else 200
        return render_template(
            "admin/login.html",
            email=email,
            locked_for=locked_for,
            remaining=throttle.remaining(),
        ), status

    @bp.route("/logout", methods=["GET", "POST"])
    def logout():
        session.pop(SESSION_TOKEN_KEY, None)
        flash("You have been logged out.", "info")
        return redirect(url_for("admin_dashboard.login"))

    # --------------------------------------------------------------- overview

    @bp.route("/", methods=["GET"])
    @admin_required()
    def dashboard():
        stats = None
        activity = []
        if g.admin_user.can("admin:read"):
            kwargs = {"clock": clock} if clock else {}
            stats = dashboard_stats(store, settings_service, claims_repository, **kwargs)
            activity = store.get_activity(limit=20)
        return render_template("admin/dashboard.html", stats=stats, activity=activity)

    # ----------------------------------------------------------------- claims

    @bp.route("/claims", methods=["GET", "POST"])
    @admin_required("claims:toggle")
    def claims():
        if request.method == "POST":
            action = request.form.get("action")
            try:
                if action == "toggle":
                    enabled = request.form.get("is_enabled") == "true"
                    settings_service.set_enabled(enabled, _user(), request.form.get("maintenance_message"),
                                                 ip=request.remote_addr)
                    flash(f"Claims filing {'enabled' if enabled else 'disabled'}.", "success")
                elif action == "message":
                    settings_service.update_message(request.form.get("maintenance_message", ""), _user(),
                                                    ip=request.remote_addr)
                    flash("Maintenance message updated.", "success")
                elif action == "schedule":
                    settings_service.schedule_toggle(
                        request.form.get("date"), request.form.get("time"), request.form.get("schedule_action"),
                        _user(), reason=request.form.get("reason"), ip=request.remote_addr,
                    )
                    flash("Toggle scheduled.", "success")
                elif action == "cancel":
                    settings_service.cancel_schedule(_user(), ip=request.remote_addr)
                    flash("Scheduled toggle cancelled.", "success")
                else:
                    flash("Unknown action.", "error")
            except (ClaimsSettingsError, AdminServiceError) as exc:
                _flash_error(exc)
            except StoreError as exc:
                current_app.logger.error("Saving claims settings failed: %s", exc)
                flash("Could not save the claims settings. Please try again.", "error")
            return redirect(url_for("admin_dashboard.claims"))
        return render_template("admin/claims.html", settings=settings_service.get_settings(),
                               timezone=str(settings_service.zone))

    # ---------------------------------------------------------------- content

    @bp.route("/content", methods=["GET", "POST"])
    @admin_required("content:read")
    def content():
        if request.method == "POST":
            if not g.admin_user.can("content:edit"):
                return render_template("admin/denied.html", permission="content:edit"), 403
            action = request.form.get("action", "save")
            section_id = (request.form.get("id") or "").strip()
            try:
                if action == "delete":
                    content_service.delete_section(section_id, _user(), request.form.get("version"),
                                                   request.remote_addr)
                    flash("Section deleted.", "success")
                else:
                    section = {
                        "id": section_id,
                        "title": request.form.get("title"),
                        "content": request.form.get("content"),
                        "type": request.form.get("type") or "text",
                        "category": request.form.get("category") or "general",
                        "required": request.form.get("required") == "on",
                    }
                    content_service.save_section(
                        section, _user(), create=action == "create",
                        expected_version=request.form.get("version"), ip=request.remote_addr,
                    )
                    flash("Section saved.", "success")
            except AdminServiceError as exc:
                _flash_error(exc)
            return redirect(url_for("admin_dashboard.content", category=request.args.get("category")))

        category = request.args.get("category") or None
        return render_template(
            "admin/content.html",
            document=content_service.get_content(category),
            category=category,
            categories=CONTENT_CATEGORIES,
            content_types=CONTENT_TYPES,
        )

    # ------------------------------------------------------------------- faqs

    @bp.route("/faqs", methods=["GET", "POST"])
    @admin_required("faq:edit")
    def faqs():
        if request.method == "POST":
            action = request.form.get("action", "save")
            try:
                if action == "delete":
                    content_service.delete_faq(_form_int("id"), _user(), request.remote_addr)
                    flash("FAQ deleted.", "success")
                elif action == "visibility":
                    content_service.set_faq_visibility(
                        _form_int("id"), request.form.get("is_visible") == "true", _user(), request.remote_addr
                    )
                    flash("FAQ visibility updated.", "success")
                else:
                    entry = {
                        "id": request.form.get("id") or None,
                        "question": request.form.get("question"),
                        "answer": request.form.get("answer"),
                        "category": (request.form.get("category") or "General").strip(),
                        "isVisible": request.form.get("is_visible", "on") == "on",
                    }
                    order = _form_int("order")
                    if order is not None:
                        entry["order"] = order
                    content_service.save_faq(entry, _user(), request.remote_addr)
                    flash("FAQ saved.", "success")
            except AdminServiceError as exc:
                _flash_error(exc)
            return redirect(url_for("admin_dashboard.faqs"))
        return render_template("admin/faqs.html", document=content_service.get_faqs())

    # ------------------------------------------------------------------ dates

    @bp.route("/dates", methods=["GET", "POST"])
    @admin_required("dates:edit")
    def dates():
        if request.method == "POST":
            action = request.form.get("action", "save")
            date_id = (request.form.get("id") or "").strip()
            try:
                if action == "delete":
                    content_service.delete_date(date_id, _user(), request.form.get("version"), request.remote_addr)
                    flash("Date deleted.", "success")
                else:
                    entry = {
                        "id": date_id or None,
                        "title": request.form.get("title"),
                        "date": request.form.get("date"),
                        "time": (request.form.get("time") or "").strip() or None,
                        "description": request.form.get("description"),
                        "type": request.form.get("type"),
                        "isUrgent": request.form.get("is_urgent") == "on",
                        "isVisible": request.form.get("is_visible") == "on",
                    }
                    content_service.save_date(
                        entry, _user(), create=action == "create",
                        expected_version=request.form.get("version"), ip=request.remote_addr,
                    )
                    flash("Date saved.", "success")
            except AdminServiceError as exc:
                _flash_error(exc)
            return redirect(url_for("admin_dashboard.dates"))
        return render_template("admin/dates.html", document=content_service.get_dates(), date_types=DATE_TYPES)

    # -------------------------------------------------------------- documents

    @bp.route("/documents", methods=["GET"])
    @admin_required("claims:read")
    def documents():
        code = (request.args.get("code") or "").strip() or None
        groups = []
        try:
            groups = document_service.documents_by_claim(code)
        except DocumentServiceError as exc:
            flash(exc.message, "error")
        return render_template("admin/documents.html", groups=groups, code=code)

    @bp.route("/documents/<document_id>/download", methods=["GET"])
    @admin_required("claims:read")
    def download_document(document_id):
        try:
            return redirect(document_service.signed_url(document_id))
        except DocumentServiceError as exc:
            flash(exc.message, "error")
            return redirect(url_for("admin_dashboard.documents"))

    # --------------------------------------------------------------- settings

    @bp.route("/settings", methods=["GET", "POST"])
    @admin_required("admin:read")
    def settings():
        if request.method == "POST":
            action = request.form.get("action")
            if action == "backup":
                if not g.admin_user.can("system:backup"):
                    return render_template("admin/denied.html", permission="system:backup"), 403
                try:
                    path = store.create_backup(user=_user())
                    flash(f"Backup created: {path.name}", "success")
                except StoreError as exc:
                    current_app.logger.error("Backup failed: %s", exc)
                    flash("Backup failed.", "error")
            elif action == "initialize":
                if not g.admin_user.can("system:init"):
                    return render_template("admin/denied.html", permission="system:init"), 403
                created = store.initialize_defaults()
                flash(f"Initialized {len(created)} data file(s).", "success")
            return redirect(url_for("admin_dashboard.settings"))
        return render_template("admin/settings.html", health=store.health_check())

    @bp.route("/settings/export", methods=["GET"])
    @admin_required("export:basic")
    def export_data():
        store.log_activity("system", "Admin data exported", user=_user(), ip=request.remote_addr)
        body = json.dumps(store.export_all(), indent=2, ensure_ascii=False)
        filename = f"admin-export-{isoformat_z()[:10]}.json"
        return Response(
            body,
            mimetype="application/json",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )

    return bp


def _form_int(name: str) -> Optional[int]:
    try:
        return int(request.form.get(name, ""))
    except (TypeError, ValueError):
        return None
