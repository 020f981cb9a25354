"""Bearer-token JSON API for the admin dashboard."""

from __future__ import annotations

from typing import Callable, Optional

from flask import Blueprint, current_app, g, request

from claims.repository import RepositoryError
from responses import api_error, api_success
from .auth import AdminAuthBackend, AuthError, LoginThrottle, make_api_guard
from .service import AdminContentService, AdminServiceError
from .settings import ClaimsSettingsError, ClaimsSettingsService
from .stats import dashboard_stats
from .store import ACTIVITY_TYPES, AdminStore, StoreError

MAX_ACTIVITY_LIMIT = 500


def create_admin_api_blueprint(
    settings_service: ClaimsSettingsService,
    content_service: AdminContentService,
    auth_backend: AdminAuthBackend,
    claims_repository,
    login_throttle: Optional[LoginThrottle] = None,
    clock: Optional[Callable] = None,
) -> Blueprint:
    bp = Blueprint("admin_api", __name__, url_prefix="/api/admin")
    store: AdminStore = content_service.store
    api_permission_required = make_api_guard(auth_backend)
    throttle = login_throttle or LoginThrottle()

    def _user() -> str:
        return g.admin_user.email

    def _body() -> dict:
        payload = request.get_json(silent=True)
        return payload if isinstance(payload, dict) else {}

    def _service_error(exc):
        return api_error(exc.message, status=exc.status_code,
                         **{k: v for k, v in exc.payload.items() if k != "error"})

    @bp.errorhandler(AdminServiceError)
    @bp.errorhandler(ClaimsSettingsError)
    def handle_service_error(exc):
        return _service_error(exc)

    @bp.errorhandler(StoreError)
    def handle_store_error(exc):
        current_app.logger.error("Admin data store failure on %s: %s", request.path, exc)
        return api_error("Failed to save changes.", status=500)

    # ------------------------------------------------------------------- auth

    @bp.route("/auth/login", methods=["POST"])
    def login():
        locked_for = throttle.locked_for()
        if locked_for:
            return api_error("Too many failed attempts. Try again later.", status=423,
                             retryAfter=locked_for)
        data = _body()
        email = str(data.get("email") or "").strip()
        password = str(data.get("password") or "")
        if not email or not password:
            return api_error("Email and password are required.", status=400)
        try:
            user, token = auth_backend.sign_in(email, password)
        except AuthError as exc:
            locked, remaining = throttle.record_failure()
            store.log_activity("login", f"Failed admin login for {email}", user=email,
                               ip=request.remote_addr, details={"locked": locked})
            if locked:
                current_app.logger.warning("Admin login locked after repeated failures for %s", email)
                return api_error("Too many failed attempts. Try again later.", status=423,
                                 retryAfter=throttle.lock_seconds)
            return api_error(exc.message, status=exc.status_code, remainingAttempts=remaining)
        throttle.reset()
        store.log_activity("login", f"Admin login: {user.email}", user=user.email, ip=request.remote_addr)
        return api_success({"token": token, "user": user.to_dict()})

    @bp.route("/auth/me", methods=["GET"])
    @api_permission_required()
    def me():
        return api_success({"user": g.admin_user.to_dict()})

    # ---------------------------------------------------------- claims toggle

    @bp.route("/claims-toggle", methods=["GET"])
    @api_permission_required("claims:toggle")
    def get_claims_toggle():
        return api_success(settings_service.get_settings())

    @bp.route("/claims-toggle", methods=["POST"])
    @api_permission_required("claims:toggle")
    def set_claims_toggle():
        data = _body()
        settings = settings_service.set_enabled(
            data.get("isEnabled"), _user(), data.get("maintenanceMessage"), ip=request.remote_addr
        )
        state = "enabled" if settings["isEnabled"] else "disabled"
        return api_success(settings, message=f"Claims filing {state} successfully")

    @bp.route("/claims-toggle", methods=["PATCH"])
    @api_permission_required("claims:toggle")
    def update_maintenance_message():
        data = _body()
        settings = settings_service.update_message(data.get("maintenanceMessage"), _user(),
                                                   ip=request.remote_addr)
        return api_success(settings, message="Maintenance message updated")

    @bp.route("/claims-toggle", methods=["DELETE"])
    @api_permission_required("claims:toggle")
    def cancel_scheduled_toggle():
        settings = settings_service.cancel_schedule(_user(), ip=request.remote_addr)
        return api_success(settings, message="Scheduled toggle cancelled")

    @bp.route("/claims-toggle/schedule", methods=["POST"])
    @api_permission_required("claims:toggle")
    def schedule_claims_toggle():
        data = _body()
        settings = settings_service.schedule_toggle(
            data.get("date"), data.get("time"), data.get("action"), _user(),
            reason=data.get("reason"), ip=request.remote_addr,
        )
        return api_success(settings, message="Toggle scheduled")

    # ---------------------------------------------------------------- content

    @bp.route("/content", methods=["GET"])
    @api_permission_required("content:read")
    def get_content():
        return api_success(content_service.get_content(request.args.get("category")))

    @bp.route("/content", methods=["POST"])
    @api_permission_required("content:edit")
    def save_content():
        data = _body()
        if "sections" in data:
            document = content_service.replace_sections(
                data.get("sections"), _user(), data.get("expectedVersion"), request.remote_addr
            )
            return api_success(document, message="Content updated")
        document = content_service.save_section(
            data.get("section", data), _user(), create=True,
            expected_version=data.get("expectedVersion"), ip=request.remote_addr,
        )
        return api_success(document, status=201, message="Content section created")

    @bp.route("/content/<section_id>", methods=["PUT"])
    @api_permission_required("content:edit")
    def update_content_section(section_id):
        data = _body()
        section = dict(data.get("section", data))
        section["id"] = section_id
        document = content_service.save_section(
            section, _user(), expected_version=data.get("expectedVersion"), ip=request.remote_addr
        )
        return api_success(document, message="Content section updated")

    @bp.route("/content/<section_id>", methods=["DELETE"])
    @api_permission_required("content:edit")
    def delete_content_section(section_id):
        document = content_service.delete_section(
            section_id, _user(), request.args.get("expectedVersion"), request.remote_addr
        )
        return api_success(document, message="Content section deleted")

    # ------------------------------------------------------------------- faqs

    @bp.route("/faqs", methods=["GET"])
    @api_permission_required("faq:read")
    def get_faqs():
        return api_success(content_service.get_faqs())

    @bp.route("/faqs", methods=["POST"])
    @api_permission_required("faq:edit")
    def save_faqs():
        data = _body()
        document = content_service.replace_faqs(
            data.get("faqs"), _user(), data.get("expectedVersion"), request.remote_addr
        )
        return api_success(document, message="FAQs updated")

    # ------------------------------------------------------------------ dates

    @bp.route("/dates", methods=["GET"])
    @api_permission_required("dates:read")
    def get_dates():
        return api_success(content_service.get_dates())

    @bp.route("/dates", methods=["POST"])
    @api_permission_required("dates:edit")
    def save_dates():
        data = _body()
        if "dates" in data:
            document = content_service.replace_dates(
                data.get("dates"), _user(), data.get("expectedVersion"), request.remote_addr
            )
            return api_success(document, message="Important dates updated")
        document = content_service.save_date(
            data["date"] if isinstance(data.get("date"), dict) else data, _user(),
            create=True, expected_version=data.get("expectedVersion"), ip=request.remote_addr,
        )
        return api_success(document, status=201, message="Date created")

    @bp.route("/dates/<date_id>", methods=["PUT"])
    @api_permission_required("dates:edit")
    def update_date(date_id):
        data = _body()
        entry = dict(data)
        entry.pop("expectedVersion", None)
        entry["id"] = date_id
        document = content_service.save_date(
            entry, _user(), expected_version=data.get("expectedVersion"), ip=request.remote_addr
        )
        return api_success(document, message="Date updated")

    @bp.route("/dates/<date_id>", methods=["DELETE"])
    @api_permission_required("dates:edit")
    def delete_date(date_id):
        document = content_service.delete_date(
            date_id, _user(), request.args.get("expectedVersion"), request.remote_addr
        )
        return api_success(document, message="Date deleted")

    # -------------------------------------------------------------- dashboard

    @bp.route("/dashboard/stats", methods=["GET"])
    @api_permission_required("admin:read")
    def get_dashboard_stats():
        kwargs = {"clock": clock} if clock else {}
        return api_success(dashboard_stats(store, settings_service, claims_repository, **kwargs))

    @bp.route("/dashboard/activity", methods=["GET"])
    @api_permission_required("admin:read")
    def get_activity():
        limit = request.args.get("limit", default=50, type=int) or 50
        limit = max(1, min(limit, MAX_ACTIVITY_LIMIT))
        activity_type = request.args.get("type") or None
        if activity_type and activity_type not in ACTIVITY_TYPES:
            return api_error("Unknown activity type.", status=400, allowed=list(ACTIVITY_TYPES))
        return api_success(store.get_activity(limit=limit, activity_type=activity_type))

    # ------------------------------------------------------------- maintenance

    @bp.route("/export", methods=["GET"])
    @api_permission_required("export:basic")
    def export_data():
        store.log_activity("system", "Admin data exported", user=_user(), ip=request.remote_addr)
        return api_success(store.export_all())

    @bp.route("/backup", methods=["POST"])
    @api_permission_required("system:backup")
    def create_backup():
        path = store.create_backup(user=_user())
        return api_success({"file": path.name}, status=201, message="Backup created")

    @bp.route("/health", methods=["GET"])
    @api_permission_required("admin:read")
    def health():
        report = store.health_check()
        try:
            report["database"] = "ok"
            claims_repository.count_drafts()
        except RepositoryError as exc:
            current_app.logger.error("Health check database query failed: %s", exc)
            report["database"] = "error"
            report["status"] = "unhealthy"
        if report["status"] != "healthy":
            return api_error("Health check failed", status=503, data=report)
        return api_success(report)

    return bp
