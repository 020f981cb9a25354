"""Public claim blueprint: the code gate, the claim form and its JSON endpoints."""

from __future__ import annotations

from typing import Callable, Optional

from flask import (
    Blueprint,
    current_app,
    flash,
    redirect,
    render_template,
    request,
    url_for,
)

from responses import api_error, api_success, wants_json
from .schemas import HARM_TYPE_LABELS, HARM_TYPES, PAYMENT_METHODS
from .service import ClaimService, ClaimServiceError

DeadlineProvider = Callable[[], dict]

PAYMENT_METHOD_LABELS = {
    "paypal": "PayPal",
    "venmo": "Venmo",
    "zelle": "Zelle",
    "prepaidCard": "Prepaid card",
    "physicalCheck": "Physical check",
}


def create_claims_blueprint(
    claim_service: ClaimService,
    form_config: Optional[dict] = None,
    deadline_provider: Optional[DeadlineProvider] = None,
) -> Blueprint:
    """Factory wiring the gate and form routes to a :class:`ClaimService`."""

    bp = Blueprint("claims", __name__)
    client_config = {
        "autosaveDelayMs": int(claim_service.autosaver.delay_seconds * 1000),
        "harmTypes": list(HARM_TYPES),
        "harmTypeLabels": HARM_TYPE_LABELS,
        "paymentMethods": list(PAYMENT_METHODS),
        **(form_config or {}),
    }

    def _deadline() -> Optional[dict]:
        if deadline_provider is None:
            return None
        return deadline_provider()

    def _error_response(exc: ClaimServiceError, code: str):
        redirect_url = None
        if exc.reason == "already_used":
            redirect_url = url_for("claims.already_used", code=code)
        elif exc.reason == "expired":
            redirect_url = url_for("claims.expired", code=code)
        extra = {key: value for key, value in exc.payload.items() if key != "error"}
        if redirect_url:
            extra["redirect"] = redirect_url
        return api_error(exc.message, status=exc.status_code, **extra)

    @bp.route("/", methods=["GET", "POST"])
    def home():
        if request.method == "GET":
            return render_template("home.html", deadline=_deadline(), claim_code="")

        payload = request.get_json(silent=True)
        if isinstance(payload, dict) and payload:
            raw_code = payload.get("code")
        else:
            raw_code = request.form.get("claim_code")
        result = claim_service.check_claim_code(raw_code)

        if result.ok:
            target = url_for("claims.claim_form", code=result.code)
        elif result.reason == "used":
            target = url_for("claims.already_used", code=result.code)
        else:
            target = None

        if wants_json():
            if target and result.ok:
                return api_success({"redirect": target})
            return api_error(result.message, status=404 if result.reason == "not_found" else 400,
                             reason=result.reason, redirect=target)

        if target:
            return redirect(target)
        flash(result.message, "error")
        return render_template("home.html", deadline=_deadline(), claim_code=result.code), 400

    @bp.get("/claim/<code>")
    def claim_form(code: str):
        try:
            context = claim_service.open_form(code)
        except ClaimServiceError as exc:
            flash(exc.message, "error")
            return redirect(url_for("claims.home"))

        if context.status == "maintenance":
            return render_template(
                "claim_status.html",
                kind="maintenance",
                code=code,
                message=context.maintenance_message,
            ), 503
        if context.status == "not_found":
            flash("Claim not found. Please check your claim code.", "error")
            return redirect(url_for("claims.home"))
        if context.status == "already_used":
            return redirect(url_for("claims.already_used", code=code))
        if context.status == "expired":
            return redirect(url_for("claims.expired", code=code))

        harm_entries = context.form_data.get("harmTypes", {})
        page_config = {
            **client_config,
            "uploadedFiles": {harm: harm_entries.get(harm, {}).get("uploadedFiles", []) for harm in HARM_TYPES},
        }
        return render_template(
            "claim_form.html",
            code=code,
            claim=context.claim,
            form_data=context.form_data,
            client_config=page_config,
            harm_types=HARM_TYPES,
            harm_labels=HARM_TYPE_LABELS,
            payment_labels=PAYMENT_METHOD_LABELS,
        )

    @bp.get("/claim/<code>/state")
    def claim_state(code: str):
        return api_success(claim_service.autosaver.snapshot(code))

    @bp.post("/claim/<code>/autosave")
    def autosave(code: str):
        values = request.get_json(silent=True)
        try:
            result = claim_service.queue_autosave(code, values)
        except ClaimServiceError as exc:
            return _error_response(exc, code)
        return api_success(result, status=202)

    @bp.post("/claim/<code>/draft")
    def save_draft(code: str):
        values = request.get_json(silent=True)
        try:
            saved_at = claim_service.save_draft(code, values)
        except ClaimServiceError as exc:
            return _error_response(exc, code)
        return api_success({"savedAt": saved_at.isoformat()}, message="Draft saved")

    @bp.post("/claim/<code>/submit")
    def submit(code: str):
        values = request.get_json(silent=True)
        try:
            result = claim_service.submit(code, values)
        except ClaimServiceError as exc:
            if exc.status_code >= 500:
                current_app.logger.warning("Claim %s submission error: %s", code, exc.message)
            return _error_response(exc, code)
        return api_success(
            result,
            message="Claim submitted successfully",
            redirect=url_for("claims.success", code=code),
        )

    @bp.get("/claim/<code>/success")
    def success(code: str):
        return render_template("claim_status.html", kind="success", code=code, message=None)

    @bp.get("/claim/<code>/already-used")
    def already_used(code: str):
        return render_template("claim_status.html", kind="already_used", code=code, message=None)

    @bp.get("/claim/<code>/expired")
    def expired(code: str):
        return render_template("claim_status.html", kind="expired", code=code, message=None)

    return bp
