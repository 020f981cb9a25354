"""Public informational pages and the unauthenticated status endpoints."""

from __future__ import annotations

from flask import Blueprint, flash, redirect, render_template, request, url_for

from admin_dashboard.settings import ClaimsSettingsService
from responses import api_error, api_success, wants_json
from .forms import SUBJECTS, validate_contact
from .service import DATE_STATUSES, ContactDeliveryError, PublicContentService

CONTACT_FIELDS = ("first_name", "last_name", "email", "phone", "claim_code", "subject", "message")


def create_public_blueprint(
    public_service: PublicContentService,
    settings_service: ClaimsSettingsService,
) -> Blueprint:
    bp = Blueprint("public", __name__)

    @bp.get("/faqs")
    def faqs():
        query = (request.args.get("q") or "").strip()
        category = (request.args.get("category") or "").strip() or None
        listing = public_service.faqs(query, category)
        return render_template("faqs.html", listing=listing, query=query, category=category)

    @bp.get("/important-dates")
    def important_dates():
        date_type = (request.args.get("type") or "").strip() or None
        status = (request.args.get("status") or "").strip() or None
        listing = public_service.important_dates(date_type, status)
        return render_template(
            "important_dates.html",
            listing=listing,
            date_type=date_type,
            status=status,
            statuses=DATE_STATUSES,
        )

    @bp.route("/contact", methods=["GET", "POST"])
    def contact():
        values = {field: "" for field in CONTACT_FIELDS}
        errors = []
        if request.method == "POST":
            payload = request.get_json(silent=True) if request.is_json else None
            if not isinstance(payload, dict):
                payload = {field: request.form.get(field, "") for field in CONTACT_FIELDS}
            values.update({key: payload.get(key) or "" for key in CONTACT_FIELDS})
            form, errors = validate_contact(payload)
            if form is not None:
                try:
                    public_service.submit_contact(form, ip=request.remote_addr)
                except ContactDeliveryError as exc:
                    if wants_json():
                        return api_error(str(exc), status=502)
                    flash(str(exc), "error")
                else:
                    if wants_json():
                        return api_success(message="Thank you. Your message has been sent.")
                    flash("Thank you. Your message has been sent.", "success")
                    return redirect(url_for("public.contact"))
            elif wants_json():
                return api_error("Please correct the highlighted fields.", status=400, fields=errors)
        status = 400 if errors else 200
        return render_template(
            "contact.html",
            values=values,
            errors={error["field"]: error["message"] for error in errors},
            subjects=SUBJECTS,
        ), status

    @bp.get("/api/public/claims-status")
    def claims_status():
        status = settings_service.public_status()
        return api_success(
            isEnabled=status["isEnabled"],
            maintenanceMessage=status["maintenanceMessage"],
        )

    @bp.get("/api/public/deadline")
    def deadline():
        return api_success(deadline=public_service.deadline())

    return bp
