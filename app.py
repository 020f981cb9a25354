import logging
import os
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable, Optional

from flask import Flask, render_template, request
from supabase import create_client

from admin_dashboard import (
    AdminContentService,
    AdminStore,
    ClaimsSettingsService,
    LocalAdminAuth,
    LoginThrottle,
    SupabaseAdminAuth,
    create_admin_api_blueprint,
    create_admin_dashboard_blueprint,
)
from claims import ClaimService, create_claims_blueprint
from claims.autosave import thread_timer
from claims.repository import SqlClaimsRepository, SupabaseClaimsRepository
from clock import utc_now
from documents import (
    DocumentService,
    LocalDocumentStorage,
    SupabaseDocumentStorage,
    create_documents_blueprint,
)
from documents.validation import MAX_FILE_SIZE_BYTES, MAX_FILES_PER_CATEGORY
from extensions import db
from input_sanitizer import nl2br
from public_pages import PublicContentService, create_public_blueprint
from responses import api_error

BASE_DIR = Path(__file__).resolve().parent
log = logging.getLogger(__name__)


# ====== Environment parsing ======
def _env_flag(name: str, default: bool) -> bool:
    """Parse truthy feature-toggle values from the environment."""
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return max(minimum, int(raw))
    except ValueError:
        log.warning("Invalid %s value: %r. Using default %s.", name, raw, default)
        return default


def _env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip() or default


def load_config() -> dict:
    data_dir = Path(_env_str("DATA_DIR") or BASE_DIR / "data")
    return {
        "USE_SUPABASE": _env_flag("USE_SUPABASE", True),
        "SUPABASE_URL": _env_str("SUPABASE_URL"),
        "SUPABASE_KEY": _env_str("SUPABASE_KEY"),
        "SECRET_KEY": _env_str("SECRET_KEY") or _env_str("FLASK_SECRET_KEY"),
        "DATA_DIR": data_dir,
        "UPLOAD_FOLDER": Path(_env_str("UPLOAD_FOLDER") or data_dir / "uploads"),
        "SQLALCHEMY_DATABASE_URI": _env_str("SQLALCHEMY_DATABASE_URI", f"sqlite:///{data_dir / 'claims.db'}"),
        "SQLALCHEMY_TRACK_MODIFICATIONS": False,
        "CLAIM_DOCUMENTS_BUCKET": _env_str("CLAIM_DOCUMENTS_BUCKET", "claim-documents"),
        "SIGNED_URL_TTL_SECONDS": _env_int("SIGNED_URL_TTL_SECONDS", 3600, minimum=60),
        "AUTOSAVE_IDLE_SECONDS": _env_int("AUTOSAVE_IDLE_SECONDS", 2, minimum=1),
        "MAX_UPLOAD_BYTES": _env_int("MAX_UPLOAD_BYTES", MAX_FILE_SIZE_BYTES, minimum=1),
        "MAX_FILES_PER_CATEGORY": _env_int("MAX_FILES_PER_CATEGORY", MAX_FILES_PER_CATEGORY, minimum=1),
        "ADMIN_EMAILS": _env_str("ADMIN_EMAILS", ""),
        "ADMIN_DASHBOARD_PASSWORD": _env_str("ADMIN_DASHBOARD_PASSWORD"),
        "ADMIN_DASHBOARD_PASSWORD_HASH": _env_str("ADMIN_DASHBOARD_PASSWORD_HASH"),
        "ADMIN_LOGIN_MAX_ATTEMPTS": _env_int("ADMIN_LOGIN_MAX_ATTEMPTS", 5, minimum=1),
        "ADMIN_LOGIN_LOCK_SECONDS": _env_int("ADMIN_LOGIN_LOCK_SECONDS", 900, minimum=30),
        "ADMIN_TOKEN_TTL_SECONDS": _env_int("ADMIN_TOKEN_TTL_SECONDS", 8 * 3600, minimum=60),
        "SETTLEMENT_TIMEZONE": _env_str("SETTLEMENT_TIMEZONE", "America/New_York"),
        "CLAIM_DEADLINE": _env_str("CLAIM_DEADLINE", "2025-03-26"),
        "CONTACT_WEBHOOK_URL": _env_str("CONTACT_WEBHOOK_URL"),
        "LOG_LEVEL": _env_str("LOG_LEVEL", "INFO"),
    }


def _init_supabase(app: Flask):
    if not app.config["USE_SUPABASE"]:
        return None
    url, key = app.config.get("SUPABASE_URL"), app.config.get("SUPABASE_KEY")
    if not (url and key):
        app.logger.warning("USE_SUPABASE is on but the Supabase client is not configured; using local storage.")
        return None
    try:
        return create_client(url, key)
    except Exception as exc:
        app.logger.warning("Could not init Supabase client: %s", exc)
        return None


def create_app(
    config: Optional[dict] = None,
    *,
    claims_repository=None,
    document_storage=None,
    admin_auth=None,
    admin_store: Optional[AdminStore] = None,
    timer_factory: Optional[Callable] = None,
    clock: Optional[Callable] = None,
    http_post: Optional[Callable[..., Any]] = None,
) -> Flask:
    app = Flask(__name__)
    app.config.update(load_config())
    app.config.update(config or {})
    app.permanent_session_lifetime = timedelta(hours=12)

    if not app.config.get("SECRET_KEY"):
        app.logger.warning("SECRET_KEY is not set; generating a per-process key.")
        app.config["SECRET_KEY"] = os.urandom(24).hex()
    app.logger.setLevel(str(app.config.get("LOG_LEVEL") or "INFO").upper())
    app.config["MAX_CONTENT_LENGTH"] = int(app.config["MAX_UPLOAD_BYTES"]) + 1024 * 1024

    data_dir = Path(app.config["DATA_DIR"])
    data_dir.mkdir(parents=True, exist_ok=True)
    clock = clock or utc_now

    supabase = _init_supabase(app)
    app.config["SUPABASE_CLIENT"] = supabase

    db.init_app(app)
    with app.app_context():
        db.create_all()

    # ====== Collaborators ======
    if claims_repository is None:
        claims_repository = SupabaseClaimsRepository(supabase) if supabase else SqlClaimsRepository(app)
    if document_storage is None:
        if supabase:
            document_storage = SupabaseDocumentStorage(supabase, app.config["CLAIM_DOCUMENTS_BUCKET"])
        else:
            document_storage = LocalDocumentStorage(Path(app.config["UPLOAD_FOLDER"]), app.config["SECRET_KEY"])
    if admin_auth is None:
        if supabase:
            admin_auth = SupabaseAdminAuth(supabase, app.config["ADMIN_EMAILS"])
        else:
            admin_auth = LocalAdminAuth(
                app.config["ADMIN_EMAILS"],
                app.config["SECRET_KEY"],
                password=app.config.get("ADMIN_DASHBOARD_PASSWORD"),
                password_hash=app.config.get("ADMIN_DASHBOARD_PASSWORD_HASH"),
                token_ttl=int(app.config["ADMIN_TOKEN_TTL_SECONDS"]),
            )
    if admin_store is None:
        admin_store = AdminStore(data_dir, clock=clock)

    settings_service = ClaimsSettingsService(admin_store, app.config["SETTLEMENT_TIMEZONE"], clock=clock)
    content_service = AdminContentService(admin_store)
    public_service = PublicContentService(
        admin_store,
        app.config["SETTLEMENT_TIMEZONE"],
        default_deadline=app.config.get("CLAIM_DEADLINE"),
        contact_webhook_url=app.config.get("CONTACT_WEBHOOK_URL"),
        clock=clock,
        **({"http_post": http_post} if http_post else {}),
    )
    claim_service = ClaimService(
        claims_repository,
        settings_service.public_status,
        autosave_delay=float(app.config["AUTOSAVE_IDLE_SECONDS"]),
        timer_factory=timer_factory or thread_timer,
        clock=clock,
    )
    document_service = DocumentService(
        claims_repository,
        document_storage,
        signed_url_ttl=int(app.config["SIGNED_URL_TTL_SECONDS"]),
        max_files_per_category=int(app.config["MAX_FILES_PER_CATEGORY"]),
        max_file_size=int(app.config["MAX_UPLOAD_BYTES"]),
        clock=clock,
        status_provider=settings_service.public_status,
    )
    login_throttle = LoginThrottle(app.config["ADMIN_LOGIN_MAX_ATTEMPTS"], app.config["ADMIN_LOGIN_LOCK_SECONDS"])

    app.extensions["claims_portal"] = {
        "claims_repository": claims_repository,
        "claim_service": claim_service,
        "document_service": document_service,
        "settings_service": settings_service,
        "content_service": content_service,
        "public_service": public_service,
        "admin_store": admin_store,
        "admin_auth": admin_auth,
    }

    # ====== Blueprints ======
    app.register_blueprint(
        create_claims_blueprint(
            claim_service,
            form_config={"maxFilesPerCategory": int(app.config["MAX_FILES_PER_CATEGORY"])},
            deadline_provider=public_service.deadline,
        )
    )
    app.register_blueprint(create_documents_blueprint(document_service))
    app.register_blueprint(create_public_blueprint(public_service, settings_service))
    app.register_blueprint(
        create_admin_api_blueprint(
            settings_service, content_service, admin_auth, claims_repository, login_throttle, clock=clock
        )
    )
    app.register_blueprint(
        create_admin_dashboard_blueprint(
            settings_service,
            content_service,
            admin_auth,
            document_service,
            claims_repository,
            login_throttle,
            clock=clock,
        )
    )

    app.add_template_filter(nl2br, "nl2br")

    @app.context_processor
    def inject_site_content():
        sections = admin_store.get_content().get("sections", [])
        return {"site_content": {section["id"]: section.get("content", "") for section in sections}}

    @app.errorhandler(404)
    @app.errorhandler(500)
    def show_custom_error_page(err):
        status_code = getattr(err, "code", 500) or 500
        if request.path.startswith("/api/"):
            message = "Not found" if status_code == 404 else "Internal server error"
            return api_error(message, status=status_code)
        return render_template("error.html", status_code=status_code), status_code

    @app.errorhandler(413)
    def file_too_large(err):
        return api_error("File is too large.", status=413)

    app.logger.info(
        "Claims portal ready (supabase=%s, data_dir=%s)", bool(supabase), data_dir,
    )
    return app


# ====== Entrypoint ======
if __name__ == "__main__":
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))
    create_app().run(host="0.0.0.0", port=int(os.environ.get("PORT", 8080)), debug=False)
