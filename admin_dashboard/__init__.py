"""Admin dashboard: claims toggle, site content, FAQs, dates and activity."""

from .api import create_admin_api_blueprint
from .auth import LocalAdminAuth, LoginThrottle, SupabaseAdminAuth
from .routes import create_admin_dashboard_blueprint
from .service import AdminContentService, AdminServiceError
from .settings import ClaimsSettingsService
from .store import AdminStore

__all__ = [
    "AdminContentService",
    "AdminServiceError",
    "AdminStore",
    "ClaimsSettingsService",
    "LocalAdminAuth",
    "LoginThrottle",
    "SupabaseAdminAuth",
    "create_admin_api_blueprint",
    "create_admin_dashboard_blueprint",
]
