"""Public FAQ, important dates and contact pages plus the public status API."""

from .routes import create_public_blueprint
from .service import PublicContentService

__all__ = ["create_public_blueprint", "PublicContentService"]
