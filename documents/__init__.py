"""Claim supporting documents: uploads, signed downloads, previews and soft delete."""

from .routes import create_documents_blueprint
from .service import DocumentService, DocumentServiceError
from .storage import LocalDocumentStorage, SupabaseDocumentStorage

__all__ = [
    "create_documents_blueprint",
    "DocumentService",
    "DocumentServiceError",
    "LocalDocumentStorage",
    "SupabaseDocumentStorage",
]
