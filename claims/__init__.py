"""Claim gate, claim form, draft autosave and submission."""

from .routes import create_claims_blueprint
from .service import ClaimService, ClaimServiceError

__all__ = ["create_claims_blueprint", "ClaimService", "ClaimServiceError"]
