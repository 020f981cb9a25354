"""Admin authentication, roles and permission checks.

Roles come from the position of the e-mail in ``ADMIN_EMAILS``: the first
address is the owner, the second an admin, everyone after that an editor.
"""

from __future__ import annotations

import hashlib
import hmac
import threading
import time
from dataclasses import asdict, dataclass, field
from functools import wraps
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from flask import current_app, flash, g, redirect, render_template, request, session, url_for
from itsdangerous import BadSignature, URLSafeTimedSerializer

from responses import api_error

ROLE_OWNER = "owner"
ROLE_ADMIN = "admin"
ROLE_EDITOR = "editor"

ROLE_PERMISSIONS: Dict[str, List[str]] = {
    ROLE_OWNER: ["admin:*", "content:*", "claims:*", "users:*", "system:*", "export:*"],
    ROLE_ADMIN: [
        "admin:read",
        "content:*",
        "claims:toggle",
        "claims:read",
        "faq:*",
        "dates:*",
        "analytics:read",
        "export:basic",
    ],
    ROLE_EDITOR: ["content:edit", "content:read", "faq:*", "dates:*"],
}

SESSION_TOKEN_KEY = "admin_token"


class AuthError(Exception):
    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class AdminUser:
    id: str
    email: str
    name: str
    role: str
    permissions: List[str] = field(default_factory=list)

    def can(self, permission: Optional[str]) -> bool:
        return has_permission(self.role, permission)

    def to_dict(self) -> dict:
        return asdict(self)


def parse_admin_emails(raw) -> List[str]:
    if isinstance(raw, str):
        items = raw.split(",")
    else:
        items = list(raw or [])
    return [item.strip().lower() for item in items if item and item.strip()]


def role_for_email(email: Optional[str], admin_emails: List[str]) -> Optional[str]:
    normalized = (email or "").strip().lower()
    if not normalized or normalized not in admin_emails:
        return None
    index = admin_emails.index(normalized)
    if index == 0:
        return ROLE_OWNER
    if index == 1:
        return ROLE_ADMIN
    return ROLE_EDITOR


def has_permission(role: Optional[str], permission: Optional[str]) -> bool:
    """Owner passes everything; ``scope:*`` grants every ``scope:...``."""
    if not role:
        return False
    if role == ROLE_OWNER or not permission:
        return True
    granted = ROLE_PERMISSIONS.get(role, [])
    if permission in granted:
        return True
    scope = permission.split(":", 1)[0]
    return f"{scope}:*" in granted


def build_admin_user(user_id: str, email: str, role: str, name: Optional[str] = None) -> AdminUser:
    return AdminUser(
        id=str(user_id),
        email=email.lower(),
        name=name or email.split("@")[0],
        role=role,
        permissions=list(ROLE_PERMISSIONS.get(role, [])),
    )


def hash_value(value: str) -> str:
    return hashlib.sha256(value.encode()).hexdigest()


class AdminAuthBackend(Protocol):
    def sign_in(self, email: str, password: str) -> Tuple[AdminUser, str]: ...

    def resolve(self, token: Optional[str]) -> Optional[AdminUser]: ...


class SupabaseAdminAuth:
    """Password sign-in and token validation through Supabase Auth."""

    def __init__(self, client, admin_emails) -> None:
        self._client = client
        self.admin_emails = parse_admin_emails(admin_emails)

    def sign_in(self, email: str, password: str) -> Tuple[AdminUser, str]:
        role = role_for_email(email, self.admin_emails)
        if role is None:
            raise AuthError("Access denied. Admin privileges required.", status_code=403)
        try:
            resp = self._client.auth.sign_in_with_password({"email": email.strip(), "password": password})
        except Exception as exc:  # pragma: no cover - external service dependency
            current_app.logger.warning("Supabase sign-in failed for %s: %s", email, exc)
            raise AuthError("Invalid email or password.") from exc
        user = getattr(resp, "user", None)
        auth_session = getattr(resp, "session", None)
        if not user or not auth_session:
            raise AuthError("Invalid email or password.")
        metadata = getattr(user, "user_metadata", None) or {}
        return build_admin_user(user.id, user.email, role, metadata.get("name")), auth_session.access_token

    def resolve(self, token: Optional[str]) -> Optional[AdminUser]:
        if not token:
            return None
        try:
            resp = self._client.auth.get_user(token)
        except Exception as exc:  # pragma: no cover - external service dependency
            current_app.logger.info("Rejected admin token: %s", exc)
            return None
        user = getattr(resp, "user", None)
        if not user:
            return None
        role = role_for_email(user.email, self.admin_emails)
        if role is None:
            return None
        metadata = getattr(user, "user_metadata", None) or {}
        return build_admin_user(user.id, user.email, role, metadata.get("name"))


class LocalAdminAuth:
    """Shared-password sign-in for deployments without Supabase Auth."""

    SALT = "admin-dashboard-token"

    def __init__(
        self,
        admin_emails,
        secret_key: str,
        password: Optional[str] = None,
        password_hash: Optional[str] = None,
        token_ttl: int = 8 * 3600,
    ) -> None:
        self.admin_emails = parse_admin_emails(admin_emails)
        self._password = password
        self._password_hash = password_hash
        self._serializer = URLSafeTimedSerializer(secret_key, salt=self.SALT)
        self.token_ttl = token_ttl

    def _check_password(self, password: str) -> bool:
        if not password:
            return False
        if self._password_hash:
            return hmac.compare_digest(hash_value(password), self._password_hash)
        if self._password:
            return hmac.compare_digest(password, self._password)
        return False

    def sign_in(self, email: str, password: str) -> Tuple[AdminUser, str]:
        role = role_for_email(email, self.admin_emails)
        if role is None:
            raise AuthError("Access denied. Admin privileges required.", status_code=403)
        if not self._check_password(password):
            raise AuthError("Invalid email or password.")
        normalized = email.strip().lower()
        token = self._serializer.dumps({"email": normalized})
        return build_admin_user(normalized, normalized, role), token

    def resolve(self, token: Optional[str]) -> Optional[AdminUser]:
        if not token:
            return None
        try:
            payload = self._serializer.loads(token, max_age=self.token_ttl)
        except BadSignature:
            return None
        email = payload.get("email") if isinstance(payload, dict) else None
        role = role_for_email(email, self.admin_emails)
        if role is None:
            return None
        return build_admin_user(email, email, role)


class LoginThrottle:
    """Failed-login counter keyed by client address, kept in process memory."""

    def __init__(
        self,
        max_attempts: int = 5,
        lock_seconds: int = 900,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_attempts = max(1, int(max_attempts))
        self.lock_seconds = max(1, int(lock_seconds))
        self._clock = clock
        self._attempts: Dict[str, dict] = {}
        self._lock = threading.Lock()

    @staticmethod
    def client_key() -> str:
        return request.remote_addr or "unknown"

    def _state(self, key: str) -> dict:
        state = self._attempts.get(key)
        if state is None:
            state = {"remaining": self.max_attempts, "lock_until": None}
            self._attempts[key] = state
        return state

    def remaining(self, key: Optional[str] = None) -> int:
        key = key or self.client_key()
        with self._lock:
            state = self._attempts.get(key)
            return state["remaining"] if state else self.max_attempts

    def locked_for(self, key: Optional[str] = None) -> Optional[int]:
        """Seconds left on the lockout, or None when not locked."""
        key = key or self.client_key()
        with self._lock:
            state = self._attempts.get(key)
            if not state or not state["lock_until"]:
                return None
            now_ts = self._clock()
            if now_ts < state["lock_until"]:
                return max(int(state["lock_until"] - now_ts), 1)
            del self._attempts[key]
            return None

    def record_failure(self, key: Optional[str] = None) -> Tuple[bool, int]:
        """Count a failed attempt; returns ``(locked, remaining_attempts)``."""
        key = key or self.client_key()
        with self._lock:
            state = self._state(key)
            state["remaining"] = max(state["remaining"] - 1, 0)
            if state["remaining"] <= 0:
                state["lock_until"] = self._clock() + self.lock_seconds
                state["remaining"] = self.max_attempts
                return True, 0
            return False, state["remaining"]

    def reset(self, key: Optional[str] = None) -> None:
        key = key or self.client_key()
        with self._lock:
            self._attempts.pop(key, None)


def bearer_token() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        token = header[7:].strip()
        return token or None
    return None


def make_api_guard(auth_backend: AdminAuthBackend) -> Callable[..., Callable]:
    """Build ``api_permission_required(permission)`` for bearer-token JSON routes."""

    def api_permission_required(permission: Optional[str] = None):
        def decorator(view):
            @wraps(view)
            def wrapper(*args, **kwargs):
                token = bearer_token()
                if not token:
                    return api_error("Authorization token required", status=401)
                user = auth_backend.resolve(token)
                if user is None:
                    return api_error("Invalid or expired token", status=401)
                if not user.can(permission):
                    current_app.logger.warning("%s denied %s on %s", user.email, permission, request.path)
                    return api_error("Insufficient permissions", status=403, required=permission)
                g.admin_user = user
                return view(*args, **kwargs)
            return wrapper
        return decorator

    return api_permission_required


def make_dashboard_guard(auth_backend: AdminAuthBackend, denied_template: str = "admin/denied.html"):
    """Build ``admin_required(permission)`` for the session-based dashboard pages."""

    def admin_required(permission: Optional[str] = None):
        def decorator(view):
            @wraps(view)
            def wrapper(*args, **kwargs):
                user = auth_backend.resolve(session.get(SESSION_TOKEN_KEY))
                if user is None:
                    session.pop(SESSION_TOKEN_KEY, None)
                    flash("Please log in to access the admin dashboard.", "warning")
                    return redirect(url_for("admin_dashboard.login"))
                g.admin_user = user
                if not user.can(permission):
                    return render_template(denied_template, admin_user=user, permission=permission), 403
                return view(*args, **kwargs)
            return wrapper
        return decorator

    return admin_required
