"""Object storage for claim documents.

The bucket is private: callers only ever get short-lived signed URLs.
``LocalDocumentStorage`` mirrors that on disk with itsdangerous tokens that
``/api/files/local/<token>`` checks for age.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Protocol

from flask import url_for
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

DEFAULT_BUCKET = "claim-documents"


class StorageError(Exception):
    """Raised when the storage backend rejects an operation."""


class DocumentStorage(Protocol):
    def upload(self, path: str, data: bytes, content_type: str) -> None: ...

    def remove(self, path: str) -> None: ...

    def create_signed_url(self, path: str, expires_in: int) -> str: ...


class SupabaseDocumentStorage:
    def __init__(self, client, bucket: str = DEFAULT_BUCKET) -> None:
        self._client = client
        self.bucket = bucket

    def _bucket(self):
        return self._client.storage.from_(self.bucket)

    def upload(self, path: str, data: bytes, content_type: str) -> None:
        try:
            self._bucket().upload(
                path,
                data,
                file_options={"content-type": content_type, "cache-control": "3600", "upsert": "false"},
            )
        except Exception as exc:  # pragma: no cover - external service dependency
            raise StorageError(f"Upload to {self.bucket} failed: {exc}") from exc

    def remove(self, path: str) -> None:
        try:
            self._bucket().remove([path])
        except Exception as exc:  # pragma: no cover - external service dependency
            raise StorageError(f"Removing {path} failed: {exc}") from exc

    def create_signed_url(self, path: str, expires_in: int) -> str:
        try:
            result = self._bucket().create_signed_url(path, expires_in)
        except Exception as exc:  # pragma: no cover - external service dependency
            raise StorageError(f"Signing {path} failed: {exc}") from exc
        signed = None
        if isinstance(result, dict):
            signed = result.get("signedURL") or result.get("signedUrl")
        if not signed:
            raise StorageError(f"No signed URL returned for {path}")
        return signed


class LocalDocumentStorage:
    """Stores documents under a directory and signs download tokens."""

    SALT = "claim-document-download"

    def __init__(self, root: Path, secret_key: str, endpoint: str = "documents.local_file") -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._serializer = URLSafeTimedSerializer(secret_key, salt=self.SALT)
        self._endpoint = endpoint

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if self.root.resolve() not in target.parents:
            raise StorageError(f"Refusing path outside storage root: {path}")
        return target

    def upload(self, path: str, data: bytes, content_type: str) -> None:
        target = self._resolve(path)
        if target.exists():
            raise StorageError(f"Object already exists: {path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    def remove(self, path: str) -> None:
        target = self._resolve(path)
        try:
            target.unlink()
        except FileNotFoundError as exc:
            raise StorageError(f"Object not found: {path}") from exc

    def create_signed_url(self, path: str, expires_in: int) -> str:
        token = self._serializer.dumps({"path": path, "ttl": int(expires_in)})
        return url_for(self._endpoint, token=token)

    def open_signed(self, token: str) -> Optional[Path]:
        """Return the file behind ``token`` or None when it is invalid or expired."""
        try:
            payload = self._serializer.loads(token)
            self._serializer.loads(token, max_age=int(payload.get("ttl", 0)))
        except (BadSignature, SignatureExpired):
            return None
        try:
            target = self._resolve(payload["path"])
        except (KeyError, StorageError):
            return None
        return target if target.is_file() else None
