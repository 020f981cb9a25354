"""JSON envelope shared by every API blueprint."""

from __future__ import annotations

from typing import Any, Optional

from flask import jsonify, request

from clock import isoformat_z


def api_success(data: Any = None, *, status: int = 200, message: Optional[str] = None, **extra):
    payload = {"success": True, "timestamp": isoformat_z()}
    if data is not None:
        payload["data"] = data
    if message:
        payload["message"] = message
    payload.update(extra)
    return jsonify(payload), status


def api_error(error: str, *, status: int = 400, **extra):
    payload = {"success": False, "error": error, "timestamp": isoformat_z()}
    payload.update({key: value for key, value in extra.items() if value is not None})
    return jsonify(payload), status


def wants_json() -> bool:
    accepts = request.accept_mimetypes
    return (
        request.headers.get("X-Requested-With") == "XMLHttpRequest"
        or request.is_json
        or accepts["application/json"] > accepts["text/html"]
    )
