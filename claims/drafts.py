"""Draft form helpers: the blank form, merging, and tolerant decoding."""

from __future__ import annotations

import copy
import json
import logging
from typing import Any

from .schemas import HARM_TYPES

logger = logging.getLogger(__name__)

_BLANK_HARM = {
    "selected": False,
    "details": "",
    "hasDocumentation": "",
    "uploadedFiles": [],
}

BLANK_FORM: dict = {
    "contactInfo": {
        "fullName": "",
        "email": "",
        "address": "",
        "city": "",
        "state": "",
        "zipCode": "",
        "phone": "",
    },
    "harmTypes": {harm: {**_BLANK_HARM, "uploadedFiles": []} for harm in HARM_TYPES},
    "payment": {
        "method": None,
        "paypalEmail": "",
        "venmoPhone": "",
        "zellePhone": "",
        "zelleEmail": "",
        "prepaidCardEmail": "",
    },
    "signature": {
        "signature": "",
        "printedName": "",
        "date": "",
    },
}


def blank_form() -> dict:
    return copy.deepcopy(BLANK_FORM)


def merge_with_blank(data: Any) -> dict:
    """Overlay stored values onto the blank form, keeping only known keys."""
    merged = blank_form()
    if not isinstance(data, dict):
        return merged
    _overlay(merged, data)
    if isinstance(data.get("metadata"), dict):
        merged["metadata"] = data["metadata"]
    return merged


def _overlay(target: dict, source: dict) -> None:
    for key, default in target.items():
        if key not in source:
            continue
        value = source[key]
        if isinstance(default, dict):
            if isinstance(value, dict):
                _overlay(default, value)
        elif isinstance(default, list):
            if isinstance(value, list):
                target[key] = [item for item in value if isinstance(item, dict)]
        elif isinstance(default, bool):
            target[key] = bool(value)
        elif default is None:
            target[key] = value if isinstance(value, str) and value else None
        elif value is None:
            target[key] = ""
        else:
            target[key] = str(value)


def decode_form_data(raw: Any) -> dict:
    """Decode a stored ``form_data`` value into a full form dict.

    New writes are always JSON objects. Older rows may hold the payload as a
    JSON string, or as an object mapping ``"0", "1", ...`` to the characters
    of that string; both are reconstructed. Anything unreadable yields the
    blank form rather than an error.
    """
    if raw is None:
        return blank_form()

    if isinstance(raw, str):
        return merge_with_blank(_loads_or_none(raw))

    if isinstance(raw, dict):
        if _looks_like_char_map(raw):
            text = "".join(str(raw[key]) for key in sorted(raw, key=int))
            decoded = _loads_or_none(text)
            if decoded is None:
                logger.warning("Discarding unreadable character-map draft (%d keys)", len(raw))
            return merge_with_blank(decoded)
        return merge_with_blank(raw)

    logger.warning("Discarding draft with unexpected type %s", type(raw).__name__)
    return blank_form()


def _looks_like_char_map(raw: dict) -> bool:
    if not raw:
        return False
    keys = list(raw.keys())
    if not all(isinstance(key, str) and key.isdecimal() for key in keys):
        return False
    indexes = sorted(int(key) for key in keys)
    return indexes == list(range(len(indexes)))


def _loads_or_none(text: str):
    try:
        decoded = json.loads(text)
    except (TypeError, ValueError):
        return None
    # Double-encoded payloads decode to a string first.
    if isinstance(decoded, str):
        try:
            decoded = json.loads(decoded)
        except (TypeError, ValueError):
            return None
    return decoded if isinstance(decoded, dict) else None
