"""Contact form model."""

from __future__ import annotations

import re
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from input_sanitizer import InputSanitizer

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
SUBJECTS = (
    "General question",
    "Claim status",
    "Technical issue",
    "Payment question",
    "Document upload",
    "Other",
)
MIN_MESSAGE_LENGTH = 10


class ContactForm(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    claim_code: Optional[str] = None
    subject: str
    message: str

    @field_validator("first_name", "last_name", "subject")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value:
            raise ValueError("This field is required")
        return InputSanitizer.clean_text(value, 200)

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        if not EMAIL_PATTERN.match(value):
            raise ValueError("Please enter a valid email address")
        return value.lower()

    @field_validator("message")
    @classmethod
    def _message(cls, value: str) -> str:
        if len(value) < MIN_MESSAGE_LENGTH:
            raise ValueError(f"Message must be at least {MIN_MESSAGE_LENGTH} characters")
        return InputSanitizer.clean_text(value, 5000)

    @field_validator("phone", "claim_code")
    @classmethod
    def _optional(cls, value: Optional[str]) -> Optional[str]:
        return InputSanitizer.clean_text(value, 50) or None


def validate_contact(data: dict) -> tuple[Optional[ContactForm], List[dict]]:
    try:
        return ContactForm.model_validate(data), []
    except ValidationError as exc:
        errors = []
        for error in exc.errors():
            field = str(error["loc"][0]) if error.get("loc") else "form"
            message = error.get("msg", "Invalid value")
            if error.get("type") == "missing":
                message = "This field is required"
            errors.append({"field": field, "message": message.removeprefix("Value error, ")})
        return None, errors
