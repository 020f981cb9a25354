"""Validation schema for the claim form.

Wire keys are camelCase to match what the browser posts and what is stored
in ``claim_submissions.form_data``. Payment details are a tagged union on
``method`` and each harm entry is a tagged union on its documentation
state, so "selected with documentation but no files" is not a valid value.
"""

from __future__ import annotations

import re
from typing import Annotated, Literal, Optional, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

HARM_TYPES = (
    "emotionalDistress",
    "transactionDelayed",
    "creditDenied",
    "unableToComplete",
    "other",
)
HARM_TYPE_LABELS = {
    "emotionalDistress": "Emotional distress",
    "transactionDelayed": "Transaction delayed",
    "creditDenied": "Credit denied",
    "unableToComplete": "Unable to complete transaction",
    "other": "Other harm",
}
PAYMENT_METHODS = ("paypal", "venmo", "zelle", "prepaidCard", "physicalCheck")

PAYMENT_DETAILS_REQUIRED = "Please provide the required information for your selected payment method"
PAYMENT_METHOD_REQUIRED = "Please select a payment method"
DOCUMENTATION_REQUIRED = "Please upload required supporting documentation for selected harm types"
INVALID_EMAIL = "Please enter a valid email address"

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_HARM_TAGS = {"unselected", "undocumented", "documented"}


def _required(message: str):
    def check(value: str) -> str:
        cleaned = (value or "").strip()
        if not cleaned:
            raise ValueError(message)
        return cleaned

    return AfterValidator(check)


def _check_email(value: str) -> str:
    if not _EMAIL_PATTERN.match(value):
        raise ValueError(INVALID_EMAIL)
    return value


def _check_zip(value: str) -> str:
    if len(value) < 5:
        raise ValueError("ZIP code must be at least 5 characters")
    return value


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ContactInfo(_WireModel):
    full_name: Annotated[str, _required("Full name is required")]
    email: Annotated[str, _required("Email is required"), AfterValidator(_check_email)]
    address: Annotated[str, _required("Address is required")]
    city: Annotated[str, _required("City is required")]
    state: Annotated[str, _required("State is required")]
    zip_code: Annotated[str, _required("ZIP code is required"), AfterValidator(_check_zip)]
    phone: str = ""


class UploadedFile(_WireModel):
    id: Optional[str] = None
    name: str
    url: str
    size: int = 0
    uploaded_at: Optional[str] = None
    file_hash: Optional[str] = None
    storage_path: Optional[str] = None


class UnselectedHarm(_WireModel):
    selected: Literal[False] = False
    details: str = ""
    has_documentation: str = ""
    uploaded_files: list[UploadedFile] = Field(default_factory=list)


class UndocumentedHarm(_WireModel):
    selected: Literal[True] = True
    details: str = ""
    has_documentation: Optional[str] = ""
    uploaded_files: list[UploadedFile] = Field(default_factory=list)


class DocumentedHarm(_WireModel):
    selected: Literal[True] = True
    details: str = ""
    has_documentation: Literal["yes"] = "yes"
    uploaded_files: list[UploadedFile] = Field(default_factory=list, validate_default=True)

    @field_validator("uploaded_files")
    @classmethod
    def _require_files(cls, files: list[UploadedFile]) -> list[UploadedFile]:
        if not files:
            raise ValueError(DOCUMENTATION_REQUIRED)
        return files


def _harm_tag(value) -> str:
    if isinstance(value, dict):
        selected = value.get("selected")
        has_documentation = value.get("hasDocumentation", value.get("has_documentation"))
    else:
        selected = getattr(value, "selected", False)
        has_documentation = getattr(value, "has_documentation", "")
    if not selected:
        return "unselected"
    if has_documentation == "yes":
        return "documented"
    return "undocumented"


HarmEntry = Annotated[
    Union[
        Annotated[UnselectedHarm, Tag("unselected")],
        Annotated[UndocumentedHarm, Tag("undocumented")],
        Annotated[DocumentedHarm, Tag("documented")],
    ],
    Discriminator(_harm_tag),
]


class HarmTypes(_WireModel):
    emotional_distress: HarmEntry = Field(default_factory=UnselectedHarm)
    transaction_delayed: HarmEntry = Field(default_factory=UnselectedHarm)
    credit_denied: HarmEntry = Field(default_factory=UnselectedHarm)
    unable_to_complete: HarmEntry = Field(default_factory=UnselectedHarm)
    other: HarmEntry = Field(default_factory=UnselectedHarm)

    def selected(self) -> list[str]:
        return [key for key in HARM_TYPES if getattr(self, _snake(key)).selected]


_PaymentEmail = Annotated[str, _required(PAYMENT_DETAILS_REQUIRED), AfterValidator(_check_email)]
_PaymentPhone = Annotated[str, _required(PAYMENT_DETAILS_REQUIRED)]


class PaypalPayment(_WireModel):
    method: Literal["paypal"]
    paypal_email: _PaymentEmail = Field(default="", validate_default=True)


class VenmoPayment(_WireModel):
    method: Literal["venmo"]
    venmo_phone: _PaymentPhone = Field(default="", validate_default=True)


class ZellePayment(_WireModel):
    method: Literal["zelle"]
    zelle_phone: str = ""
    zelle_email: str = ""

    @model_validator(mode="after")
    def _phone_or_email(self) -> "ZellePayment":
        phone = self.zelle_phone.strip()
        email = self.zelle_email.strip()
        if not phone and not email:
            raise ValueError(PAYMENT_DETAILS_REQUIRED)
        if email and not _EMAIL_PATTERN.match(email):
            raise ValueError(INVALID_EMAIL)
        return self


class PrepaidCardPayment(_WireModel):
    method: Literal["prepaidCard"]
    prepaid_card_email: _PaymentEmail = Field(default="", validate_default=True)


class PhysicalCheckPayment(_WireModel):
    method: Literal["physicalCheck"]


Payment = Annotated[
    Union[PaypalPayment, VenmoPayment, ZellePayment, PrepaidCardPayment, PhysicalCheckPayment],
    Field(discriminator="method"),
]


class SignatureBlock(_WireModel):
    signature: Annotated[str, _required("Signature is required")]
    printed_name: Annotated[str, _required("Printed name is required")]
    date: str = ""


class ClaimForm(_WireModel):
    """A complete claim ready for submission."""

    contact_info: ContactInfo
    harm_types: HarmTypes = Field(default_factory=HarmTypes)
    payment: Payment
    signature: SignatureBlock
    metadata: Optional[dict] = None

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


def validate_claim_form(data: dict) -> tuple[Optional[ClaimForm], list[dict]]:
    """Validate raw form data; returns ``(form, [])`` or ``(None, errors)``."""
    try:
        return ClaimForm.model_validate(data), []
    except ValidationError as exc:
        return None, flatten_errors(exc)


def flatten_errors(exc: ValidationError) -> list[dict]:
    """Turn a pydantic error into ``{"field", "message"}`` pairs keyed by wire path."""
    errors: list[dict] = []
    for error in exc.errors():
        loc = [str(part) for part in error["loc"] if not _is_union_tag(part)]
        field = ".".join(loc) or "form"
        if error["type"] in {"union_tag_not_found", "union_tag_invalid"} or (field == "payment" and error["type"] == "missing"):
            message = PAYMENT_METHOD_REQUIRED if field == "payment" else "Invalid selection"
        elif error["type"] == "missing":
            message = "This field is required"
        else:
            message = error["msg"]
            if message.startswith("Value error, "):
                message = message[len("Value error, "):]
        errors.append({"field": field, "message": message})
    return errors


def _is_union_tag(part) -> bool:
    return isinstance(part, str) and (part in _HARM_TAGS or part in PAYMENT_METHODS)


def _snake(key: str) -> str:
    return re.sub(r"(?<!^)([A-Z])", r"_\1", key).lower()
