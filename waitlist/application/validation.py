from __future__ import annotations
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    BeforeValidator,
    EmailStr,
    StrictBool,
    StringConstraints,
    TypeAdapter,
    ValidationError,
)

from waitlist.domain.entities import ErrorKind, OperationResult, SignupRequest

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 50

NAME_REQUIRED      = "Name is required"
NAME_TOO_SHORT     = f"Name length must be at least {NAME_MIN_LENGTH} characters"
NAME_TOO_LONG      = f"Name length must be at most {NAME_MAX_LENGTH} characters"
EMAIL_REQUIRED     = "Email is required"
EMAIL_INVALID      = "Please enter a valid email address"
SUBSCRIBED_INVALID = "Invalid subscription preference"


def _clean_email(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


SignupName  = Annotated[str, StringConstraints(strip_whitespace=True, min_length=NAME_MIN_LENGTH, max_length=NAME_MAX_LENGTH)]
SignupEmail = Annotated[EmailStr, BeforeValidator(_clean_email)]


class SignupForm(BaseModel):
    """
    Schema for a signup form submission.
    `subscribed` defaults here and nowhere else.
    """
    name:       SignupName
    email:      SignupEmail
    subscribed: StrictBool = False


_name_adapter  = TypeAdapter(SignupName)
_email_adapter = TypeAdapter(SignupEmail)


def _is_blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


def _message(error: dict, request: SignupRequest) -> str:
    field = error["loc"][0] if error["loc"] else None
    if field == "name":
        if _is_blank(request.name):
            return NAME_REQUIRED
        return NAME_TOO_LONG if error["type"] == "string_too_long" else NAME_TOO_SHORT
    if field == "email":
        return EMAIL_REQUIRED if _is_blank(request.email) else EMAIL_INVALID
    return SUBSCRIBED_INVALID


def _form_input(request: SignupRequest) -> dict:
    data = {"name": request.name, "email": request.email}
    if request.subscribed is not None:
        data["subscribed"] = request.subscribed
    return data


def validate(request: SignupRequest, first_only: bool = False) -> OperationResult[None]:
    """
    Check a signup submission before it goes anywhere.

    Rules run in field order: name, email, opt-in flag. By default every
    violation is reported so a form can show them all at once; with
    first_only=True only the first one is.
    """
    try:
        SignupForm.model_validate(_form_input(request))
    except ValidationError as exc:
        errors = [_message(error, request) for error in exc.errors()]
        if first_only:
            errors = errors[:1]
        return OperationResult.failure(ErrorKind.VALIDATION_ERROR, "; ".join(errors), tuple(errors))
    return OperationResult.success()


def normalize(request: SignupRequest) -> SignupRequest:
    """Canonical form of a request that already passed validate()."""
    form = SignupForm.model_validate(_form_input(request))
    return SignupRequest(name=form.name, email=form.email, subscribed=form.subscribed)


def is_valid_name(name: str | None) -> bool:
    try:
        _name_adapter.validate_python(name)
    except ValidationError:
        return False
    return True


def is_valid_email(email: str | None) -> bool:
    try:
        _email_adapter.validate_python(email)
    except ValidationError:
        return False
    return True
