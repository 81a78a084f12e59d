"""One-time code generation and input normalization."""

import secrets

from pydantic import EmailStr, TypeAdapter, ValidationError

from auth.exceptions import InvalidRequestError

_email_adapter = TypeAdapter(EmailStr)


def generate_code(length: int = 6) -> str:
    """
    Uniformly random numeric code of exactly `length` digits.

    Leading zeros are kept, so every value in [0, 10**length) is possible.
    """
    return f"{secrets.randbelow(10 ** length):0{length}d}"


def normalize_email(email: str | None) -> str:
    """
    Strip and lower-case an email, rejecting missing or malformed input.

    Raises:
        InvalidRequestError: If email is absent or not an address.
    """
    if email is None or not str(email).strip():
        raise InvalidRequestError("Email is required")

    email = str(email).strip().lower()
    try:
        _email_adapter.validate_python(email)
    except ValidationError:
        raise InvalidRequestError("Email address is not valid")
    return email


def is_well_formed_code(code: str, length: int) -> bool:
    """True if code is exactly `length` ASCII digits."""
    return len(code) == length and code.isascii() and code.isdigit()
