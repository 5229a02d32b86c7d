from __future__ import annotations

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

_email_adapter = TypeAdapter(EmailStr)


class InvalidEmailError(ValueError):
    pass


def parse_email(raw: str) -> str:
    """Return the normalized address or raise InvalidEmailError."""
    try:
        return _email_adapter.validate_python(raw.strip())
    except PydanticValidationError as exc:
        raise InvalidEmailError(f"{raw!r} is not a valid subscriber email") from exc
