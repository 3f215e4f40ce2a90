"""Authenticated caller context passed into every lending operation."""

from dataclasses import dataclass

from .errors import ValidationError

# Largest key a BIGINT (and SQLite INTEGER) column can bind
MAX_ID = 2**63 - 1


@dataclass(frozen=True)
class AuthContext:
    """Verified identity of the caller.

    Produced by the authentication layer (Flask session, CLI ``--as``) and
    handed explicitly to the engine; nothing in the core reads identity
    from process-wide state.
    """

    user_id: int
    is_admin: bool = False

    def __post_init__(self):
        object.__setattr__(self, "user_id", require_id(self.user_id, "caller id"))


def require_id(value: object, name: str = "id") -> int:
    """Coerce an identifier to a positive int or raise ValidationError.

    Accepts ints and ASCII digit strings; rejects bools, floats and anything
    outside the signed 64-bit key range.
    """
    if isinstance(value, str):
        text = value.strip()
        if not (text.isascii() and text.isdigit()):
            raise ValidationError(f"Invalid {name}")
        try:
            value = int(text)
        except ValueError:
            raise ValidationError(f"Invalid {name}") from None
    if isinstance(value, bool) or not isinstance(value, int) or not 0 < value <= MAX_ID:
        raise ValidationError(f"Invalid {name}")
    return value
