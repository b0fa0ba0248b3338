"""Shared input helpers for the service layer.

clean_text:  one JSON value -> stripped str or None (numbers coerced, other
             types rejected with ValidationFailed)
one_of:      membership check that never hashes a non-string payload
"""

from academy.core.exceptions import ValidationFailed


def clean_text(value, label: str, *, required: bool = False, max_length: int | None = None):
    """Normalise a free-text field taken from a request body.

    Numbers are accepted and turned into text (clients send phone numbers
    as integers). Booleans, lists and objects are rejected. Empty or
    whitespace-only input becomes ``None``; with ``required=True`` it raises.
    """
    if value is None:
        text = ""
    elif isinstance(value, str):
        text = value.strip()
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        text = str(value)
    else:
        raise ValidationFailed(f"{label} must be text")

    if not text:
        if required:
            raise ValidationFailed(f"{label} is required")
        return None
    if max_length is not None and len(text) > max_length:
        raise ValidationFailed(f"{label} must be at most {max_length} characters")
    return text


def one_of(value, allowed, message: str) -> str:
    """Return ``value`` when it is one of the ``allowed`` strings."""
    if not isinstance(value, str) or value not in allowed:
        raise ValidationFailed(message)
    return value
