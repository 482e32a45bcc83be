"""Shared utility functions for blueprints and services.

parse_bool:    lenient truthy parsing for query params / form fields
parse_number:  optional non-negative numeric parsing
"""

_TRUTHY = {"1", "true", "yes", "on", "y"}


def parse_bool(value, default=False):
    """Interpret query-string / form values like ``"true"``, ``"1"``, ``"yes"``."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY


def parse_number(value, field):
    """Parse an optional non-negative number.

    Returns None for empty input. Raises ValueError with a field-specific
    message for non-numeric or negative values.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise ValueError(f"{field} must be a valid number")
    try:
        num = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{field} must be a valid number") from exc
    if num != num:  # NaN
        raise ValueError(f"{field} must be a valid number")
    if num < 0:
        raise ValueError(f"{field} must not be negative")
    return num
