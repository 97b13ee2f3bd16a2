"""Shared input validation utilities.

Everything crossing the CLI / service boundary is checked here so that a
malformed id or an unknown action is rejected before it reaches the store.
"""

import re
import logging

from utils.errors import ValidationError
from utils.helpers import to_num

logger = logging.getLogger("horsai.validators")

_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,63}$")

SIGNAL_ACTIONS = ("acknowledge", "dismiss")

MIN_REVIEW_DAYS = 7
MAX_REVIEW_DAYS = 90


def validate_id(raw, label: str = "id") -> str:
    """Normalise and validate an entity id (uuid or slug).

    Returns the stripped id or raises ValidationError.
    """
    if not isinstance(raw, str):
        raise ValidationError(f"{label} must be a string, got {type(raw).__name__}")
    cleaned = raw.strip()
    if not _ID_RE.match(cleaned):
        raise ValidationError(f"Invalid {label} '{raw}'")
    return cleaned


def validate_action(raw) -> str:
    """Return the lowercased signal action or raise ValidationError."""
    action = str(raw or "").strip().lower()
    if action not in SIGNAL_ACTIONS:
        raise ValidationError(
            f"Invalid action '{raw}': expected one of {', '.join(SIGNAL_ACTIONS)}"
        )
    return action


def validate_date(raw: str) -> str:
    """Validate an ISO-format date string (YYYY-MM-DD). Raises ValidationError."""
    if not isinstance(raw, str):
        raise ValidationError(f"Date must be a string, got {type(raw).__name__}")
    cleaned = raw.strip()[:10]
    if not re.match(r"^\d{4}-\d{2}-\d{2}$", cleaned):
        raise ValidationError(f"Invalid date '{raw}': expected YYYY-MM-DD")
    return cleaned


def validate_review_days(raw) -> int:
    """Review window in days; None means the 90-day default."""
    if raw is None or raw == "":
        return MAX_REVIEW_DAYS
    n = to_num(raw, None)
    if n is None or n != int(n) or not MIN_REVIEW_DAYS <= n <= MAX_REVIEW_DAYS:
        raise ValidationError(
            f"Invalid days '{raw}': expected an integer {MIN_REVIEW_DAYS}-{MAX_REVIEW_DAYS}"
        )
    return int(n)
