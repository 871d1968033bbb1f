"""
Utility functions shared across the portal:
- id/timestamp generation for documents and history entries
- lenient parsing of amounts and ISO dates coming from JSON payloads
- small payload validators used by the repository and the lifecycle engine
"""

from __future__ import annotations

import re
import secrets
import string
import time
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from .errors import ValidationError

_ID_ALPHABET = string.ascii_lowercase + string.digits
MOBILE_RE = re.compile(r"^[6-9]\d{9}$")


def new_id(prefix: str = "id") -> str:
    """Unique id such as milestone_1718000000000_k3j9x0a2b."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a Z suffix."""
    return as_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utcnow_iso() -> str:
    return to_iso(utcnow())


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO date or datetime string into an aware UTC datetime.

    Returns None for empty or unparseable input. "2025-06-10" is midnight UTC.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    raw = str(value).strip()
    if not raw:
        return None
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(raw))
    except ValueError:
        return None


def parse_amount(value: Any, *, field: str = "budget", default: Any = 0) -> int | float:
    """
    Parse a non-negative monetary amount from JSON input.

    Accepts numbers and numeric strings. Commas are digit grouping, so both
    "100,000" and the lakh form "1,00,000" read as 100000.
    Integral values come back as int so documents keep whole rupee amounts clean.
    """
    if value is None or value == "":
        if default is None:
            raise ValidationError(f"{field} is required.")
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number.")
    try:
        amount = Decimal(str(value).strip().replace(",", ""))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number.")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number.")
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative.")
    if amount == amount.to_integral_value():
        return int(amount)
    return float(amount)


def amount_or_zero(value: Any) -> int | float:
    """Read side: any malformed stored amount counts as zero."""
    try:
        return parse_amount(value)
    except ValidationError:
        return 0


def require_text(payload: dict, field: str, *, label: str | None = None) -> str:
    value = payload.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label or field} is required.")
    return value.strip()


def optional_text(payload: dict, field: str, default: str = "") -> str:
    value = payload.get(field)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be text.")
    return value.strip()


def clean_timeline(value: Any, *, field: str = "timeline") -> dict:
    """Validate a {start, end} window; both ends optional, but start must not be after end."""
    if value is None:
        return {"start": "", "end": ""}
    if not isinstance(value, dict):
        raise ValidationError(f"{field} must be an object with start and end.")

    cleaned = {}
    for key in ("start", "end"):
        raw = value.get(key) or ""
        if raw and parse_timestamp(raw) is None:
            raise ValidationError(f"{field}.{key} is not a valid date.")
        cleaned[key] = raw

    start, end = parse_timestamp(cleaned["start"]), parse_timestamp(cleaned["end"])
    if start and end and start > end:
        raise ValidationError(f"{field} start must not be after end.")
    return cleaned


def clean_list(value: Any, *, field: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a list.")
    return list(value)


def is_valid_mobile(mobile: str | None) -> bool:
    return bool(mobile) and bool(MOBILE_RE.match(mobile))
