from __future__ import annotations
from datetime import datetime
from app.time_utils import parse_iso_datetime, to_naive_utc, utcnow

from typing import Any


class ValidationError(ValueError):
    """400-level input problem, optionally tied to a request field."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        payload = {"error": str(self)}
        if self.field:
            payload["field"] = self.field
        return payload


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate active grant)."""


class InvalidStateError(ConflictError):
    """409-level transition from a state that does not allow it (e.g., cancelling an approved request)."""


class NotFoundError(LookupError):
    """404-level: the grant, request, user or region does not exist."""


class AuthorizationError(PermissionError):
    """403-level: the caller is identified but not permitted."""


def require_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for ids coming from JSON or query strings.

    Rejects bools, floats, decimals and scientific notation.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} is required", field)
        # Reject scientific notation (e.g., "1e15") and decimals (e.g., "12.5")
        if "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be a plain integer", field)
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", field)
    if value is None:
        raise ValidationError(f"{field} is required", field)
    raise ValidationError(f"{field} must be an integer", field)


def require_text(value: Any, field: str, *, min_length: int = 1, max_length: int | None = None) -> str:
    if value is None:
        raise ValidationError(f"{field} is required", field)
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field)
    text = value.strip()
    if len(text) < min_length:
        if min_length <= 1:
            raise ValidationError(f"{field} is required", field)
        raise ValidationError(f"{field} must be at least {min_length} characters", field)
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters", field)
    return text


def optional_text(value: Any, field: str, *, max_length: int | None = None) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field)
    text = value.strip()
    if not text:
        return None
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters", field)
    return text


def require_region_list(value: Any, field: str = "regions", *, min_count: int = 1) -> list[str]:
    """Normalize a list of region names, rejecting blanks and duplicates."""
    if not isinstance(value, (list, tuple)):
        raise ValidationError(f"{field} must be a list of region names", field)

    names: list[str] = []
    for item in value:
        if not isinstance(item, str) or not item.strip():
            raise ValidationError(f"{field} must contain non-empty region names", field)
        name = item.strip()
        if name in names:
            raise ValidationError(f"Duplicate region in {field}: {name}", field)
        names.append(name)

    if len(names) < min_count:
        noun = "region" if min_count == 1 else "regions"
        raise ValidationError(f"Select at least {min_count} {noun}", field)
    return names


def require_future_datetime(value: Any, field: str, *, now: datetime | None = None) -> datetime:
    """
    Accept an ISO-8601 string or datetime strictly after now (UTC-naive result).
    """
    if isinstance(value, datetime):
        dt = to_naive_utc(value)
    elif isinstance(value, str):
        try:
            dt = parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 datetime", field)
        if dt is None:
            raise ValidationError(f"{field} is required", field)
    elif value is None:
        raise ValidationError(f"{field} is required", field)
    else:
        raise ValidationError(f"{field} must be an ISO-8601 datetime", field)

    reference = now if now is not None else utcnow()
    if dt <= reference:
        raise ValidationError(f"{field} must be in the future", field)
    return dt
