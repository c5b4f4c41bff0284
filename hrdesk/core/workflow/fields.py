"""Answer validation for request type fields.

Each field type maps to one rule; all failures are collected and raised
together so the caller can show every problem at once.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional

from hrdesk.db.models import RequestField

from .errors import ValidationError

logger = logging.getLogger(__name__)

FIELD_TYPES = ("text", "number", "date", "textarea", "checkbox", "dropdown", "radio", "file")
CHOICE_FIELD_TYPES = ("dropdown", "radio")

_TRUE_VALUES = {"1", "true", "on", "yes"}
_FALSE_VALUES = {"0", "false", "off", "no"}


@dataclass
class NormalizedAnswer:
    """A validated answer ready to be stored as a RequestAnswer row."""
    field: RequestField
    value: Optional[str]
    value_json: Any = None


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def parse_bool(value: Any) -> Optional[bool]:
    """Interpret common boolean spellings; None when the value is not boolean-like."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
    return None


def parse_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def _normalize_number(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        try:
            Decimal(value.strip())
        except InvalidOperation:
            return None
        if value.strip().lower() in ("nan", "inf", "-inf", "infinity", "-infinity", "+inf"):
            return None
        return value.strip()
    return None


def validate_field(field: RequestField, raw: Any) -> NormalizedAnswer:
    """
    Validate one answer against its field definition.

    Raises:
        ValueError: with the message to report for this field
    """
    label = field.label
    ftype = field.field_type

    if ftype == "checkbox":
        if is_blank(raw):
            if field.is_required:
                raise ValueError(f"The {label} field is required.")
            return NormalizedAnswer(field, "0")
        checked = parse_bool(raw)
        if checked is None:
            raise ValueError(f"The {label} field must be true or false.")
        if field.is_required and not checked:
            raise ValueError(f"The {label} field must be accepted.")
        return NormalizedAnswer(field, "1" if checked else "0")

    if is_blank(raw):
        if field.is_required:
            raise ValueError(f"The {label} field is required.")
        return NormalizedAnswer(field, None)

    if ftype == "number":
        normalized = _normalize_number(raw)
        if normalized is None:
            raise ValueError(f"The {label} field must be a number.")
        return NormalizedAnswer(field, normalized)

    if ftype == "date":
        parsed = parse_date(raw)
        if parsed is None:
            raise ValueError(f"The {label} field must be a valid date.")
        return NormalizedAnswer(field, parsed.isoformat())

    if ftype in CHOICE_FIELD_TYPES:
        if not isinstance(raw, str):
            raise ValueError(f"The {label} field must be a string.")
        choices = field.option_values()
        if choices and raw not in choices:
            raise ValueError(f"The selected {label} is invalid.")
        selected = next(
            (o for o in (field.options or []) if str(o.get("value")) == raw),
            None,
        )
        return NormalizedAnswer(field, raw, selected)

    if ftype == "file":
        if not isinstance(raw, dict) or not isinstance(raw.get("key"), str) or not raw["key"]:
            raise ValueError(f"The {label} field must be an uploaded file.")
        meta = {
            "original_name": raw.get("original_name") or raw.get("original_filename"),
            "mime_type": raw.get("mime_type") or raw.get("content_type"),
            "size": raw.get("size") or raw.get("size_bytes"),
            "url": raw.get("url"),
        }
        return NormalizedAnswer(field, raw["key"], meta)

    # text, textarea and anything unrecognised
    if not isinstance(raw, str):
        raise ValueError(f"The {label} field must be a string.")
    return NormalizedAnswer(field, raw)


def validate_answers(fields: Iterable[RequestField], answers: Any) -> list[NormalizedAnswer]:
    """
    Validate a full answer set against the request type's fields.

    Answers for keys the type does not define are ignored. Every field gets a
    NormalizedAnswer, with ``value`` None when an optional field was left out.

    Raises:
        ValidationError: errors keyed by field_key
    """
    if answers is None:
        answers = {}
    if not isinstance(answers, dict):
        raise ValidationError(errors={"answers": "The answers field must be an object."})

    normalized: list[NormalizedAnswer] = []
    errors: dict[str, str] = {}

    for field in fields:
        try:
            normalized.append(validate_field(field, answers.get(field.field_key)))
        except ValueError as e:
            errors[field.field_key] = str(e)

    if errors:
        logger.debug("Answer validation failed: %s", errors)
        raise ValidationError(errors=errors)

    return normalized
