"""
Step-bound input validation

Validates free text against the ValidationRule of the current scenario step and
parses button payloads. Everything here is pure: no I/O, no state.

Validation order for free text:
1. Empty input - rejected unless the step is skippable (empty means "skip")
2. Length bounds (characters)
3. Pattern (full match)
4. Kind-specific format (number, date, time, email, phone, choice)
"""

import logging
import math
import re
from datetime import datetime
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from src.exceptions import ValidationError
from src.models.scenario import InputKind, ValidationRule
from src.models.update import CallbackData

logger = logging.getLogger(__name__)

CALLBACK_NAMESPACES = frozenset({
    "lang",
    "location",
    "calendar",
    "event_register",
    "event_unregister",
    "admin",
    "group_setup",
})

PHONE_CHARS = frozenset("0123456789+- ")
DATE_SHAPE = re.compile(r"\d{4}-\d{2}-\d{2}")
TIME_SHAPE = re.compile(r"\d{2}:\d{2}")

DEFAULT_MESSAGES = {
    InputKind.NUMBER: "Invalid number format",
    InputKind.DATE: "Invalid date format (YYYY-MM-DD)",
    InputKind.TIME: "Invalid time format (HH:MM)",
    InputKind.EMAIL: "Invalid email format",
    InputKind.PHONE: "Invalid phone format",
}


# ============================================================================
# MESSAGE INPUT
# ============================================================================

class MessageInput(BaseModel):
    """
    Normalize text message input before step validation

    Constraints:
    - Max length: 4096 characters (Telegram limit)
    - Surrounding whitespace is trimmed
    """
    text: str = Field(default="", max_length=4096)

    @field_validator('text', mode='before')
    @classmethod
    def trim(cls, v):
        return v.strip() if isinstance(v, str) else v


# ============================================================================
# STEP INPUT VALIDATION
# ============================================================================

@lru_cache(maxsize=64)
def _compile(pattern: str) -> re.Pattern:
    return re.compile(pattern)


def _fail(rule: ValidationRule, default: str, value: str, field: Optional[str]) -> ValidationError:
    return ValidationError(
        message=rule.error_message or default,
        field=field,
        value=value,
        error_key=rule.error_key,
    )


def _is_number(value: str) -> bool:
    try:
        return math.isfinite(float(value))
    except ValueError:
        return False


def _is_date(value: str) -> bool:
    if not DATE_SHAPE.fullmatch(value):
        return False
    try:
        datetime.strptime(value, "%Y-%m-%d")
        return True
    except ValueError:
        return False


def _is_time(value: str) -> bool:
    if not TIME_SHAPE.fullmatch(value):
        return False
    try:
        datetime.strptime(value, "%H:%M")
        return True
    except ValueError:
        return False


def _is_email(value: str) -> bool:
    return "@" in value and "." in value and len(value) > 5


def _is_phone(value: str) -> bool:
    return len(value) >= 10 and all(ch in PHONE_CHARS for ch in value)


def validate(
    rule: Optional[ValidationRule],
    value: str,
    skippable: bool = False,
    field: Optional[str] = None
) -> None:
    """
    Check ``value`` against ``rule``.

    Args:
        rule: Validation rule of the step (None means "any non-empty input")
        value: User input, already trimmed
        skippable: Whether the step may be skipped with empty input
        field: Step id, carried on the error for logging

    Raises:
        ValidationError: with the rule's message (or a kind-specific default)
            and the rule's translation key
    """
    if value == "":
        if skippable:
            return
        if rule is None:
            raise ValidationError(message="Input cannot be empty", field=field, value=value)
        raise _fail(rule, "Input cannot be empty", value, field)

    if rule is None:
        return

    if rule.min_length is not None and len(value) < rule.min_length:
        raise _fail(rule, f"Input too short (minimum {rule.min_length} characters)", value, field)

    if rule.max_length is not None and len(value) > rule.max_length:
        raise _fail(rule, f"Input too long (maximum {rule.max_length} characters)", value, field)

    if rule.pattern is not None and not _compile(rule.pattern).fullmatch(value):
        raise _fail(rule, "Input format is invalid", value, field)

    kind = rule.kind
    if kind == InputKind.NUMBER and not _is_number(value):
        raise _fail(rule, DEFAULT_MESSAGES[kind], value, field)
    if kind == InputKind.DATE and not _is_date(value):
        raise _fail(rule, DEFAULT_MESSAGES[kind], value, field)
    if kind == InputKind.TIME and not _is_time(value):
        raise _fail(rule, DEFAULT_MESSAGES[kind], value, field)
    if kind == InputKind.EMAIL and not _is_email(value):
        raise _fail(rule, DEFAULT_MESSAGES[kind], value, field)
    if kind == InputKind.PHONE and not _is_phone(value):
        raise _fail(rule, DEFAULT_MESSAGES[kind], value, field)
    if kind == InputKind.CHOICE and value not in rule.choices:
        raise _fail(
            rule,
            f"Invalid choice. Available options: {', '.join(rule.choices)}",
            value,
            field,
        )


def is_valid(rule: Optional[ValidationRule], value: str, skippable: bool = False) -> bool:
    """Boolean form of validate() for callers that only branch on the result"""
    try:
        validate(rule, value, skippable=skippable)
        return True
    except ValidationError:
        return False


# ============================================================================
# BUTTON PAYLOADS
# ============================================================================

def parse_callback_data(data: str) -> Optional[CallbackData]:
    """
    Parse ``namespace:action[:arg...]``.

    Returns None for payloads with fewer than two parts or with empty /
    non-printable parts. Unknown namespaces still parse; routing decides.
    """
    if not data:
        return None

    parts = data.split(":")
    if len(parts) < 2:
        return None
    if any(not part or not part.isprintable() for part in parts):
        return None

    return CallbackData(namespace=parts[0], action=parts[1], args=parts[2:])


def validate_callback(namespace: str, action: str, args: Optional[list[str]] = None) -> None:
    """
    Check an already split button payload.

    Raises:
        ValidationError: unknown namespace, or a part that is empty,
            non-printable or contains ':'
    """
    for part in (namespace, action, *(args or [])):
        if not part or ":" in part or not part.isprintable():
            raise ValidationError(
                "Malformed callback data",
                field="callback_data",
                value=part,
            )
    if namespace not in CALLBACK_NAMESPACES:
        raise ValidationError(
            f"Unknown callback namespace: {namespace}",
            field="callback_data",
            value=namespace,
        )
