"""
Shared validation helpers for engine services.
"""

from __future__ import annotations

from typing import Optional, Sequence

from payback.config import MAX_MEMBER_ID_LENGTH, MAX_SHORT_TEXT_LENGTH
from payback.errors import ValidationIssue


def validate_required_text(value: str, field: str, max_len: int) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValidationIssue(f"{field} must be a non-empty string", field=field, error_type="required")
    if len(value) > max_len:
        raise ValidationIssue(f"{field} exceeds max length {max_len}", field=field, error_type="max_length")


def validate_optional_text(value: Optional[str], field: str, max_len: int) -> None:
    if value is None:
        return
    if not isinstance(value, str):
        raise ValidationIssue(f"{field} must be a string", field=field, error_type="invalid_type")
    if len(value) > max_len:
        raise ValidationIssue(f"{field} exceeds max length {max_len}", field=field, error_type="max_length")


def validate_limit(value: int, field: str, max_value: int) -> None:
    if value <= 0 or value > max_value:
        raise ValidationIssue(f"{field} must be between 1 and {max_value}", field=field, error_type="out_of_range")


def validate_string_list(
    values: Optional[Sequence[str]],
    field: str,
    max_items: int,
    max_item_length: int,
) -> None:
    if values is None:
        return
    if isinstance(values, str) or not isinstance(values, (list, tuple, set)):
        raise ValidationIssue(f"{field} must be a list", field=field, error_type="invalid_type")
    if len(values) > max_items:
        raise ValidationIssue(f"{field} exceeds max items {max_items}", field=field, error_type="max_items")
    for item in values:
        if not isinstance(item, str):
            raise ValidationIssue(f"{field} must contain only strings", field=field, error_type="invalid_type")
        if len(item) > max_item_length:
            raise ValidationIssue(
                f"{field} item exceeds max length {max_item_length}",
                field=field,
                error_type="max_length",
            )


def normalize_member_id(value: str, field: str = "member_id") -> str:
    """Trim and lowercase a member id; member ids compare case-insensitively."""
    validate_required_text(value, field, MAX_MEMBER_ID_LENGTH)
    member_id = value.strip().lower()
    if "@" in member_id:
        raise ValidationIssue(
            f"{field} must be an opaque id, not an email address",
            field=field,
            error_type="invalid_value",
        )
    return member_id


def normalize_member_ids(values: Sequence[str], field: str, max_items: int) -> list[str]:
    """Normalize a list of member ids, dropping duplicates but keeping order."""
    validate_string_list(values, field, max_items, MAX_MEMBER_ID_LENGTH)
    seen: set[str] = set()
    normalized: list[str] = []
    for value in values or ():
        member_id = normalize_member_id(value, field=field)
        if member_id not in seen:
            seen.add(member_id)
            normalized.append(member_id)
    return normalized


def normalize_email(value: str, field: str = "email") -> str:
    validate_required_text(value, field, MAX_SHORT_TEXT_LENGTH)
    email = value.strip().lower()
    local, sep, domain = email.partition("@")
    if not sep or not local or not domain or "@" in domain:
        raise ValidationIssue(f"{field} must be a valid email address", field=field, error_type="invalid_value")
    return email
