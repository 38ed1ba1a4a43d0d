"""
Spendwise - Data Validation

PURPOSE: Request validation and category taxonomy enforcement
SCOPE: Input validation performed before any side effect
DEPENDENCIES: typing, config.py
"""

from typing import Any, List, Optional, Tuple

from .config import config


def validate_parse_request(text: Optional[str], user_id: Optional[str]) -> Tuple[bool, List[str]]:
    """Validate a text ingestion request."""
    errors = []

    if not isinstance(text, str) or not text.strip():
        errors.append("Text is required")

    if not user_id or not str(user_id).strip():
        errors.append("userId is required")

    return len(errors) == 0, errors


def validate_audio_request(audio: Optional[bytes], user_id: Optional[str]) -> Tuple[bool, List[str]]:
    """Validate an audio ingestion request."""
    errors = []

    if not audio:
        errors.append("Audio file is required")

    if not user_id or not str(user_id).strip():
        errors.append("userId is required")

    return len(errors) == 0, errors


def validate_correction_request(expense_id: Optional[str],
                                corrected_category: Optional[str]) -> Tuple[bool, List[str]]:
    """Validate a category correction request."""
    errors = []

    if not expense_id or not str(expense_id).strip():
        errors.append("expense_id is required")

    if not corrected_category or not str(corrected_category).strip():
        errors.append("corrected_category is required")
    elif corrected_category not in config.CATEGORIES:
        errors.append(f"corrected_category must be one of: {', '.join(config.CATEGORIES)}")

    return len(errors) == 0, errors


def normalize_category(value: Any) -> str:
    """Map a free-form category onto the taxonomy, substituting the fallback."""
    if not isinstance(value, str):
        return config.FALLBACK_CATEGORY

    candidate = value.strip().lower()
    for category in config.CATEGORIES:
        if category.lower() == candidate:
            return category
    return config.FALLBACK_CATEGORY
