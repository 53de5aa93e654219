"""
Input validation and sanitization utilities used by the request schemas.
"""

import re
from typing import List, Optional


class StringSanitizer:
    """
    String sanitization utilities for free-text fields.
    """

    # Control characters to strip (except newlines, tabs, carriage returns)
    CONTROL_CHARS_PATTERN = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")

    @classmethod
    def sanitize_string(cls, value: str) -> str:
        """
        Strip control characters and surrounding whitespace.

        Question and option text is stored as typed (no HTML escaping); the
        rendering client is responsible for escaping on output.

        Args:
            value: String to sanitize

        Returns:
            Sanitized string
        """
        return cls.CONTROL_CHARS_PATTERN.sub("", value).strip()


class TextValidator:
    """
    Text validation utilities for schema field validation.
    """

    @staticmethod
    def validate_non_empty_text(value: str, field_name: str = "Text") -> str:
        """
        Validate that text is not empty or whitespace-only.

        Args:
            value: Text to validate
            field_name: Name of the field for error messages

        Returns:
            The sanitized value if valid

        Raises:
            ValueError: If the text is empty or whitespace-only
        """
        stripped = StringSanitizer.sanitize_string(value)
        if not stripped:
            raise ValueError(f"{field_name} cannot be empty or whitespace-only")
        return stripped

    @staticmethod
    def validate_optional_text(
        value: Optional[str], field_name: str = "Text"
    ) -> Optional[str]:
        """Like validate_non_empty_text, but None passes through."""
        if value is None:
            return None
        return TextValidator.validate_non_empty_text(value, field_name)


def validate_id_list(values: List[str], field_name: str = "ids") -> List[str]:
    """
    Validate a list of opaque ids: every entry must be non-empty.

    Order and duplicates are preserved; callers decide what duplicates mean.

    Raises:
        ValueError: If an id is empty or whitespace-only
    """
    cleaned = []
    for value in values:
        stripped = value.strip()
        if not stripped:
            raise ValueError(f"{field_name} cannot contain empty ids")
        cleaned.append(stripped)
    return cleaned
