"""Custom validation utilities."""

import re


def validate_indian_phone(phone: str) -> bool:
    """Validate an Indian mobile number.

    Accepted formats:
    - +919876543210 (international)
    - 09876543210 (local with trunk prefix)
    - 9876543210 (ten digits)
    - 98765-43210 (with dash or spaces)

    Args:
        phone: Phone number to validate

    Returns:
        bool: True if valid Indian mobile format
    """
    # Remove spaces, dashes, and parentheses
    cleaned = re.sub(r"[\s\-\(\)]", "", phone)

    if cleaned.startswith("+91"):
        cleaned = cleaned[3:]
    elif cleaned.startswith("0"):
        cleaned = cleaned[1:]

    return len(cleaned) == 10 and cleaned.isdigit() and cleaned[0] in "6789"


def normalize_phone(phone: str) -> str:
    """Normalize phone number to international format.

    Args:
        phone: Phone number in any format

    Returns:
        str: Phone number in +91XXXXXXXXXX format
    """
    # Remove non-digits except +
    cleaned = re.sub(r"[^\d+]", "", phone)

    # Already international format
    if cleaned.startswith("+91"):
        return cleaned

    # Local format starting with 0
    if cleaned.startswith("0") and len(cleaned) == 11:
        return "+91" + cleaned[1:]

    # Bare ten-digit mobile number
    if len(cleaned) == 10:
        return "+91" + cleaned

    return phone  # Return as-is if can't normalize


def validate_visit_time(value: str) -> bool:
    """Validate a 24-hour HH:MM visit time."""
    return re.fullmatch(r"([01]\d|2[0-3]):[0-5]\d", value) is not None


def mask_sensitive_data(data: str, visible_chars: int = 4) -> str:
    """Mask sensitive data showing only last few characters.

    Args:
        data: Sensitive data to mask
        visible_chars: Number of characters to show at end

    Returns:
        str: Masked string like '********7890'
    """
    if len(data) <= visible_chars:
        return "*" * len(data)

    masked_length = len(data) - visible_chars
    return "*" * masked_length + data[-visible_chars:]
