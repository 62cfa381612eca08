"""
Input Validation for the Request Gate.

Validation runs before any store or engine work, so a malformed request
costs nothing but the check itself.

Validation Rules:
    - Text: at most ``max_chars`` code points (200 by default); length is
      counted in characters, not UTF-8 bytes
    - User id: signed 64-bit integer

All functions raise tts_api.core.errors.ValidationError, which the HTTP
layer maps to 400.
"""
from __future__ import annotations

from tts_api.core.config import Defaults
from tts_api.core.errors import ValidationError

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


def validate_text(text: str, max_chars: int = Defaults.GATE_MAX_TEXT_CHARS) -> str:
    """
    Validate text input and return it unchanged.

    Args:
        text: Input text.
        max_chars: Maximum number of characters.

    Raises:
        ValidationError: If validation fails.
    """
    if text is None:
        text = ""

    if len(text) > max_chars:
        raise ValidationError(
            f"Text length must be at most {max_chars} characters.",
            {"length": len(text), "max_chars": max_chars},
        )

    return text


def validate_user_id(user_id: int) -> int:
    """Reject ids outside the signed 64-bit range of the users table."""
    if isinstance(user_id, bool) or not isinstance(user_id, int):
        raise ValidationError("User id must be an integer.", {"id": repr(user_id)})
    if not (INT64_MIN <= user_id <= INT64_MAX):
        raise ValidationError("User id out of range.", {"id": user_id})
    return user_id
