"""Password strength rules applied at registration and profile updates."""

from __future__ import annotations

import os
import re
from typing import List, Optional, Tuple, Union

DEFAULT_MIN_PASSWORD_LENGTH: int = 8
MIN_ALLOWED_PASSWORD_LENGTH: int = 6
MAX_ALLOWED_PASSWORD_LENGTH: int = 128
PASSWORD_MIN_LENGTH_KEY: str = "PASSWORD_MIN_LENGTH"

_LETTER = re.compile(r'[A-Za-z]')
_DIGIT = re.compile(r'\d')
_SPECIAL_CHARS = re.compile(r'[!@#$%^&*()_+\-=\[\]{};\':"\\|,.<>\/?]')

COMMON_PASSWORDS = frozenset({
    'password', 'password1', 'password123', 'password1234', 'passw0rd',
    'admin', 'admin123', 'administrator', 'qwerty', 'qwerty123',
    'welcome', 'welcome123', 'letmein', 'letmein123', 'monkey', 'dragon',
    '123456', '12345678', 'iloveyou', 'bookworm', 'library', 'library123',
})


def _parse_length(value: Union[str, int, float, None]) -> Optional[int]:
    """Sanitised length clamped to the allowed range, or None when unset/unparseable."""
    if isinstance(value, str):
        value = value.strip() or None
    if value is None:
        return None
    try:
        length = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return max(MIN_ALLOWED_PASSWORD_LENGTH, min(length, MAX_ALLOWED_PASSWORD_LENGTH))


def get_config_password_min_length() -> Optional[int]:
    from flask import current_app, has_app_context

    if not has_app_context():
        return None
    return _parse_length(current_app.config.get(PASSWORD_MIN_LENGTH_KEY))


def get_env_password_min_length() -> Optional[int]:
    return _parse_length(os.getenv(PASSWORD_MIN_LENGTH_KEY))


def resolve_min_password_length(include_source: bool = False) -> Union[int, Tuple[int, str]]:
    """Active minimum length; app config beats the environment, which beats the default."""
    for source, value in (("config", get_config_password_min_length()),
                          ("env", get_env_password_min_length())):
        if value is not None:
            return (value, source) if include_source else value
    return (DEFAULT_MIN_PASSWORD_LENGTH, "default") if include_source else DEFAULT_MIN_PASSWORD_LENGTH


def password_problems(password: Optional[str]) -> List[str]:
    """Requirements the password fails, in display order. Empty means acceptable."""
    min_length = resolve_min_password_length()
    if not password:
        return [f"At least {min_length} characters long"]

    problems = []
    if len(password) < min_length:  # type: ignore[operator]
        problems.append(f"At least {min_length} characters long")
    if not _LETTER.search(password):
        problems.append("Contains at least one letter")
    if not (_DIGIT.search(password) or _SPECIAL_CHARS.search(password)):
        problems.append("Contains at least one number or special character")
    if password.lower() in COMMON_PASSWORDS:
        problems.append("Not a commonly used password")
    return problems


def is_password_strong(password: Optional[str]) -> bool:
    return not password_problems(password)


def get_password_requirements() -> List[str]:
    """Human-readable list of every requirement."""
    min_length = resolve_min_password_length()
    return [
        f"At least {min_length} characters long",
        "Contains at least one letter",
        "Contains at least one number or special character",
        "Not a commonly used password",
    ]
