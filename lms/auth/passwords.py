import re
import unicodedata

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}$")
MIN_PASSWORD_LENGTH = 8
PASSWORD_REQUIREMENTS = (
    "Password must be at least 8 characters, with 1 uppercase, 1 number, and 1 special character"
)


def is_valid_email(email: str | None) -> bool:
    return bool(email) and EMAIL_PATTERN.match(email) is not None


def _is_special(ch: str) -> bool:
    # Unicode punctuation (P*) and symbol (S*) categories.
    return unicodedata.category(ch)[0] in {"P", "S"}


def is_strong_password(password: str | None) -> bool:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        return False

    has_upper = any(ch.isupper() for ch in password)
    has_number = any(ch.isdigit() for ch in password)
    has_special = any(_is_special(ch) for ch in password)
    return has_upper and has_number and has_special
