"""Email verification codes.

A code is six characters from ``A-Z0-9``, valid for
``VERIFICATION_CODE_TTL_SECONDS`` after it was issued, and usable once.
"""

import logging
import secrets
import string
import time

from lms.core import config
from lms.core.errors import ValidationError
from lms.models.user import User

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_code(length: int = config.VERIFICATION_CODE_LENGTH) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def issue_code(user: User, now: int | None = None) -> str:
    code = generate_code()
    user.verification_code = code
    user.verification_code_created = int(time.time()) if now is None else now
    user.is_verified = False
    return code


def is_code_expired(user: User, now: int | None = None) -> bool:
    if user.verification_code_created is None:
        return True
    current = int(time.time()) if now is None else now
    return current - user.verification_code_created > config.VERIFICATION_CODE_TTL_SECONDS


def check_code(user: User, code: str, now: int | None = None) -> bool:
    if not user.verification_code or user.verification_code != code:
        return False
    return not is_code_expired(user, now)


def verify_user(user: User, code: str, now: int | None = None) -> None:
    """Mark ``user`` verified or raise without touching it."""
    if not user.verification_code or user.verification_code != code:
        logger.info("Rejected verification code for user %s", user.id)
        raise ValidationError("Incorrect verification code")
    if is_code_expired(user, now):
        logger.info("Expired verification code for user %s", user.id)
        raise ValidationError("Verification code has expired. Please request a new one.")

    user.is_verified = True
    user.verification_code = None
