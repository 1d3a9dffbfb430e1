"""Issuing, verifying and transporting access/refresh token pairs."""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Request, Response

from lms.core import config
from lms.models.user import Role, User


class InvalidTokenError(Exception):
    """Raised for any token that is malformed, forged, expired or of the wrong kind."""

    def __init__(self, message: str = "invalid token") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class TokenDetails:
    access_token: str
    refresh_token: str
    access_uuid: str
    refresh_uuid: str
    at_expires: int
    rt_expires: int


@dataclass(frozen=True)
class AccessTokenClaims:
    user_id: int
    username: str
    email: str
    role: Role
    uuid: str
    exp: int
    iat: int
    iss: str


@dataclass(frozen=True)
class RefreshTokenClaims:
    user_id: int
    uuid: str
    exp: int
    iat: int
    iss: str


def create_token(user: User, now: datetime | None = None) -> TokenDetails:
    issued_at = now or datetime.now(timezone.utc)
    at_expires = issued_at + timedelta(minutes=config.ACCESS_TOKEN_EXPIRES_MINUTES)
    rt_expires = issued_at + timedelta(days=config.REFRESH_TOKEN_EXPIRES_DAYS)
    access_uuid = str(uuid.uuid4())
    refresh_uuid = str(uuid.uuid4())

    access_payload = {
        "user_id": user.id,
        "username": user.username,
        "email": user.email,
        "role": Role(user.role).value,
        "uuid": access_uuid,
        "exp": at_expires,
        "iat": issued_at,
        "iss": config.JWT_ISSUER,
    }
    refresh_payload = {
        "user_id": user.id,
        "uuid": refresh_uuid,
        "exp": rt_expires,
        "iat": issued_at,
        "iss": config.JWT_ISSUER,
    }

    return TokenDetails(
        access_token=jwt.encode(access_payload, config.ACCESS_TOKEN_SECRET, algorithm=config.JWT_ALGORITHM),
        refresh_token=jwt.encode(refresh_payload, config.REFRESH_TOKEN_SECRET, algorithm=config.JWT_ALGORITHM),
        access_uuid=access_uuid,
        refresh_uuid=refresh_uuid,
        at_expires=int(at_expires.timestamp()),
        rt_expires=int(rt_expires.timestamp()),
    )


def _decode(token: str, secret: str) -> dict:
    if not token:
        raise InvalidTokenError()
    try:
        # A single allowed algorithm: a token signed with anything else
        # (including "none") is rejected before its signature is looked at.
        return jwt.decode(
            token,
            secret,
            algorithms=[config.JWT_ALGORITHM],
            issuer=config.JWT_ISSUER,
            options={"require": ["exp", "iat", "iss"]},
        )
    except jwt.PyJWTError as exc:
        raise InvalidTokenError() from exc


def _require_user_id(payload: dict) -> int:
    user_id = payload.get("user_id")
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        raise InvalidTokenError()
    return user_id


def _require_uuid(payload: dict) -> str:
    token_uuid = payload.get("uuid")
    if not isinstance(token_uuid, str) or not token_uuid:
        raise InvalidTokenError()
    return token_uuid


def verify_access_token(token: str) -> AccessTokenClaims:
    payload = _decode(token, config.ACCESS_TOKEN_SECRET)
    try:
        role = Role(payload.get("role"))
    except ValueError as exc:
        raise InvalidTokenError() from exc

    return AccessTokenClaims(
        user_id=_require_user_id(payload),
        username=str(payload.get("username", "")),
        email=str(payload.get("email", "")),
        role=role,
        uuid=_require_uuid(payload),
        exp=payload["exp"],
        iat=payload["iat"],
        iss=payload["iss"],
    )


def verify_refresh_token(token: str) -> RefreshTokenClaims:
    payload = _decode(token, config.REFRESH_TOKEN_SECRET)
    return RefreshTokenClaims(
        user_id=_require_user_id(payload),
        uuid=_require_uuid(payload),
        exp=payload["exp"],
        iat=payload["iat"],
        iss=payload["iss"],
    )


def extract_token(request: Request, cookie_name: str = config.ACCESS_TOKEN_COOKIE) -> str:
    bearer = request.headers.get("Authorization", "")
    if len(bearer) > 7 and bearer.startswith("Bearer "):
        return bearer[7:]
    return request.cookies.get(cookie_name, "")


def _seconds_until(timestamp: int) -> int:
    return max(0, timestamp - int(datetime.now(timezone.utc).timestamp()))


def set_token_cookies(response: Response, details: TokenDetails) -> None:
    response.set_cookie(
        key=config.ACCESS_TOKEN_COOKIE,
        value=details.access_token,
        max_age=_seconds_until(details.at_expires),
        path="/",
        httponly=True,
        secure=config.COOKIE_SECURE,
        samesite="lax",
    )
    response.set_cookie(
        key=config.REFRESH_TOKEN_COOKIE,
        value=details.refresh_token,
        max_age=_seconds_until(details.rt_expires),
        path="/",
        httponly=True,
        secure=config.COOKIE_SECURE,
        samesite="lax",
    )


def clear_token_cookies(response: Response) -> None:
    response.delete_cookie(config.ACCESS_TOKEN_COOKIE, path="/", httponly=True, secure=config.COOKIE_SECURE)
    response.delete_cookie(config.REFRESH_TOKEN_COOKIE, path="/", httponly=True, secure=config.COOKIE_SECURE)
