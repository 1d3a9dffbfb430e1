import logging

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel, field_validator
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from lms.auth import jwt_handler, passwords, verification
from lms.auth.dependencies import get_current_claims
from lms.auth.jwt_handler import AccessTokenClaims
from lms.core import config
from lms.core.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from lms.database import database_unavailable, get_db
from lms.models.user import Role, User

router = APIRouter(tags=['auth'])

logger = logging.getLogger(__name__)


def _strip(value: str | None) -> str:
    return (value or '').strip()


class SignupRequest(BaseModel):
    username: str = ''
    email: str = ''
    confirm_email: str = ''
    password: str = ''
    confirm_password: str = ''

    @field_validator('username', 'email', 'confirm_email')
    @classmethod
    def strip_text(cls, value: str) -> str:
        return _strip(value)


class VerifyRequest(BaseModel):
    email: str = ''
    code: str = ''

    @field_validator('email', 'code')
    @classmethod
    def strip_text(cls, value: str) -> str:
        return _strip(value)


class SigninRequest(BaseModel):
    email: str
    password: str

    @field_validator('email')
    @classmethod
    def strip_email(cls, value: str) -> str:
        return _strip(value)


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    role: Role
    is_verified: bool

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = 'bearer'
    expires_at: int
    refresh_expires_at: int


class MeResponse(BaseModel):
    user_id: int
    username: str
    email: str
    role: Role


def validate_signup(data: SignupRequest) -> None:
    if not data.username:
        raise ValidationError('Username is required')
    if not passwords.is_valid_email(data.email):
        raise ValidationError('Invalid email address')
    if data.email != data.confirm_email:
        raise ValidationError('Emails do not match')
    if data.password != data.confirm_password:
        raise ValidationError('Passwords do not match')
    if not passwords.is_strong_password(data.password):
        raise ValidationError(passwords.PASSWORD_REQUIREMENTS)


def _token_response(details: jwt_handler.TokenDetails) -> TokenResponse:
    return TokenResponse(
        access_token=details.access_token,
        refresh_token=details.refresh_token,
        expires_at=details.at_expires,
        refresh_expires_at=details.rt_expires,
    )


@router.post('/signup', response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def signup(data: SignupRequest, db: Session = Depends(get_db)):
    validate_signup(data)

    try:
        existing = db.query(User).filter(
            or_(User.email == data.email, User.username == data.username)
        ).first()
        if existing is not None:
            if existing.email == data.email:
                raise ConflictError('Email already registered')
            raise ConflictError('Username already taken')

        user = User(username=data.username, email=data.email, role=Role.STUDENT)
        user.set_password(data.password)
        code = verification.issue_code(user)

        db.add(user)
        db.commit()
        db.refresh(user)
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError('Email or username already registered') from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc

    logger.info('Registered student %s; verification code issued', user.email)
    logger.debug('Verification code for %s: %s', user.email, code)
    return user


@router.post('/verify', response_model=UserResponse)
def verify(data: VerifyRequest, db: Session = Depends(get_db)):
    if not data.email or not data.code:
        raise ValidationError('Email and verification code are required')

    try:
        user = db.query(User).filter(User.email == data.email).first()
        if user is None:
            raise NotFoundError('User not found')

        verification.verify_user(user, data.code)
        db.commit()
        db.refresh(user)
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc

    logger.info('Verified user %s', user.email)
    return user


@router.get('/signin')
def signin_hint():
    return {
        'detail': 'Authentication required',
        'signin': {'method': 'POST', 'path': config.SIGNIN_PATH, 'fields': ['email', 'password']},
        'signup': {'method': 'POST', 'path': '/auth/signup'},
    }


@router.post('/signin', response_model=TokenResponse)
def signin(data: SigninRequest, response: Response, db: Session = Depends(get_db)):
    try:
        user = db.query(User).filter(User.email == data.email).first()
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc

    if user is None or not user.check_password(data.password):
        logger.info('Failed sign-in for %s', data.email)
        raise AuthenticationError('Invalid email or password')

    if not user.is_verified:
        raise AuthorizationError('Email not verified. Please check your email.')

    details = jwt_handler.create_token(user)
    jwt_handler.set_token_cookies(response, details)
    logger.info('User %s signed in', user.id)
    return _token_response(details)


# GET is the target of the guards' redirect for an expired access token.
@router.api_route('/refresh', methods=['GET', 'POST'], response_model=TokenResponse)
def refresh(request: Request, response: Response, db: Session = Depends(get_db)):
    token = jwt_handler.extract_token(request, config.REFRESH_TOKEN_COOKIE)
    try:
        claims = jwt_handler.verify_refresh_token(token)
    except jwt_handler.InvalidTokenError as exc:
        raise AuthenticationError('Invalid refresh token') from exc

    try:
        user = db.get(User, claims.user_id)
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc

    if user is None:
        raise AuthenticationError('User not found')

    details = jwt_handler.create_token(user)
    jwt_handler.set_token_cookies(response, details)
    logger.info('Rotated token pair for user %s', user.id)
    return _token_response(details)


@router.post('/logout')
def logout(response: Response):
    jwt_handler.clear_token_cookies(response)
    return {'message': 'Signed out'}


@router.get('/me', response_model=MeResponse)
def me(claims: AccessTokenClaims = Depends(get_current_claims)):
    return MeResponse(
        user_id=claims.user_id,
        username=claims.username,
        email=claims.email,
        role=claims.role,
    )
