"""Error taxonomy shared by the guards and route handlers.

Every error is an ``HTTPException`` so FastAPI renders it without extra
exception handlers; the class picks the status code.
"""

from fastapi import HTTPException, status


class LMSError(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal server error"

    def __init__(self, detail: str | None = None, headers: dict[str, str] | None = None) -> None:
        super().__init__(
            status_code=type(self).status_code,
            detail=detail or self.default_detail,
            headers=headers,
        )


class ValidationError(LMSError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request"


class AuthenticationError(LMSError):
    """Missing, invalid or expired credentials.

    With ``redirect_to`` the error becomes a 303 pointing the browser at the
    sign-in or refresh endpoint instead of a bare 401.
    """

    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Unauthorized"

    def __init__(self, detail: str | None = None, redirect_to: str | None = None) -> None:
        super().__init__(detail, headers={"Location": redirect_to} if redirect_to else None)
        self.redirect_to = redirect_to
        if redirect_to:
            self.status_code = status.HTTP_303_SEE_OTHER


class AuthorizationError(LMSError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Unauthorized"


class NotFoundError(LMSError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class ConflictError(LMSError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict"


class DependencyError(LMSError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Database unavailable. Please try again later."
