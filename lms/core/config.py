import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./lms.db")

ACCESS_TOKEN_SECRET = os.getenv("ACCESS_TOKEN_SECRET", "access-token-secret-change-me-before-deploying")
REFRESH_TOKEN_SECRET = os.getenv("REFRESH_TOKEN_SECRET", "refresh-token-secret-change-me-before-deploying")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_ISSUER = os.getenv("JWT_ISSUER", "learning-management-system")
ACCESS_TOKEN_EXPIRES_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRES_MINUTES", "15"))
REFRESH_TOKEN_EXPIRES_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRES_DAYS", "7"))

ACCESS_TOKEN_COOKIE = "access_token"
REFRESH_TOKEN_COOKIE = "refresh_token"
COOKIE_SECURE = _get_bool(os.getenv("COOKIE_SECURE"), default=False)

VERIFICATION_CODE_LENGTH = 6
VERIFICATION_CODE_TTL_SECONDS = int(os.getenv("VERIFICATION_CODE_TTL_SECONDS", "600"))

SIGNIN_PATH = "/auth/signin"
REFRESH_PATH = "/auth/refresh"

CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS"), ["http://localhost:4200"])

HOST = os.getenv("HOST", "127.0.0.1")
PORT = int(os.getenv("PORT", "8000"))

_DEFAULT_SECRETS = {"access-token-secret-change-me-before-deploying", "refresh-token-secret-change-me-before-deploying"}


def validate_runtime_config() -> None:
    if APP_ENV.lower() != "production":
        return
    if ACCESS_TOKEN_SECRET in _DEFAULT_SECRETS or REFRESH_TOKEN_SECRET in _DEFAULT_SECRETS:
        raise RuntimeError("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must be set in production.")
    if ACCESS_TOKEN_SECRET == REFRESH_TOKEN_SECRET:
        raise RuntimeError("Access and refresh tokens must be signed with different secrets.")
    if not JWT_ALGORITHM.startswith("HS"):
        raise RuntimeError("JWT_ALGORITHM must be an HMAC algorithm (HS256, HS384 or HS512).")
