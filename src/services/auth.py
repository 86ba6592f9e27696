"""Bearer credential verification and admin gate."""

from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import ExpiredSignatureError, JWTError, jwt

from src.models.user import User
from src.services.supabase_client import get_user_by_id
from src.utils.errors import ForbiddenError, UnauthorizedError
from src.utils.logging import get_structured_logger
from src.utils.settings import AppConfig

logger = get_structured_logger(__name__)

DEFAULT_TOKEN_TTL = timedelta(days=7)


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    """Issue a signed credential for a user."""
    expire = datetime.now(timezone.utc) + (expires_delta or DEFAULT_TOKEN_TTL)
    payload = {"id": user_id, "exp": expire}
    return jwt.encode(payload, AppConfig.jwt_secret(), algorithm=AppConfig.jwt_algorithm())


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Pull the token out of an Authorization header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def decode_access_token(token: str) -> dict:
    """Verify signature and expiry, returning the payload."""
    try:
        payload = jwt.decode(token, AppConfig.jwt_secret(), algorithms=[AppConfig.jwt_algorithm()])
    except ExpiredSignatureError as e:
        raise UnauthorizedError("Authentication token has expired") from e
    except JWTError as e:
        logger.warning("JWT verification failed", error=str(e))
        raise UnauthorizedError("Invalid authentication token") from e

    if not payload.get("id"):
        raise UnauthorizedError("Invalid authentication token")
    return payload


async def authenticate(authorization: Optional[str]) -> User:
    """Resolve the caller from the Authorization header.

    Missing, invalid or expired credentials and unknown users are
    UnauthorizedError; an inactive or banned account is ForbiddenError.
    """
    token = extract_bearer_token(authorization)
    if not token:
        raise UnauthorizedError("Not authorized, no authentication token")

    payload = decode_access_token(token)
    record = await get_user_by_id(str(payload["id"]))
    if not record:
        raise UnauthorizedError("Not authorized, user not found")

    user = User.model_validate(record)
    if not user.is_active:
        logger.warning("Inactive account rejected", user_id=user.id, account_status=user.status.value)
        raise ForbiddenError("Account is inactive or banned")
    return user


def require_admin(user: User) -> User:
    """Allow only administrators through."""
    if not user.is_admin:
        logger.warning("Non-admin access rejected", user_id=user.id, role=user.role.value)
        raise ForbiddenError("Not authorized, administrator privileges required")
    return user


async def authenticate_admin(authorization: Optional[str]) -> User:
    """Gate for privileged operations."""
    return require_admin(await authenticate(authorization))
