"""
Token issuance and verification for the GraphQL API.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import structlog
from jose import JWTError, jwt

from api.errors import AuthenticationError
from library.models import UserDocument
from utilities.config import config

logger = structlog.get_logger(__name__)


def create_access_token(user: UserDocument, expires_minutes: Optional[int] = None) -> str:
    """
    Sign a token carrying the user's name and id.

    Args:
        user: Stored user the token is issued for
        expires_minutes: Lifetime override; 0 issues a token without expiry

    Returns:
        Encoded JWT
    """
    if expires_minutes is None:
        expires_minutes = config.access_token_expire_minutes

    claims: Dict[str, Any] = {"username": user.username, "id": user.id}
    if expires_minutes:
        claims["exp"] = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)

    return jwt.encode(claims, config.jwt_secret, algorithm=config.jwt_algorithm)


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Verify a token and return its claims.

    Raises:
        AuthenticationError: If the signature is invalid, the token expired
            or the id claim is missing
    """
    try:
        claims = jwt.decode(token, config.jwt_secret, algorithms=[config.jwt_algorithm])
    except JWTError as e:
        logger.warning("Token verification failed", error=str(e))
        raise AuthenticationError("Invalid or expired token") from e

    if not claims.get("id"):
        raise AuthenticationError("Invalid or expired token")
    return claims


def check_login_password(password: str) -> bool:
    """
    Every account shares the configured login password. There are no
    per-user passwords.
    """
    return secrets.compare_digest(password.encode("utf-8"), config.login_password.encode("utf-8"))
