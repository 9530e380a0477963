"""
Per-request GraphQL context: the resolver service and the calling user.
"""

from typing import Optional

import structlog
from starlette.requests import HTTPConnection
from strawberry.fastapi import BaseContext

from api.auth import decode_access_token
from api.errors import AuthenticationError
from api.resolvers import LibraryResolvers
from library.models import UserDocument

logger = structlog.get_logger(__name__)

BEARER_PREFIX = "bearer "


class LibraryContext(BaseContext):
    """Context handed to every resolver."""

    def __init__(self, resolvers: LibraryResolvers, current_user: Optional[UserDocument] = None):
        super().__init__()
        self.resolvers = resolvers
        self.current_user = current_user


async def resolve_current_user(
    authorization: Optional[str],
    resolvers: LibraryResolvers,
) -> Optional[UserDocument]:
    """
    Find the user behind an ``Authorization`` header value.

    Only the bearer scheme is understood (matched case-insensitively).
    Missing headers, other schemes, tokens that fail verification and ids
    that no longer exist all give an anonymous caller.
    """
    if not authorization or not authorization.lower().startswith(BEARER_PREFIX):
        return None

    token = authorization[len(BEARER_PREFIX):]
    try:
        claims = decode_access_token(token)
    except AuthenticationError:
        logger.warning("Ignoring invalid bearer token")
        return None

    user = await resolvers.database.find_user_by_id(str(claims["id"]))
    if user is None:
        logger.warning("Token refers to unknown user", user_id=claims["id"])
    return user


async def get_context(connection: HTTPConnection) -> LibraryContext:
    """FastAPI dependency building the context for HTTP and WebSocket requests."""
    resolvers: LibraryResolvers = connection.app.state.resolvers
    current_user = await resolve_current_user(connection.headers.get("authorization"), resolvers)
    return LibraryContext(resolvers, current_user)
