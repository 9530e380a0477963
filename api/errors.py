"""
Typed GraphQL errors returned by the resolvers.
"""

from typing import Any, Dict, Optional

from graphql import GraphQLError


class AuthenticationError(GraphQLError):
    """The caller is missing a required credential or presented a bad one."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message, extensions={"code": "UNAUTHENTICATED"})


class InputError(GraphQLError):
    """
    A write was rejected by validation. ``invalid_args`` echoes the
    arguments of the failed operation, keyed by their GraphQL names.
    """

    def __init__(self, message: str, invalid_args: Optional[Dict[str, Any]] = None):
        self.invalid_args = invalid_args or {}
        super().__init__(
            message,
            extensions={"code": "BAD_USER_INPUT", "invalidArgs": self.invalid_args},
        )
