"""Bearer token providers.

How a token is obtained (login flow, refresh) lives outside this package; the
sync client only needs something that can hand it a token or ``None``.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from drift_cloud.exceptions import AuthenticationError

NOT_AUTHENTICATED_MESSAGE = "Not authenticated. Run `drift cloud login` first."


@runtime_checkable
class TokenProvider(Protocol):
    """Source of the bearer token used for one push."""

    async def get_token(self) -> str | None:
        """Return a bearer token, or None when the user is not logged in."""
        ...


class StaticTokenProvider:
    """Token provider returning a fixed token (CI secrets, tests)."""

    def __init__(self, token: str | None) -> None:
        self._token = token

    async def get_token(self) -> str | None:
        return self._token


def require_token(token: str | None) -> str:
    """Return the token if usable, otherwise raise AuthenticationError.

    A usable token is non-blank and contains no whitespace or control
    characters, since it is sent verbatim in an HTTP header.
    """
    if token is None or not token.strip():
        raise AuthenticationError(NOT_AUTHENTICATED_MESSAGE)
    if any(ch.isspace() or not ch.isprintable() for ch in token):
        raise AuthenticationError("Bearer token is malformed. Run `drift cloud login` again.")
    return token
