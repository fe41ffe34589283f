"""Session identity contract.

The identity provider (an auth service in the host application) tells the
core which user the current session belongs to. None means signed out.
"""

from typing import Protocol

from tradejournal.exceptions import UnauthenticatedError


class IdentityProvider(Protocol):
    def current_user_id(self) -> str | None: ...


class StaticIdentity:
    """Identity fixed at construction; sign_out() clears it."""

    def __init__(self, user_id: str | None) -> None:
        self._user_id = user_id

    def current_user_id(self) -> str | None:
        return self._user_id

    def sign_out(self) -> None:
        self._user_id = None


def require_user(identity: IdentityProvider) -> str:
    """Return the session's user id or raise UnauthenticatedError."""
    user_id = identity.current_user_id()
    if not user_id:
        raise UnauthenticatedError("User not authenticated")
    return user_id
