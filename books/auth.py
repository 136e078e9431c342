"""User identity resolution for the core services."""

from __future__ import annotations

from typing import Optional, Protocol

from .exceptions import UnauthenticatedError


class AuthProvider(Protocol):
    def current_user_id(self) -> Optional[str]:
        ...


class StaticAuth:
    """Resolves the same user on every call; ``None`` means nobody is signed in."""

    def __init__(self, user_id: Optional[str]) -> None:
        self._user_id = user_id.strip() if user_id else None

    def current_user_id(self) -> Optional[str]:
        return self._user_id or None


def require_user(auth: AuthProvider) -> str:
    user_id = auth.current_user_id()
    if not user_id:
        raise UnauthenticatedError("You must be signed in")
    return user_id
