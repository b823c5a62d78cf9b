"""Explicit authenticated-user context passed into every data-access call."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .errors import AuthenticationError


@dataclass(frozen=True)
class UserContext:
    user_id: str
    email: Optional[str] = None


def require_user(ctx: Optional[UserContext]) -> str:
    """Return the user id of ``ctx`` or raise if there is no session."""
    if ctx is None or not getattr(ctx, 'user_id', None):
        raise AuthenticationError("User not authenticated")
    return ctx.user_id
