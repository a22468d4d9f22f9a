"""Admin authorization collaborator used by the HTTP surface."""

from __future__ import annotations

import hmac
from typing import Iterable, Mapping, Protocol

from ..errors import AuthorizationError

ADMIN_TOKEN_HEADER = "X-Admin-Token"


class Authorizer(Protocol):
    """Decide whether the caller behind a set of request headers is an admin.

    Implementations raise ``AuthorizationError`` with ``authenticated=False``
    when no valid credentials are present and ``authenticated=True`` when the
    caller is known but lacks the admin role.
    """

    def require_admin(self, headers: Mapping[str, str]) -> None: ...


def _extract_token(headers: Mapping[str, str]) -> str | None:
    authorization = headers.get("authorization")
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", maxsplit=1)[1].strip()
        return token or None
    token = headers.get(ADMIN_TOKEN_HEADER.lower())
    return token.strip() if token and token.strip() else None


def _matches(token: str, candidates: Iterable[str]) -> bool:
    return any(hmac.compare_digest(token, candidate) for candidate in candidates)


class StaticTokenAuthorizer:
    """Bearer-token check against tokens listed in the global config.

    ``user_tokens`` identify callers who are authenticated but not admins.
    """

    def __init__(self, admin_tokens: Iterable[str], user_tokens: Iterable[str] = ()) -> None:
        self.admin_tokens = [token for token in admin_tokens if token]
        self.user_tokens = [token for token in user_tokens if token]

    def require_admin(self, headers: Mapping[str, str]) -> None:
        token = _extract_token(headers)
        if token is None:
            raise AuthorizationError("authentication required")
        if _matches(token, self.admin_tokens):
            return
        if _matches(token, self.user_tokens):
            raise AuthorizationError("admin role required", authenticated=True)
        raise AuthorizationError("invalid credentials")


__all__ = ["ADMIN_TOKEN_HEADER", "Authorizer", "StaticTokenAuthorizer"]
