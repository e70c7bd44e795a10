"""Operator login for the HTTP API.

Operators authenticate once with the shared ``FARMRESET_PASSWORD``; the signed
session cookie then carries the login flag and a per-login CSRF token that every
farm- or world-changing call must echo in ``X-CSRF-Token``.
"""

from __future__ import annotations

import hashlib
import secrets
from typing import Optional

from fastapi import HTTPException, Request, status

CSRF_HEADER = "X-CSRF-Token"


class OperatorSession:
    """View over the request session for one operator."""

    OPERATOR_KEY = "operator"
    TOKEN_KEY = "csrf_token"

    def __init__(self, request: Request) -> None:
        self._data = request.session

    @property
    def signed_in(self) -> bool:
        return bool(self._data.get(self.OPERATOR_KEY))

    def sign_in(self) -> str:
        """Replace whatever session exists with a fresh operator login; return its CSRF token."""
        self._data.clear()
        token = secrets.token_urlsafe(24)
        self._data.update({self.OPERATOR_KEY: True, self.TOKEN_KEY: token})
        return token

    def sign_out(self) -> None:
        self._data.clear()

    def token_matches(self, provided: Optional[str]) -> bool:
        expected = self._data.get(self.TOKEN_KEY)
        return bool(expected and provided) and secrets.compare_digest(str(expected), str(provided))


def password_matches(provided: str, configured: str) -> bool:
    # An unset password never matches, even an empty submission.
    if not configured:
        return False
    return secrets.compare_digest(_digest(provided), _digest(configured))


def _digest(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def require_login(request: Request) -> None:
    if not OperatorSession(request).signed_in:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Operator login required")


def require_operator(request: Request) -> None:
    """Login plus CSRF check, for every call that changes farms or worlds."""
    require_login(request)
    if not OperatorSession(request).token_matches(request.headers.get(CSRF_HEADER)):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid CSRF token")
