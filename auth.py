"""
Admin gate

The application holds an ``authorize(request) -> bool`` predicate; routes
that need an admin depend on ``require_admin``.
"""

import hmac
import logging
from typing import Callable, Optional

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

Authorizer = Callable[[Request], bool]


def bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def shared_secret_authorizer(secret: Optional[str]) -> Authorizer:
    """Accept requests carrying ``Authorization: Bearer <secret>``."""

    def authorize(request: Request) -> bool:
        if not secret:
            return False
        token = bearer_token(request)
        return token is not None and hmac.compare_digest(token.encode(), secret.encode())

    return authorize


def check_credentials(email: str, password: str, admin_email: Optional[str], admin_password: Optional[str]) -> bool:
    if not admin_email or not admin_password:
        return False
    email_ok = hmac.compare_digest(email.strip().lower().encode(), admin_email.strip().lower().encode())
    password_ok = hmac.compare_digest(password.encode(), admin_password.encode())
    return email_ok and password_ok


def require_admin(request: Request) -> None:
    authorize: Authorizer = request.app.state.authorize
    if not authorize(request):
        logger.warning("Refused admin access to %s %s", request.method, request.url.path)
        raise HTTPException(status_code=401, detail="Admin authorization required")
