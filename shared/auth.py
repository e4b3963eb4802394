"""Shared-secret check for the dispatch endpoint.

When ``DISPATCH_SECRET`` is set, callers must send the same value in the
``x-dispatch-secret`` header. Usage::

    from shared.auth import require_dispatch_secret

    @app.post("/")
    async def dispatch(request: Request, _=Depends(require_dispatch_secret)):
        ...
"""

from __future__ import annotations

import hmac

import structlog
from fastapi import Depends, HTTPException, Request

from shared.config import Settings, get_settings

logger = structlog.get_logger()

SECRET_HEADER = "x-dispatch-secret"


class AuthError(HTTPException):
    """The x-dispatch-secret header did not match the configured secret."""

    def __init__(self) -> None:
        super().__init__(status_code=401, detail="UNAUTHORIZED")


def secret_matches(expected: str, provided: str) -> bool:
    """Constant-time comparison. An empty ``expected`` disables the check."""
    if not expected:
        return True
    return hmac.compare_digest(expected.encode(), provided.strip().encode())


async def require_dispatch_secret(
    request: Request, settings: Settings = Depends(get_settings)
) -> None:
    """FastAPI dependency that validates the dispatch secret.

    Raises 401 if the header is missing or incorrect.
    """
    provided = request.headers.get(SECRET_HEADER, "")
    if not secret_matches(settings.dispatch_secret, provided):
        logger.warning(
            "dispatch_auth_failed",
            path=request.url.path,
            remote=request.client.host if request.client else "unknown",
        )
        raise AuthError()
