"""Exception taxonomy for the notification dispatcher.

Only ``ConfigError`` and ``ClaimError`` ever reach the HTTP layer (the
secret check lives in ``shared.auth``). Everything raised while handling a
single outbox row is caught by the dispatch loop and recorded against that
row.
"""

from __future__ import annotations

LOG_ERROR_MAX_CHARS = 1000
ROW_ERROR_MAX_CHARS = 200


class DispatchError(Exception):
    """Base class for dispatcher errors."""


class ConfigError(DispatchError):
    """Required backing-store configuration is missing."""

    code = "MISSING_SUPABASE_ENV"


class ClaimError(DispatchError):
    """The outbox could not be claimed; no rows were touched."""


class StoreError(DispatchError):
    """The backing store answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(f"SUPABASE_HTTP_{status_code}: {message[:LOG_ERROR_MAX_CHARS]}")


class MissingReferenceError(DispatchError):
    """An entity-specific event carried no usable sale id."""

    def __init__(self, message: str = "MISSING_VENTA_ID"):
        super().__init__(message)


class GatewayError(DispatchError):
    """Base class for push gateway failures."""


class GatewayHTTPError(GatewayError):
    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        super().__init__(f"EXPO_HTTP_{status_code}: {body[:500]}")


class GatewayProtocolError(GatewayError):
    """The gateway answered 2xx but the body was not a usable ticket list."""


class GatewayTicketError(GatewayError):
    """One or more tickets came back non-ok."""

    def __init__(self, failures: list[str]):
        self.failures = failures
        sample = ", ".join(failures[:5])
        super().__init__(f"EXPO_TICKET_ERROR count={len(failures)} sample=[{sample}]")


def safe_error_message(exc: BaseException) -> str:
    """Message suitable for logs."""
    msg = str(exc) or exc.__class__.__name__
    return msg[:LOG_ERROR_MAX_CHARS]


def short_error_message(exc: BaseException) -> str:
    """Message stored on the outbox row and returned to the caller."""
    return safe_error_message(exc)[:ROW_ERROR_MAX_CHARS]
