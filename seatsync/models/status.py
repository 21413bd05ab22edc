from __future__ import annotations

from enum import Enum


class SessionStatus(str, Enum):
    """Health of the stored upstream credential, shown as a dashboard badge."""

    active = "active"
    expired = "expired"
    error = "error"


class ErrorKind(str, Enum):
    """Classification of an upstream failure."""

    session_expired = "session_expired"   # HTTP 401, needs a fresh credential
    invalid_account = "invalid_account"   # HTTP 422
    rate_limited = "rate_limited"         # HTTP 429 after the retry budget
    network = "network"
    upstream = "upstream"                 # any other non-2xx
    unknown = "unknown"
