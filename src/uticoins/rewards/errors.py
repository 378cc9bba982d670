"""Claim error taxonomy.

Every error carries a machine-readable ``kind`` so clients can branch on it
without parsing messages.
"""

from __future__ import annotations

import enum


class ClaimErrorKind(str, enum.Enum):
    NOT_CLAIMABLE = "not_claimable"  # window logic; recover by waiting/resyncing
    CODE_MISMATCH = "code_mismatch"  # stale client state; recover by resync
    UNAUTHENTICATED = "unauthenticated"  # surfaced to the auth flow, never retried
    NETWORK_TIMEOUT = "network_timeout"  # unknown outcome; resync before any retry
    SYSTEM_DISABLED = "system_disabled"


_HTTP_STATUS: dict[ClaimErrorKind, int] = {
    ClaimErrorKind.NOT_CLAIMABLE: 409,
    ClaimErrorKind.CODE_MISMATCH: 409,
    ClaimErrorKind.UNAUTHENTICATED: 401,
    ClaimErrorKind.NETWORK_TIMEOUT: 504,
    ClaimErrorKind.SYSTEM_DISABLED: 503,
}


class ClaimError(Exception):
    """A claim attempt that produced no ClaimResult."""

    def __init__(self, kind: ClaimErrorKind, message: str) -> None:
        self.kind = kind
        self.message = message
        super().__init__(message)

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self.kind]

    @property
    def retry_requires_resync(self) -> bool:
        return self.kind is not ClaimErrorKind.UNAUTHENTICATED

    def to_dict(self) -> dict[str, str]:
        return {"detail": self.message, "kind": self.kind.value}

    def __repr__(self) -> str:
        return f"ClaimError(kind={self.kind.value!r}, message={self.message!r})"
