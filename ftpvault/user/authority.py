"""
Authorities granted to users and the requests used to probe them.

A request is handed to a user's authorities; each authority that understands
the request either fills in what it grants and returns it, or returns None
to deny.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Protocol, Union, runtime_checkable


# ── Requests ────────────────────────────────────────────────────────

@dataclass
class WriteRequest:
    """Ask whether a user may write to a path."""
    file: str = "/"


@dataclass
class TransferRateRequest:
    """Ask for a user's transfer rate limits (bytes/sec, 0 = unlimited)."""
    max_upload_rate: int = 0
    max_download_rate: int = 0


@dataclass
class ConcurrentLoginRequest:
    """
    Ask whether a user may open another session.

    The max_* fields are filled in by the granting authority.
    """
    concurrent_logins: int = 0
    concurrent_logins_per_ip: int = 0
    max_concurrent_logins: int = 0
    max_concurrent_logins_per_ip: int = 0


AuthorizationRequest = Union[WriteRequest, TransferRateRequest, ConcurrentLoginRequest]


@runtime_checkable
class AuthorizationPolicy(Protocol):
    """Anything that can grant (return the request) or deny (return None)."""

    def authorize(self, request: AuthorizationRequest) -> Optional[AuthorizationRequest]:
        ...


# ── Authorities ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class WritePermission:
    """Write access below a root path."""
    root: str = "/"

    def can_authorize(self, request) -> bool:
        return isinstance(request, WriteRequest)

    def authorize(self, request: WriteRequest) -> Optional[WriteRequest]:
        root = self.root.rstrip("/") + "/"
        file = request.file if request.file.endswith("/") else request.file + "/"
        if file.startswith(root):
            return request
        return None


@dataclass(frozen=True)
class TransferRatePermission:
    """Upload/download rate caps in bytes/sec. 0 means unlimited."""
    max_download_rate: int = 0
    max_upload_rate: int = 0

    def can_authorize(self, request) -> bool:
        return isinstance(request, TransferRateRequest)

    def authorize(self, request: TransferRateRequest) -> TransferRateRequest:
        request.max_download_rate = self.max_download_rate
        request.max_upload_rate = self.max_upload_rate
        return request


@dataclass(frozen=True)
class ConcurrentLoginPermission:
    """Caps on simultaneous sessions, total and per client IP. 0 means no cap."""
    max_concurrent_logins: int = 0
    max_concurrent_logins_per_ip: int = 0

    def can_authorize(self, request) -> bool:
        return isinstance(request, ConcurrentLoginRequest)

    def authorize(self, request: ConcurrentLoginRequest) -> Optional[ConcurrentLoginRequest]:
        if (self.max_concurrent_logins != 0
                and self.max_concurrent_logins < request.concurrent_logins):
            return None

        if (self.max_concurrent_logins_per_ip != 0
                and self.max_concurrent_logins_per_ip < request.concurrent_logins_per_ip):
            return None

        request.max_concurrent_logins = self.max_concurrent_logins
        request.max_concurrent_logins_per_ip = self.max_concurrent_logins_per_ip
        return request


Authority = Union[WritePermission, TransferRatePermission, ConcurrentLoginPermission]
