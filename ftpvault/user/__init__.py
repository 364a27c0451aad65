"""
User records, authorities and authentication requests.
"""

from .authority import (
    WriteRequest,
    TransferRateRequest,
    ConcurrentLoginRequest,
    AuthorizationRequest,
    AuthorizationPolicy,
    WritePermission,
    TransferRatePermission,
    ConcurrentLoginPermission,
    Authority,
)
from .record import UserRecord
from .authentication import UsernamePasswordAuthentication, AnonymousAuthentication

__all__ = [
    # Requests
    "WriteRequest",
    "TransferRateRequest",
    "ConcurrentLoginRequest",
    "AuthorizationRequest",
    "AuthorizationPolicy",
    # Authorities
    "WritePermission",
    "TransferRatePermission",
    "ConcurrentLoginPermission",
    "Authority",
    # Records
    "UserRecord",
    # Authentication
    "UsernamePasswordAuthentication",
    "AnonymousAuthentication",
]
