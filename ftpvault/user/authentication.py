"""
Authentication requests understood by the user store.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class UsernamePasswordAuthentication:
    """Login with a user name and plaintext password."""
    username: Optional[str]
    password: Optional[str] = field(default=None, repr=False)


@dataclass
class AnonymousAuthentication:
    """Anonymous login. Any password the client sent is ignored."""
    password: Optional[str] = field(default=None, repr=False)
