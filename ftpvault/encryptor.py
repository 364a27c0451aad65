"""
Password encryptors - one-way hashing of user passwords.

Stored hashes are opaque strings; every encryptor knows how to produce one
from a plaintext and how to check a plaintext against one.
"""

from __future__ import annotations
import hashlib
import hmac
import logging
import secrets
from typing import Optional, Protocol, runtime_checkable

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


@runtime_checkable
class PasswordEncryptor(Protocol):
    """Hashes passwords and checks candidates against stored hashes."""

    def encrypt(self, password: str) -> str:
        ...

    def matches(self, password: str, stored_password: Optional[str]) -> bool:
        ...


def _md5_hex(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()


class ClearTextPasswordEncryptor:
    """Stores passwords as-is. Only for tests and legacy files."""

    def encrypt(self, password: str) -> str:
        return password

    def matches(self, password: str, stored_password: Optional[str]) -> bool:
        if stored_password is None:
            return False
        return hmac.compare_digest(password.encode("utf-8"), stored_password.encode("utf-8"))


class Md5PasswordEncryptor:
    """Unsalted hex MD5, compared case-insensitively."""

    def encrypt(self, password: str) -> str:
        return _md5_hex(password)

    def matches(self, password: str, stored_password: Optional[str]) -> bool:
        if stored_password is None:
            return False
        return hmac.compare_digest(
            self.encrypt(password).encode("utf-8"),
            stored_password.strip().lower().encode("utf-8"),
        )


class SaltedPasswordEncryptor:
    """
    Salted, iterated MD5 stored as ``salt:hash``.
    """

    ITERATIONS = 1000

    def _digest(self, salt: str, password: str) -> str:
        digest = salt + password
        for _ in range(self.ITERATIONS):
            digest = _md5_hex(digest)
        return digest

    def encrypt(self, password: str) -> str:
        salt = str(secrets.randbelow(99999999))
        return f"{salt}:{self._digest(salt, password)}"

    def matches(self, password: str, stored_password: Optional[str]) -> bool:
        if stored_password is None:
            return False

        salt, sep, digest = stored_password.partition(":")
        if not sep:
            logger.debug("Stored password is not in salt:hash form")
            return False

        return hmac.compare_digest(
            self._digest(salt, password).encode("utf-8"),
            digest.strip().lower().encode("utf-8"),
        )


class Pbkdf2PasswordEncryptor:
    """
    PBKDF2-HMAC-SHA256 stored as ``pbkdf2$<iterations>$<salt>$<key>``.
    """

    SCHEME = "pbkdf2"

    def __init__(self, iterations: int = 480000, salt_bytes: int = 16):
        self.iterations = iterations
        self.salt_bytes = salt_bytes

    @staticmethod
    def _kdf(salt: bytes, iterations: int) -> PBKDF2HMAC:
        return PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=iterations,
        )

    def encrypt(self, password: str) -> str:
        salt = secrets.token_bytes(self.salt_bytes)
        key = self._kdf(salt, self.iterations).derive(password.encode("utf-8"))
        return f"{self.SCHEME}${self.iterations}${salt.hex()}${key.hex()}"

    def matches(self, password: str, stored_password: Optional[str]) -> bool:
        if stored_password is None:
            return False

        try:
            scheme, iterations, salt_hex, key_hex = stored_password.split("$")
            if scheme != self.SCHEME:
                return False
            kdf = self._kdf(bytes.fromhex(salt_hex), int(iterations))
            kdf.verify(password.encode("utf-8"), bytes.fromhex(key_hex))
            return True
        except InvalidKey:
            return False
        except ValueError:
            logger.debug("Stored password is not a pbkdf2 hash")
            return False


ENCRYPTORS = {
    "clear": ClearTextPasswordEncryptor,
    "md5": Md5PasswordEncryptor,
    "salted": SaltedPasswordEncryptor,
    "pbkdf2": Pbkdf2PasswordEncryptor,
}


def get_encryptor(name: str) -> PasswordEncryptor:
    """Look up an encryptor by its configuration name."""
    try:
        return ENCRYPTORS[name.strip().lower()]()
    except KeyError:
        raise ConfigurationError(
            f"Unknown password encryptor '{name}'. "
            f"Choose one of: {', '.join(ENCRYPTORS)}"
        ) from None
