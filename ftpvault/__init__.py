"""
ftpvault - file-backed FTP user credentials and entitlements.
"""

from .errors import (
    UserStoreError,
    ConfigurationError,
    PersistenceError,
    InvalidArgumentError,
    AuthenticationFailedError,
    UnsupportedAuthKindError,
    ClosedStoreError,
    PropertiesParseError,
)
from .properties import Properties
from .encryptor import (
    PasswordEncryptor,
    ClearTextPasswordEncryptor,
    Md5PasswordEncryptor,
    SaltedPasswordEncryptor,
    Pbkdf2PasswordEncryptor,
    get_encryptor,
)
from .user import (
    UserRecord,
    WriteRequest,
    TransferRateRequest,
    ConcurrentLoginRequest,
    AuthorizationPolicy,
    WritePermission,
    TransferRatePermission,
    ConcurrentLoginPermission,
    UsernamePasswordAuthentication,
    AnonymousAuthentication,
)
from .store import CredentialStore
from .factory import CredentialStoreFactory, StoreSettings

__version__ = "0.1.0"

__all__ = [
    # Errors
    "UserStoreError",
    "ConfigurationError",
    "PersistenceError",
    "InvalidArgumentError",
    "AuthenticationFailedError",
    "UnsupportedAuthKindError",
    "ClosedStoreError",
    "PropertiesParseError",
    # Codec
    "Properties",
    # Encryptors
    "PasswordEncryptor",
    "ClearTextPasswordEncryptor",
    "Md5PasswordEncryptor",
    "SaltedPasswordEncryptor",
    "Pbkdf2PasswordEncryptor",
    "get_encryptor",
    # Users
    "UserRecord",
    "WriteRequest",
    "TransferRateRequest",
    "ConcurrentLoginRequest",
    "AuthorizationPolicy",
    "WritePermission",
    "TransferRatePermission",
    "ConcurrentLoginPermission",
    "UsernamePasswordAuthentication",
    "AnonymousAuthentication",
    # Store
    "CredentialStore",
    "CredentialStoreFactory",
    "StoreSettings",
]
