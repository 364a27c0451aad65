"""
File-backed user store.

User records live in a flat key/value table, one key per attribute:

    ftpserver.user.<name>.<attribute>=<value>

The table is loaded from a local file or a URL, mutated by save()/delete(),
and written back as a whole after every change.
"""

from __future__ import annotations
import logging
import os
import tempfile
import threading
from importlib import resources
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urlparse
from urllib.request import urlopen

from . import properties
from .encryptor import PasswordEncryptor
from .errors import (
    AuthenticationFailedError,
    ClosedStoreError,
    ConfigurationError,
    InvalidArgumentError,
    PersistenceError,
    PropertiesParseError,
    UnsupportedAuthKindError,
)
from .properties import Properties
from .user import (
    AnonymousAuthentication,
    AuthorizationPolicy,
    ConcurrentLoginPermission,
    ConcurrentLoginRequest,
    TransferRatePermission,
    TransferRateRequest,
    UsernamePasswordAuthentication,
    UserRecord,
    WritePermission,
    WriteRequest,
)

logger = logging.getLogger(__name__)

PREFIX = "ftpserver.user."
DEPRECATED_PREFIX = "FtpServer.user."

ATTR_PASSWORD = "userpassword"
ATTR_HOME = "homedirectory"
ATTR_ENABLE = "enableflag"
ATTR_WRITE_PERM = "writepermission"
ATTR_MAX_LOGIN_NUMBER = "maxloginnumber"
ATTR_MAX_LOGIN_PER_IP = "maxloginperip"
ATTR_MAX_IDLE_TIME = "idletime"
ATTR_MAX_UPLOAD_RATE = "uploadrate"
ATTR_MAX_DOWNLOAD_RATE = "downloadrate"

ANONYMOUS = "anonymous"

Source = Union[str, Path, None]


def _is_url(source: Source) -> bool:
    if not isinstance(source, str) or "://" not in source:
        return False
    return bool(urlparse(source).scheme)


def _migrate_legacy_keys(table: Properties) -> Properties:
    """Rewrite keys using the deprecated prefix to the canonical one."""
    if not table.keys_with_prefix(DEPRECATED_PREFIX):
        return table

    migrated = Properties()
    for key, value in table.items():
        if not key.startswith(DEPRECATED_PREFIX):
            migrated[key] = value
            continue

        canonical = PREFIX + key[len(DEPRECATED_PREFIX):]
        if canonical in table:
            logger.warning(f"Ignoring deprecated key {key}, {canonical} is also set")
            continue

        logger.warning(f"Migrating deprecated key {key} to {canonical}")
        migrated[canonical] = value

    return migrated


class CredentialStore:
    """
    User credentials and entitlements backed by a key/value file.

    One re-entrant lock serializes every access to the in-memory table.
    Loads build a complete new table before swapping it in; saves and
    deletes stage their changes on a copy and swap it in only after the
    file was written.
    """

    HEADER = "Generated file - don't edit (please)"

    def __init__(
        self,
        password_encryptor: PasswordEncryptor,
        source: Source = None,
        admin_name: str = "admin",
        *,
        resource_package: str = "ftpvault",
    ):
        """
        Initialize the store and load it from ``source``.

        Args:
            password_encryptor: Hashes and checks passwords
            source: Local file path or URL of the user data, or None
            admin_name: Name of the administrator account
            resource_package: Package searched when the file path does
                not exist on disk
        """
        self._encryptor = password_encryptor
        self._admin_name = admin_name
        self._resource_package = resource_package

        self._lock = threading.RLock()
        self._props: Optional[Properties] = Properties()
        self._closed = False
        self._file: Optional[Path] = None
        self._url: Optional[str] = None

        self.load(source)

    # ── Accessors ───────────────────────────────────────────────────

    @property
    def file(self) -> Optional[Path]:
        """File the store persists to, if any."""
        return self._file

    @property
    def url(self) -> Optional[str]:
        return self._url

    @property
    def password_encryptor(self) -> PasswordEncryptor:
        return self._encryptor

    @property
    def admin_name(self) -> str:
        return self._admin_name

    def is_admin(self, name: str) -> bool:
        return name == self._admin_name

    @property
    def closed(self) -> bool:
        return self._closed

    def _table(self) -> Properties:
        if self._closed or self._props is None:
            raise ClosedStoreError()
        return self._props

    # ── Lifecycle ───────────────────────────────────────────────────

    def load(self, source: Source = None) -> None:
        """
        Replace the table with the contents of ``source``.

        A file path that does not exist is looked up in package resources.
        An empty source gives an empty table. The file path and URL are
        remembered separately; loading one kind keeps the other.

        Raises:
            ConfigurationError: Source missing, unreadable or malformed
        """
        with self._lock:
            if self._closed:
                raise ClosedStoreError()

            file = self._file
            url = self._url

            if _is_url(source):
                url = str(source)
                table = self._load_url(url)
            elif source is not None and str(source) != "":
                file = Path(source)
                table = self._load_file(file)
            else:
                logger.debug("No user data source configured, starting empty")
                table = Properties()

            self._props = _migrate_legacy_keys(table)
            self._file = file
            self._url = url

    def _load_file(self, path: Path) -> Properties:
        logger.debug("File configured, will try loading")

        if path.exists():
            logger.debug(f"File found on file system: {path}")
            try:
                with path.open("rb") as f:
                    return properties.load(f)
            except PropertiesParseError as e:
                raise ConfigurationError(f"Malformed user data file : {path}") from e
            except OSError as e:
                raise ConfigurationError(f"Error loading user data file : {path}") from e

        logger.debug("File not found on file system, trying package resources")
        resource = self._find_resource(path)
        if resource is None:
            raise ConfigurationError(
                "User data file specified but could not be located, "
                f"neither on the file system nor in package resources: {path}"
            )

        try:
            with resource.open("rb") as f:
                return properties.load(f)
        except PropertiesParseError as e:
            raise ConfigurationError(f"Malformed user data resource : {path}") from e
        except OSError as e:
            raise ConfigurationError(f"Error loading user data resource : {path}") from e

    def _find_resource(self, path: Path):
        try:
            resource = resources.files(self._resource_package).joinpath(path.as_posix())
        except ModuleNotFoundError:
            logger.debug(f"Resource package '{self._resource_package}' not importable")
            return None
        return resource if resource.is_file() else None

    def _load_url(self, url: str) -> Properties:
        logger.debug(f"URL configured, will try loading: {url}")
        try:
            with urlopen(url) as response:
                return properties.load(response)
        except PropertiesParseError as e:
            raise ConfigurationError(f"Malformed user data resource : {url}") from e
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Error loading user data resource : {url}") from e

    def refresh(self) -> None:
        """
        Reload the user data from where it was originally loaded.

        Picks up manual edits to the file made while the server runs.
        A file path, if one was ever loaded, wins over a URL.
        """
        with self._lock:
            if self._closed:
                raise ClosedStoreError()

            if self._file is not None:
                logger.debug(f"Refreshing user store using file: {self._file.absolute()}")
                self.load(self._file)
            elif self._url is not None:
                logger.debug(f"Refreshing user store using URL: {self._url}")
                self.load(self._url)
            else:
                self.load(None)

    def dispose(self) -> None:
        """Drop all entries. The store cannot be used afterwards."""
        with self._lock:
            if self._props is not None:
                self._props.clear()
                self._props = None
            self._closed = True
        logger.debug("User store disposed")

    def __enter__(self) -> CredentialStore:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    # ── Write path ──────────────────────────────────────────────────

    def _resolve_password(self, table: Properties, user: UserRecord) -> str:
        """
        Encrypted password to store for ``user``.

        A new plaintext wins; otherwise an existing user keeps the stored
        hash and a new user gets the hash of the empty string.
        """
        if user.password is not None:
            return self._encryptor.encrypt(user.password)

        blank = self._encryptor.encrypt("")
        if f"{PREFIX}{user.name}.{ATTR_HOME}" in table:
            return table.get(f"{PREFIX}{user.name}.{ATTR_PASSWORD}", blank)
        return blank

    def save(self, user: UserRecord, policy: Optional[AuthorizationPolicy] = None) -> None:
        """
        Create or update a user and write the whole table to disk.

        Args:
            user: Record to store; ``password`` None keeps the current one
            policy: Probed for write permission, transfer rates and login
                caps. Defaults to the record's own authorities.

        Raises:
            InvalidArgumentError: No user name, or a negative idle time
            PersistenceError: The file could not be written
        """
        if user is None or not user.name:
            raise InvalidArgumentError("User name is null.")
        if user.max_idle_time < 0:
            raise InvalidArgumentError(f"Negative idle time for user '{user.name}'")

        if policy is None:
            policy = user

        prefix = f"{PREFIX}{user.name}."

        with self._lock:
            table = self._table().copy()

            table[prefix + ATTR_PASSWORD] = self._resolve_password(table, user)
            table[prefix + ATTR_HOME] = user.home_directory or "/"
            table.set_value(prefix + ATTR_ENABLE, user.enabled)
            table.set_value(prefix + ATTR_WRITE_PERM, policy.authorize(WriteRequest()) is not None)
            table.set_value(prefix + ATTR_MAX_IDLE_TIME, user.max_idle_time)

            rates = policy.authorize(TransferRateRequest())
            if rates is not None:
                table.set_value(prefix + ATTR_MAX_UPLOAD_RATE, rates.max_upload_rate)
                table.set_value(prefix + ATTR_MAX_DOWNLOAD_RATE, rates.max_download_rate)
            else:
                table.pop(prefix + ATTR_MAX_UPLOAD_RATE, None)
                table.pop(prefix + ATTR_MAX_DOWNLOAD_RATE, None)

            # zero/zero never exceeds a cap, so this returns the configured caps
            logins = policy.authorize(ConcurrentLoginRequest(0, 0))
            if logins is not None:
                table.set_value(prefix + ATTR_MAX_LOGIN_NUMBER, logins.max_concurrent_logins)
                table.set_value(prefix + ATTR_MAX_LOGIN_PER_IP, logins.max_concurrent_logins_per_ip)
            else:
                table.pop(prefix + ATTR_MAX_LOGIN_NUMBER, None)
                table.pop(prefix + ATTR_MAX_LOGIN_PER_IP, None)

            self._persist(table)
            self._props = table

        logger.info(f"Saved user '{user.name}'")

    def delete(self, name: str) -> None:
        """
        Remove every attribute of a user and write the table to disk.

        Deleting an unknown user still rewrites the file.
        """
        prefix = f"{PREFIX}{name}."

        with self._lock:
            table = self._table().copy()

            # attribute names never contain a dot; longer keys belong to
            # other users whose names start with "<name>."
            for key in table.keys_with_prefix(prefix):
                if "." not in key[len(prefix):]:
                    del table[key]

            self._persist(table)
            self._props = table

        logger.info(f"Deleted user '{name}'")

    def _persist(self, table: Properties) -> None:
        """Atomically rewrite the backing file with ``table``."""
        if self._file is None:
            logger.debug("No user data file configured, changes kept in memory only")
            return

        path = self._file.absolute()
        directory = path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(
                f"Cannot create directory for user data file : {directory}"
            ) from e

        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{path.name}.", suffix=".tmp", dir=directory
            )
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
                properties.dump(table, f, self.HEADER)
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            logger.error(f"Failed saving user data to {path}: {e}")
            raise PersistenceError("Failed saving user data") from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError as e:
                    logger.debug(f"Could not remove temp file {tmp_name}: {e}")

    # ── Read path ───────────────────────────────────────────────────

    def exists(self, name: str) -> bool:
        """A user exists iff its home directory key is present."""
        with self._lock:
            return f"{PREFIX}{name}.{ATTR_HOME}" in self._table()

    def get_by_name(self, name: str) -> Optional[UserRecord]:
        """
        Rebuild a user from the table, or None if unknown.

        Transfer-rate and concurrent-login permissions are always attached,
        with 0 (unlimited) for missing values.
        """
        with self._lock:
            table = self._table()
            base = f"{PREFIX}{name}."
            if base + ATTR_HOME not in table:
                return None

            authorities = []
            if table.get_bool(base + ATTR_WRITE_PERM, False):
                authorities.append(WritePermission())

            authorities.append(ConcurrentLoginPermission(
                max_concurrent_logins=table.get_int(base + ATTR_MAX_LOGIN_NUMBER, 0),
                max_concurrent_logins_per_ip=table.get_int(base + ATTR_MAX_LOGIN_PER_IP, 0),
            ))
            authorities.append(TransferRatePermission(
                max_download_rate=table.get_int(base + ATTR_MAX_DOWNLOAD_RATE, 0),
                max_upload_rate=table.get_int(base + ATTR_MAX_UPLOAD_RATE, 0),
            ))

            return UserRecord(
                name=name,
                home_directory=table.get(base + ATTR_HOME, "/"),
                enabled=table.get_bool(base + ATTR_ENABLE, True),
                max_idle_time=table.get_int(base + ATTR_MAX_IDLE_TIME, 0),
                authorities=authorities,
            )

    def list_names(self) -> list[str]:
        """Sorted names of all users."""
        suffix = f".{ATTR_HOME}"
        with self._lock:
            names = [
                key[len(PREFIX):-len(suffix)]
                for key in self._table()
                if key.startswith(PREFIX) and key.endswith(suffix)
            ]
        return sorted(names)

    get_all_user_names = list_names

    # ── Authentication ──────────────────────────────────────────────

    def authenticate(self, authentication) -> UserRecord:
        """
        Check a login and return the matching user.

        Raises:
            AuthenticationFailedError: Unknown user or wrong password
            UnsupportedAuthKindError: Not a username/password or anonymous login
        """
        if isinstance(authentication, UsernamePasswordAuthentication):
            return self._authenticate_password(authentication)

        if isinstance(authentication, AnonymousAuthentication):
            with self._lock:
                if not self.exists(ANONYMOUS):
                    raise AuthenticationFailedError()
                return self.get_by_name(ANONYMOUS)

        raise UnsupportedAuthKindError(
            "Authentication not supported by this user store: "
            f"{type(authentication).__name__}"
        )

    def _authenticate_password(self, authentication: UsernamePasswordAuthentication) -> UserRecord:
        username = authentication.username
        if not username:
            raise AuthenticationFailedError()

        password = authentication.password
        if password is None:
            password = ""

        with self._lock:
            stored = self._table().get(f"{PREFIX}{username}.{ATTR_PASSWORD}")
            if stored is None:
                logger.debug(f"Authentication failed for '{username}'")
                raise AuthenticationFailedError()

            if not self._encryptor.matches(password, stored):
                logger.debug(f"Authentication failed for '{username}'")
                raise AuthenticationFailedError()

            user = self.get_by_name(username)

        if user is None:
            raise AuthenticationFailedError()
        return user
