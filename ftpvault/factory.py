"""
Store settings and construction.
"""

from __future__ import annotations
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional, Union
import logging
import yaml

from .encryptor import PasswordEncryptor, Md5PasswordEncryptor, get_encryptor
from .errors import ConfigurationError
from .store import CredentialStore

logger = logging.getLogger(__name__)


@dataclass
class StoreSettings:
    """Everything needed to build a CredentialStore."""
    admin_name: str = "admin"
    file: Optional[str] = None
    url: Optional[str] = None
    password_encryptor: str = "md5"

    def to_dict(self) -> dict:
        """Serialize to dict (for saving)."""
        return {
            'admin_name': self.admin_name,
            'file': self.file,
            'url': self.url,
            'password_encryptor': self.password_encryptor,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> StoreSettings:
        """Deserialize from dict. Unknown keys are a configuration error."""
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown user store settings: {', '.join(unknown)}")

        if data.get('file') is not None:
            data['file'] = str(data['file'])
        return cls(**data)

    def to_yaml(self) -> str:
        """Serialize to YAML string."""
        return yaml.dump(self.to_dict(), default_flow_style=False, sort_keys=False)

    @classmethod
    def from_yaml(cls, yaml_str: str) -> StoreSettings:
        """Deserialize from YAML string."""
        try:
            data = yaml.safe_load(yaml_str)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid user store settings: {e}") from e

        if data is not None and not isinstance(data, dict):
            raise ConfigurationError("User store settings must be a mapping")
        return cls.from_dict(data)

    def save(self, path: Union[str, Path]) -> None:
        """Save to a YAML file."""
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(self.to_yaml(), encoding="utf-8")

    @classmethod
    def load(cls, path: Union[str, Path]) -> StoreSettings:
        """Load from a YAML file."""
        p = Path(path)
        try:
            content = p.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Cannot read user store settings: {p}") from e
        return cls.from_yaml(content)


class CredentialStoreFactory:
    """
    Builds CredentialStore instances.

    A URL takes precedence over a file when both are set.
    """

    def __init__(self):
        self.admin_name: str = "admin"
        self.file: Optional[Path] = None
        self.url: Optional[str] = None
        self.password_encryptor: PasswordEncryptor = Md5PasswordEncryptor()

    @classmethod
    def from_settings(cls, settings: StoreSettings) -> CredentialStoreFactory:
        factory = cls()
        factory.admin_name = settings.admin_name
        factory.file = Path(settings.file) if settings.file else None
        factory.url = settings.url or None
        factory.password_encryptor = get_encryptor(settings.password_encryptor)
        return factory

    def create_store(self) -> CredentialStore:
        if self.url is not None:
            logger.debug(f"Creating user store from URL {self.url}")
            return CredentialStore(self.password_encryptor, self.url, self.admin_name)

        logger.debug(f"Creating user store from file {self.file}")
        return CredentialStore(self.password_encryptor, self.file, self.admin_name)
