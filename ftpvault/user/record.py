"""
User records - identity, home directory and granted authorities.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Optional
import json
import yaml

from .authority import (
    Authority,
    AuthorizationRequest,
    ConcurrentLoginPermission,
    ConcurrentLoginRequest,
    TransferRatePermission,
    TransferRateRequest,
    WritePermission,
    WriteRequest,
)


@dataclass
class UserRecord:
    """
    A user as the server sees it.

    ``password`` is only used on the way in (plaintext handed to save());
    records read back from a store never carry it.
    """
    name: str
    password: Optional[str] = None
    home_directory: str = "/"
    enabled: bool = True
    max_idle_time: int = 0  # seconds, 0 = no cap
    authorities: list[Authority] = field(default_factory=list)

    def authorize(self, request: AuthorizationRequest) -> Optional[AuthorizationRequest]:
        """
        Run a request past every authority that understands it.

        Returns None if nothing could authorize it or any authority denied it.
        """
        if not self.authorities:
            return None

        handled = False
        for authority in self.authorities:
            if authority.can_authorize(request):
                handled = True
                request = authority.authorize(request)
                if request is None:
                    return None

        return request if handled else None

    def authorities_of(self, kind: type) -> list[Authority]:
        return [a for a in self.authorities if isinstance(a, kind)]

    @property
    def write_permission(self) -> bool:
        return self.authorize(WriteRequest()) is not None

    @property
    def max_upload_rate(self) -> int:
        granted = self.authorize(TransferRateRequest())
        return granted.max_upload_rate if granted else 0

    @property
    def max_download_rate(self) -> int:
        granted = self.authorize(TransferRateRequest())
        return granted.max_download_rate if granted else 0

    @property
    def max_concurrent_logins(self) -> int:
        granted = self.authorize(ConcurrentLoginRequest(0, 0))
        return granted.max_concurrent_logins if granted else 0

    @property
    def max_concurrent_logins_per_ip(self) -> int:
        granted = self.authorize(ConcurrentLoginRequest(0, 0))
        return granted.max_concurrent_logins_per_ip if granted else 0

    def to_dict(self) -> dict:
        """Serialize, excluding the password."""
        d = {
            'name': self.name,
            'home_directory': self.home_directory,
            'enabled': self.enabled,
            'max_idle_time': self.max_idle_time,
            'write_permission': bool(self.authorities_of(WritePermission)),
        }

        rates = self.authorities_of(TransferRatePermission)
        if rates:
            d['max_upload_rate'] = rates[0].max_upload_rate
            d['max_download_rate'] = rates[0].max_download_rate

        logins = self.authorities_of(ConcurrentLoginPermission)
        if logins:
            d['max_concurrent_logins'] = logins[0].max_concurrent_logins
            d['max_concurrent_logins_per_ip'] = logins[0].max_concurrent_logins_per_ip

        return d

    @classmethod
    def from_dict(cls, data: dict) -> UserRecord:
        """Deserialize from dict."""
        data = data.copy()
        authorities: list[Authority] = []

        if data.pop('write_permission', False):
            authorities.append(WritePermission())

        if 'max_upload_rate' in data or 'max_download_rate' in data:
            authorities.append(TransferRatePermission(
                max_download_rate=int(data.pop('max_download_rate', 0)),
                max_upload_rate=int(data.pop('max_upload_rate', 0)),
            ))

        if 'max_concurrent_logins' in data or 'max_concurrent_logins_per_ip' in data:
            authorities.append(ConcurrentLoginPermission(
                max_concurrent_logins=int(data.pop('max_concurrent_logins', 0)),
                max_concurrent_logins_per_ip=int(data.pop('max_concurrent_logins_per_ip', 0)),
            ))

        data['authorities'] = authorities
        return cls(**data)

    def to_yaml(self) -> str:
        """Serialize to YAML string."""
        return yaml.dump(self.to_dict(), default_flow_style=False, sort_keys=False)

    @classmethod
    def from_yaml(cls, yaml_str: str) -> UserRecord:
        """Deserialize from YAML string."""
        return cls.from_dict(yaml.safe_load(yaml_str))

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, json_str: str) -> UserRecord:
        return cls.from_dict(json.loads(json_str))

    def clone(self, **overrides) -> UserRecord:
        """Create a copy with optional overrides."""
        overrides.setdefault('authorities', list(self.authorities))
        return replace(self, **overrides)
