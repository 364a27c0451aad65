from __future__ import annotations

from pathlib import Path
from typing import Optional

import pytest

from ftpvault import ClearTextPasswordEncryptor, CredentialStore
from ftpvault.user import (
    ConcurrentLoginRequest,
    TransferRateRequest,
    WriteRequest,
)


CONF_USER_DATA = """\
ftpserver.user.confUsr.userpassword=secret
ftpserver.user.confUsr.homedirectory=/
ftpserver.user.confUsr.enableflag=true
ftpserver.user.confUsr.writepermission=true
ftpserver.user.confUsr.maxloginnumber=0
ftpserver.user.confUsr.maxloginperip=0
ftpserver.user.confUsr.idletime=0
ftpserver.user.confUsr.uploadrate=0
ftpserver.user.confUsr.downloadrate=0
ftpserver.user.confUsr.groups=confUsr,users
"""


class RecordingPolicy:
    """Grants or denies each probe kind and remembers what it was asked."""

    def __init__(
        self,
        write: bool = False,
        rates: Optional[tuple[int, int]] = None,
        logins: Optional[tuple[int, int]] = (0, 0),
    ):
        self.write = write
        self.rates = rates
        self.logins = logins
        self.requests: list = []

    def authorize(self, request):
        self.requests.append(request)

        if isinstance(request, WriteRequest):
            return request if self.write else None

        if isinstance(request, TransferRateRequest):
            if self.rates is None:
                return None
            request.max_upload_rate, request.max_download_rate = self.rates
            return request

        if isinstance(request, ConcurrentLoginRequest):
            if self.logins is None:
                return None
            request.max_concurrent_logins, request.max_concurrent_logins_per_ip = self.logins
            return request

        return None


@pytest.fixture
def user_file(tmp_path) -> Path:
    path = tmp_path / "conf" / "users.properties"
    path.parent.mkdir(parents=True)
    path.write_text(CONF_USER_DATA, encoding="utf-8")
    return path


@pytest.fixture
def encryptor():
    return ClearTextPasswordEncryptor()


@pytest.fixture
def store(encryptor, user_file):
    s = CredentialStore(encryptor, user_file)
    yield s
    s.dispose()
