from __future__ import annotations

import shutil

import pytest

from ftpvault import (
    ClearTextPasswordEncryptor,
    ClosedStoreError,
    ConfigurationError,
    CredentialStore,
    InvalidArgumentError,
    Md5PasswordEncryptor,
    PersistenceError,
    UserRecord,
    properties,
)
from ftpvault.store import PREFIX
from ftpvault.user import (
    AnonymousAuthentication,
    ConcurrentLoginPermission,
    ConcurrentLoginRequest,
    TransferRatePermission,
    TransferRateRequest,
    UsernamePasswordAuthentication,
    WriteRequest,
)

from conftest import RecordingPolicy


def _read(path):
    return properties.loads(path.read_text(encoding="utf-8"))


# ── Loading ─────────────────────────────────────────────────────────

def test_load_from_file(store, user_file):
    assert store.file == user_file
    assert store.url is None
    assert store.exists("confUsr")

    user = store.get_by_name("confUsr")
    assert user.name == "confUsr"
    assert user.authorize(WriteRequest()) is not None
    assert user.max_idle_time == 0
    assert user.home_directory == "/"
    assert user.enabled is True


def test_empty_source_gives_empty_table(encryptor):
    store = CredentialStore(encryptor, None)
    assert store.list_names() == []
    assert store.file is None

    store = CredentialStore(encryptor, "")
    assert store.list_names() == []


def test_missing_file_raises_configuration_error(encryptor, tmp_path):
    with pytest.raises(ConfigurationError):
        CredentialStore(encryptor, tmp_path / "nowhere" / "users.properties")


def test_missing_file_falls_back_to_package_resource(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    store = CredentialStore(Md5PasswordEncryptor(), "data/users.properties")

    assert store.list_names() == ["admin", "anonymous"]
    admin = store.authenticate(UsernamePasswordAuthentication("admin", "admin"))
    assert admin.write_permission is True

    store.save(UserRecord(name="carol", password="pw"))
    saved = _read(tmp_path / "data" / "users.properties")
    assert f"{PREFIX}carol.homedirectory" in saved
    assert f"{PREFIX}admin.homedirectory" in saved


def test_malformed_file_raises_configuration_error(encryptor, tmp_path):
    bad = tmp_path / "bad.properties"
    bad.write_text("ftpserver.user.x.homedirectory=\\u12G4\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        CredentialStore(encryptor, bad)

    bad.write_bytes(b"ftpserver.user.x.homedirectory=\xff\xfe\n")
    with pytest.raises(ConfigurationError):
        CredentialStore(encryptor, bad)


def test_load_from_url(encryptor, user_file):
    url = user_file.as_uri()
    store = CredentialStore(encryptor, url)
    assert store.url == url
    assert store.file is None
    assert store.exists("confUsr")


def test_unreachable_url_raises_configuration_error(encryptor, tmp_path):
    with pytest.raises(ConfigurationError):
        CredentialStore(encryptor, (tmp_path / "missing.properties").as_uri())


def test_url_store_keeps_changes_in_memory(encryptor, user_file):
    before = user_file.read_text(encoding="utf-8")
    store = CredentialStore(encryptor, user_file.as_uri())

    store.save(UserRecord(name="temp"))
    assert store.exists("temp")
    assert user_file.read_text(encoding="utf-8") == before

    store.refresh()
    assert not store.exists("temp")


def test_legacy_prefix_is_migrated(encryptor, tmp_path):
    path = tmp_path / "users.properties"
    path.write_text(
        "FtpServer.user.old.homedirectory=/old\n"
        "FtpServer.user.old.userpassword=pw\n"
        "FtpServer.user.both.homedirectory=/legacy\n"
        "ftpserver.user.both.homedirectory=/canonical\n",
        encoding="utf-8",
    )
    store = CredentialStore(encryptor, path)

    assert store.exists("old")
    assert store.get_by_name("old").home_directory == "/old"
    assert store.get_by_name("both").home_directory == "/canonical"

    store.save(UserRecord(name="new"))
    text = path.read_text(encoding="utf-8")
    assert "FtpServer.user." not in text
    assert f"{PREFIX}old.homedirectory=/old" in text


def test_refresh_picks_up_external_edits(store, user_file):
    with user_file.open("a", encoding="utf-8") as f:
        f.write("ftpserver.user.manual.homedirectory=/manual\n")

    assert not store.exists("manual")
    store.refresh()
    assert store.exists("manual")


def test_refresh_replaces_whole_table(store, user_file):
    store.save(UserRecord(name="dave"))
    user_file.write_text("ftpserver.user.other.homedirectory=/\n", encoding="utf-8")

    store.refresh()
    assert store.list_names() == ["other"]


def test_failed_refresh_keeps_previous_table(store, user_file):
    user_file.write_text("ftpserver.user.broken.homedirectory=\\u12G4\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        store.refresh()
    assert store.exists("confUsr")
    assert not store.exists("broken")


def test_refresh_prefers_file_after_later_url_load(store, user_file, tmp_path):
    other = tmp_path / "other.properties"
    other.write_text("ftpserver.user.remote.homedirectory=/\n", encoding="utf-8")

    store.load(other.as_uri())
    assert store.exists("remote")
    assert store.file == user_file
    assert store.url == other.as_uri()

    store.refresh()
    assert store.exists("confUsr")
    assert not store.exists("remote")


# ── Saving ──────────────────────────────────────────────────────────

def test_save_example_user(store, user_file):
    alice = UserRecord(
        name="alice",
        password="pwd",
        home_directory="/home/alice",
        max_idle_time=123,
        authorities=[ConcurrentLoginPermission(5, 2)],
    )
    store.save(alice)

    user = store.get_by_name("alice")
    assert user.name == "alice"
    assert user.home_directory == "/home/alice"
    assert user.max_idle_time == 123
    assert user.write_permission is False
    assert user.max_upload_rate == 0
    assert user.max_download_rate == 0
    assert user.max_concurrent_logins == 5
    assert user.max_concurrent_logins_per_ip == 2

    assert "alice" in store.list_names()
    assert store.authenticate(UsernamePasswordAuthentication("alice", "pwd")).name == "alice"

    saved = _read(user_file)
    assert saved[f"{PREFIX}alice.writepermission"] == "false"
    assert f"{PREFIX}alice.uploadrate" not in saved
    assert f"{PREFIX}alice.downloadrate" not in saved
    assert saved[f"{PREFIX}alice.maxloginnumber"] == "5"
    assert saved[f"{PREFIX}alice.maxloginperip"] == "2"


def test_save_writes_header_and_keeps_other_users(store, user_file):
    store.save(UserRecord(name="bob"))

    lines = user_file.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "#Generated file - don't edit (please)"
    assert f"{PREFIX}confUsr.groups" in _read(user_file)


def test_save_defaults(store):
    store.save(UserRecord(name="eve", home_directory=None, enabled=False))

    user = store.get_by_name("eve")
    assert user.home_directory == "/"
    assert user.enabled is False
    assert user.max_idle_time == 0


def test_save_requires_name(store):
    with pytest.raises(InvalidArgumentError):
        store.save(UserRecord(name=""))
    with pytest.raises(ValueError):
        store.save(None)


def test_save_rejects_negative_idle_time(store):
    with pytest.raises(InvalidArgumentError):
        store.save(UserRecord(name="neg", max_idle_time=-1))
    assert not store.exists("neg")


def test_save_probes_policy(store, user_file):
    policy = RecordingPolicy(write=True, rates=(300, 600), logins=(4, 1))
    store.save(UserRecord(name="frank"), policy=policy)

    kinds = [type(r) for r in policy.requests]
    assert kinds == [WriteRequest, TransferRateRequest, ConcurrentLoginRequest]
    login_probe = policy.requests[2]
    assert (login_probe.concurrent_logins, login_probe.concurrent_logins_per_ip) == (0, 0)

    saved = _read(user_file)
    assert saved[f"{PREFIX}frank.writepermission"] == "true"
    assert saved[f"{PREFIX}frank.uploadrate"] == "300"
    assert saved[f"{PREFIX}frank.downloadrate"] == "600"

    user = store.get_by_name("frank")
    assert user.max_upload_rate == 300
    assert user.max_download_rate == 600
    assert user.max_concurrent_logins == 4


def test_denied_rates_remove_both_keys(store, user_file):
    store.save(UserRecord(name="gina"), policy=RecordingPolicy(rates=(10, 20)))
    assert f"{PREFIX}gina.uploadrate" in _read(user_file)

    store.save(UserRecord(name="gina"), policy=RecordingPolicy(rates=None))
    saved = _read(user_file)
    assert f"{PREFIX}gina.uploadrate" not in saved
    assert f"{PREFIX}gina.downloadrate" not in saved

    user = store.get_by_name("gina")
    assert user.authorities_of(TransferRatePermission) == [TransferRatePermission(0, 0)]


def test_denied_logins_remove_both_keys(store, user_file):
    store.save(UserRecord(name="hank"), policy=RecordingPolicy(logins=None))
    saved = _read(user_file)
    assert f"{PREFIX}hank.maxloginnumber" not in saved
    assert f"{PREFIX}hank.maxloginperip" not in saved

    user = store.get_by_name("hank")
    assert user.authorities_of(ConcurrentLoginPermission) == [ConcurrentLoginPermission(0, 0)]


def test_save_without_password_for_new_user_means_empty_password(store):
    store.save(UserRecord(name="ivan"))
    assert store.authenticate(UsernamePasswordAuthentication("ivan", "")).name == "ivan"
    assert store.authenticate(UsernamePasswordAuthentication("ivan", None)).name == "ivan"


def test_save_without_password_keeps_existing_hash(user_file):
    store = CredentialStore(Md5PasswordEncryptor(), user_file)
    store.save(UserRecord(name="judy", password="P"))
    store.save(UserRecord(name="judy", home_directory="/elsewhere"))

    user = store.authenticate(UsernamePasswordAuthentication("judy", "P"))
    assert user.home_directory == "/elsewhere"


def test_save_overwrites_in_place(store):
    store.save(UserRecord(name="kim", home_directory="/a"))
    store.save(UserRecord(name="kim", home_directory="/b"))
    assert store.list_names().count("kim") == 1
    assert store.get_by_name("kim").home_directory == "/b"


def test_save_creates_parent_directories(encryptor, tmp_path):
    target = tmp_path / "deep" / "er" / "users.properties"
    target.parent.mkdir(parents=True)
    target.write_text("", encoding="utf-8")
    store = CredentialStore(encryptor, target)

    shutil.rmtree(tmp_path / "deep")
    store.save(UserRecord(name="leo"))
    assert f"{PREFIX}leo.homedirectory" in _read(target)


def test_failed_write_raises_and_keeps_memory_unchanged(store, user_file):
    directory = user_file.parent
    shutil.rmtree(directory)
    directory.write_text("not a directory", encoding="utf-8")

    with pytest.raises(PersistenceError):
        store.save(UserRecord(name="mia"))
    assert not store.exists("mia")

    with pytest.raises(PersistenceError):
        store.delete("confUsr")
    assert store.exists("confUsr")


def test_write_leaves_no_temp_files(store, user_file):
    store.save(UserRecord(name="ned"))
    store.delete("ned")
    assert [p.name for p in user_file.parent.iterdir()] == [user_file.name]


# ── Deleting ────────────────────────────────────────────────────────

def test_delete_removes_user(store, user_file):
    store.delete("confUsr")
    assert not store.exists("confUsr")
    assert store.get_by_name("confUsr") is None
    assert not _read(user_file).keys_with_prefix(f"{PREFIX}confUsr.")


def test_delete_unknown_user_still_rewrites(store, user_file):
    store.delete("nobody")
    assert user_file.read_text(encoding="utf-8").startswith("#Generated file")
    assert store.exists("confUsr")


def test_delete_leaves_users_with_dotted_names(store):
    store.save(UserRecord(name="john"))
    store.save(UserRecord(name="john.doe"))

    store.delete("john")
    assert not store.exists("john")
    assert store.exists("john.doe")


# ── Reading ─────────────────────────────────────────────────────────

def test_list_names_sorted_and_matches_exists(store):
    for name in ("zed", "amy", "john.doe"):
        store.save(UserRecord(name=name))

    names = store.list_names()
    assert names == sorted(names)
    assert names == ["amy", "confUsr", "john.doe", "zed"]
    assert all(store.exists(n) for n in names)
    assert store.get_all_user_names() == names


def test_get_by_name_unknown(store):
    assert store.get_by_name("ghost") is None


def test_get_by_name_always_attaches_rate_and_login_permissions(encryptor, tmp_path):
    path = tmp_path / "users.properties"
    path.write_text(
        "ftpserver.user.min.homedirectory=/min\n"
        "ftpserver.user.min.idletime=not-a-number\n",
        encoding="utf-8",
    )
    user = CredentialStore(encryptor, path).get_by_name("min")

    assert user.enabled is True
    assert user.max_idle_time == 0
    assert user.write_permission is False
    assert user.authorities_of(TransferRatePermission) == [TransferRatePermission(0, 0)]
    assert user.authorities_of(ConcurrentLoginPermission) == [ConcurrentLoginPermission(0, 0)]
    assert user.password is None


def test_password_key_alone_is_not_a_user(encryptor, tmp_path):
    path = tmp_path / "users.properties"
    path.write_text("ftpserver.user.half.userpassword=pw\n", encoding="utf-8")
    store = CredentialStore(encryptor, path)
    assert not store.exists("half")
    assert store.list_names() == []


# ── Admin and accessors ─────────────────────────────────────────────

def test_admin_and_accessors(user_file):
    enc = ClearTextPasswordEncryptor()
    store = CredentialStore(enc, user_file, admin_name="root")
    assert store.admin_name == "root"
    assert store.is_admin("root")
    assert not store.is_admin("admin")
    assert store.password_encryptor is enc


# ── Dispose ─────────────────────────────────────────────────────────

def test_operations_after_dispose_fail(store):
    store.dispose()
    assert store.closed

    with pytest.raises(ClosedStoreError):
        store.exists("confUsr")
    with pytest.raises(ClosedStoreError):
        store.get_by_name("confUsr")
    with pytest.raises(ClosedStoreError):
        store.list_names()
    with pytest.raises(ClosedStoreError):
        store.save(UserRecord(name="late"))
    with pytest.raises(ClosedStoreError):
        store.delete("confUsr")
    with pytest.raises(ClosedStoreError):
        store.refresh()
    with pytest.raises(ClosedStoreError):
        store.authenticate(UsernamePasswordAuthentication("confUsr", "secret"))
    with pytest.raises(ClosedStoreError):
        store.authenticate(AnonymousAuthentication())

    store.dispose()


def test_context_manager_disposes(encryptor, user_file):
    with CredentialStore(encryptor, user_file) as store:
        assert store.exists("confUsr")
    assert store.closed
