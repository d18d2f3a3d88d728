import binascii
import stat

import pytest

from credkeeper import InvalidKeyError, KeyNotFound, StorageError
from credkeeper.secrets.environments import EnvironmentRegistry

HEX_KEY = "00" * 32


@pytest.fixture
def keys(config):
    return EnvironmentRegistry(config).keys


def test_key_does_not_exist_initially(keys):
    assert not keys.key_exists("staging")
    assert not keys.key_exists("credentials")


def test_create_key(keys, config):
    key = keys.create_key("staging")
    assert len(key) == 32
    path = config.credentials_dir / "staging.key"
    assert path.read_text() == binascii.hexlify(key).decode("ascii")
    assert stat.S_IMODE(path.stat().st_mode) == 0o600
    assert keys.key_exists("staging")
    assert keys.load_key("staging") == key


def test_create_main_key(keys, config):
    key = keys.create_key("credentials")
    assert (config.config_dir / "master.key").exists()
    assert keys.load_key("credentials") == key


def test_create_key_does_not_overwrite(keys):
    first = keys.create_key("staging")
    assert keys.create_key("staging") == first
    assert keys.load_key("staging") == first


def test_keys_are_random(keys):
    assert keys.create_key("staging") != keys.create_key("production")


def test_create_key_replaces_empty_key_file(keys, config):
    config.credentials_dir.mkdir(parents=True)
    (config.credentials_dir / "staging.key").write_text("\n")
    assert not keys.key_exists("staging")
    key = keys.create_key("staging")
    assert keys.load_key("staging") == key


def test_create_key_unwritable_directory(keys, config):
    config.root.mkdir(parents=True, exist_ok=True)
    (config.root / "config").write_text("not a directory")
    with pytest.raises(StorageError):
        keys.create_key("staging")


def test_load_key_missing(keys):
    with pytest.raises(KeyNotFound) as e:
        keys.load_key("staging")
    assert "RAILS_STAGING_KEY" in str(e.value)
    assert "staging.key" in str(e.value)


def test_key_from_environment_variable(keys, monkeypatch):
    monkeypatch.setenv("RAILS_STAGING_KEY", HEX_KEY)
    assert keys.key_exists("staging")
    assert keys.load_key("staging") == bytes(32)


def test_master_key_from_environment_variable(keys, monkeypatch):
    monkeypatch.setenv("RAILS_MASTER_KEY", HEX_KEY)
    assert keys.key_exists("credentials")
    assert not keys.key_exists("staging")
    assert keys.load_key("credentials") == bytes(32)


def test_blank_environment_variable_is_ignored(keys, monkeypatch):
    monkeypatch.setenv("RAILS_STAGING_KEY", "   ")
    assert not keys.key_exists("staging")
    with pytest.raises(KeyNotFound):
        keys.load_key("staging")


def test_key_file_takes_precedence(keys, monkeypatch):
    key = keys.create_key("staging")
    monkeypatch.setenv("RAILS_STAGING_KEY", HEX_KEY)
    assert keys.load_key("staging") == key


def test_configured_variable_names(config, monkeypatch):
    config.env_var_prefix = "MYAPP"
    config.master_key_env = "MYAPP_MASTER"
    keys = EnvironmentRegistry(config).keys
    monkeypatch.setenv("MYAPP_STAGING_KEY", HEX_KEY)
    monkeypatch.setenv("MYAPP_MASTER", HEX_KEY)
    assert keys.key_exists("staging")
    assert keys.key_exists("credentials")


def test_short_keys_are_accepted(keys, monkeypatch):
    monkeypatch.setenv("RAILS_STAGING_KEY", "ab" * 16)
    assert keys.load_key("staging") == b"\xab" * 16


@pytest.mark.parametrize("material", ["not hex at all", "abcd", "0" * 63])
def test_invalid_key_material(keys, config, material):
    config.credentials_dir.mkdir(parents=True)
    (config.credentials_dir / "staging.key").write_text(material)
    with pytest.raises(InvalidKeyError) as e:
        keys.load_key("staging")
    assert "expected 32, 48 or 64 hex characters" in str(e.value)


def test_delete_key(keys):
    keys.create_key("staging")
    assert keys.delete_key("staging")
    assert not keys.key_exists("staging")
    assert not keys.delete_key("staging")


@pytest.mark.parametrize("raw", [b"\xff" * 32, b"\x80\x00" * 12, b"\xfe" * 16])
def test_raw_binary_key_file(keys, config, raw):
    config.credentials_dir.mkdir(parents=True)
    (config.credentials_dir / "staging.key").write_bytes(raw)
    assert keys.key_exists("staging")
    assert keys.load_key("staging") == raw


def test_hex_key_file_is_preferred_over_raw(keys, config):
    config.credentials_dir.mkdir(parents=True)
    (config.credentials_dir / "staging.key").write_text("ab" * 16)
    assert keys.load_key("staging") == b"\xab" * 16


def test_undecodable_key_file_of_wrong_size(keys, config):
    config.credentials_dir.mkdir(parents=True)
    (config.credentials_dir / "staging.key").write_bytes(b"\xff" * 7)
    assert keys.key_exists("staging")
    with pytest.raises(InvalidKeyError) as e:
        keys.load_key("staging")
    assert "16, 24 or 32 raw bytes" in str(e.value)
