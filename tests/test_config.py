"""Tests for configuration management."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from debstow.core.config import (
    ConfigLoader,
    DownloadConfig,
    GlobalConfig,
    LockConfig,
    RepositoryConfig,
    SigningConfig,
    StorageConfig,
    load_config,
)


def test_storage_config_defaults():
    """Test storage config with defaults."""
    config = StorageConfig()
    assert config.backend == "s3"
    assert config.bucket is None
    assert config.visibility == "public"
    assert config.acl == "public-read"
    assert config.encryption is False


def test_storage_config_visibility():
    """Test visibility mapping and validation."""
    assert StorageConfig(visibility="authenticated").acl == "authenticated-read"
    assert StorageConfig(visibility="bucket_owner").acl == "bucket-owner-full-control"

    with pytest.raises(ValidationError):
        StorageConfig(visibility="world")


def test_storage_config_credentials_pair():
    """Test that access key and secret must be given together."""
    StorageConfig(access_key_id="AKIA", secret_access_key="secret")

    with pytest.raises(ValidationError):
        StorageConfig(access_key_id="AKIA")


def test_storage_config_local_path():
    """Test local path getter."""
    assert StorageConfig(local_path="/srv/apt").get_local_path() == Path("/srv/apt")

    with pytest.raises(ValueError):
        StorageConfig().get_local_path()


def test_signing_config():
    """Test signing is enabled by a key."""
    assert SigningConfig().enabled is False
    assert SigningConfig(key="ABCDEF12").enabled is True


def test_lock_config_validation():
    """Test lock polling policy validation."""
    config = LockConfig()
    assert config.enabled is False
    assert config.interval == 10
    assert config.max_attempts == 60

    assert LockConfig(max_attempts=None).max_attempts is None

    with pytest.raises(ValidationError):
        LockConfig(backoff=0.5)
    with pytest.raises(ValidationError):
        LockConfig(max_attempts=0)
    with pytest.raises(ValidationError):
        LockConfig(interval=-1)


def test_download_config_validation():
    """Test download config validation."""
    assert DownloadConfig().verify_checksum is True

    with pytest.raises(ValidationError):
        DownloadConfig(timeout=0)
    with pytest.raises(ValidationError):
        DownloadConfig(retry_attempts=11)


def test_repository_config():
    """Test repository defaults and path segment validation."""
    config = RepositoryConfig()
    assert config.codename == "stable"
    assert config.component == "main"
    assert config.preserve_versions is False
    assert config.by_hash_keep == 3

    for invalid in ["", "a/b", " main"]:
        with pytest.raises(ValidationError):
            RepositoryConfig(component=invalid)

    with pytest.raises(ValidationError):
        RepositoryConfig(by_hash_keep=0)


def test_config_loader(tmp_path):
    """Test loading a YAML configuration."""
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        """
storage:
  bucket: apt-bucket
  prefix: debian
  visibility: private
repository:
  codename: bookworm
  component: contrib
  cache_control: max-age=60
signing:
  key: ABCDEF12
lock:
  enabled: true
  interval: 1
"""
    )

    config = ConfigLoader(config_file).load()

    assert config.storage.bucket == "apt-bucket"
    assert config.storage.acl == "private"
    assert config.repository.codename == "bookworm"
    assert config.repository.component == "contrib"
    assert config.repository.cache_control == "max-age=60"
    assert config.signing.enabled is True
    assert config.lock.enabled is True
    assert config.lock.interval == 1


def test_config_loader_includes(tmp_path):
    """Test included files are merged section by section."""
    (tmp_path / "conf.d").mkdir()
    (tmp_path / "conf.d" / "10-repo.yaml").write_text("repository:\n  codename: bookworm\n")
    (tmp_path / "conf.d" / "20-lock.yml").write_text("lock:\n  enabled: true\n")
    (tmp_path / "conf.d" / "notes.txt").write_text("lock: nonsense\n")
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        "include: conf.d/*\nstorage:\n  bucket: apt-bucket\nrepository:\n  component: contrib\n"
    )

    config = ConfigLoader(config_file).load()

    assert config.storage.bucket == "apt-bucket"
    assert config.repository.codename == "bookworm"
    assert config.repository.component == "contrib"
    assert config.lock.enabled is True


def test_config_loader_missing_file(tmp_path):
    """Test missing file error."""
    with pytest.raises(FileNotFoundError):
        ConfigLoader(tmp_path / "missing.yaml").load()


def test_config_loader_invalid_yaml(tmp_path):
    """Test YAML syntax error."""
    config_file = tmp_path / "config.yaml"
    config_file.write_text("storage: [unclosed\n")

    with pytest.raises(ValueError, match="YAML syntax error"):
        ConfigLoader(config_file).load()


def test_config_loader_invalid_values(tmp_path):
    """Test validation errors are reported with the file name."""
    config_file = tmp_path / "config.yaml"
    config_file.write_text("storage:\n  visibility: world\n")

    with pytest.raises(ValueError, match="validation error"):
        ConfigLoader(config_file).load()


def test_load_config_explicit_path(tmp_path):
    """Test explicit path wins and must exist."""
    config_file = tmp_path / "custom.yaml"
    config_file.write_text("repository:\n  codename: custom\n")

    assert load_config(config_file).repository.codename == "custom"

    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")


def test_load_config_from_environment(tmp_path, monkeypatch):
    """Test DEBSTOW_CONFIG lookup."""
    config_file = tmp_path / "env.yaml"
    config_file.write_text("repository:\n  codename: fromenv\n")
    monkeypatch.setenv("DEBSTOW_CONFIG", str(config_file))

    assert load_config().repository.codename == "fromenv"

    monkeypatch.setenv("DEBSTOW_CONFIG", str(tmp_path / "missing.yaml"))
    with pytest.raises(FileNotFoundError, match="DEBSTOW_CONFIG"):
        load_config()


def test_load_config_defaults(tmp_path, monkeypatch):
    """Test built-in defaults without any config file."""
    monkeypatch.delenv("DEBSTOW_CONFIG", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.chdir(tmp_path)

    config = load_config()

    assert isinstance(config, GlobalConfig)
    assert config.repository.codename == "stable"
