"""Shared pytest fixtures."""

import pytest


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the config directory at an empty temp dir for every test."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    monkeypatch.setenv("PAY_AUDIT_CONFIG_PATH", str(config_dir))
    return config_dir
