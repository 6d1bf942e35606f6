"""Tests for ConfigService."""

from __future__ import annotations

import json
import os
import stat

import pytest

from lanvault.models.config_models import DEFAULT_SYNC_PORT
from lanvault.models.crypto.keys import DEFAULT_ITERATIONS
from lanvault.services.config_service import ConfigService


@pytest.fixture
def svc(tmp_path):
    return ConfigService(config_dir=tmp_path / "cfg")


class TestDefaults:
    def test_first_load_writes_defaults(self, svc):
        config = svc.config
        assert config.sync.port == DEFAULT_SYNC_PORT
        assert config.vault.kdf_iterations == DEFAULT_ITERATIONS
        assert config.output.show_passwords is False
        assert svc.config_path.exists()
        assert stat.S_IMODE(os.stat(svc.config_path).st_mode) == 0o600

    def test_device_id_is_stable(self, tmp_path, svc):
        device_id = svc.config.sync.device_id
        assert ConfigService(config_dir=tmp_path / "cfg").config.sync.device_id == device_id

    def test_paths(self, tmp_path, svc):
        assert svc.vault_path == tmp_path / "cfg" / "vault.db"
        assert svc.sync_state_path == tmp_path / "cfg" / "sync_state.json"

    def test_vault_path_override(self, tmp_path, svc):
        svc.set("vault.path", str(tmp_path / "elsewhere.db"))
        assert svc.vault_path == tmp_path / "elsewhere.db"

    def test_env_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LANVAULT_CONFIG_DIR", str(tmp_path / "env"))
        assert ConfigService().config_dir == tmp_path / "env"

    def test_invalid_file(self, svc):
        svc.config_path.write_text(json.dumps({"sync": {"port": "not a port"}}))
        with pytest.raises(RuntimeError, match="Failed to load config"):
            svc.load_config()


class TestGetSet:
    def test_get(self, svc):
        assert svc.get("output.format") == "table"
        assert svc.get("sync").port == DEFAULT_SYNC_PORT

    def test_get_unknown(self, svc):
        with pytest.raises(KeyError):
            svc.get("sync.nope")
        with pytest.raises(KeyError):
            svc.get("sync.port.deeper")

    def test_set_coerces_and_persists(self, tmp_path, svc):
        assert svc.set("sync.port", "8080") == 8080
        assert ConfigService(config_dir=tmp_path / "cfg").get("sync.port") == 8080

    def test_set_invalid_value(self, svc):
        with pytest.raises(ValueError, match="sync.port"):
            svc.set("sync.port", "eighty")
        assert svc.get("sync.port") == DEFAULT_SYNC_PORT

    def test_set_rejects_non_positive_iterations(self, svc):
        with pytest.raises(ValueError):
            svc.set("vault.kdf_iterations", 0)

    def test_set_unknown(self, svc):
        with pytest.raises(KeyError):
            svc.set("nope", 1)

    def test_reset_one_key(self, svc):
        svc.set("sync.port", 9000)
        svc.set("output.format", "json")
        svc.reset("sync.port")
        assert svc.get("sync.port") == DEFAULT_SYNC_PORT
        assert svc.get("output.format") == "json"

    def test_reset_all(self, svc):
        svc.set("output.format", "json")
        svc.reset()
        assert svc.get("output.format") == "table"
