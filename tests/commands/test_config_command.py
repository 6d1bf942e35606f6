"""Tests for the config command group."""

from __future__ import annotations

import json

from typer.testing import CliRunner

from lanvault.commands.config_command import app
from lanvault.models.config_models import DEFAULT_SYNC_PORT
from lanvault.utils import exit_codes

runner = CliRunner()


class TestConfigCommands:
    def test_get(self, tmp_config):
        result = runner.invoke(app, ["get", "sync.port"])
        assert result.exit_code == 0
        assert str(DEFAULT_SYNC_PORT) in result.output

    def test_get_unknown(self, tmp_config):
        result = runner.invoke(app, ["get", "sync.nope"])
        assert result.exit_code == exit_codes.ERROR_NOT_FOUND

    def test_set(self, tmp_config):
        result = runner.invoke(app, ["set", "sync.port", "8080"])
        assert result.exit_code == 0
        assert tmp_config.get("sync.port") == 8080

    def test_set_invalid(self, tmp_config):
        result = runner.invoke(app, ["set", "sync.port", "eighty"])
        assert result.exit_code == exit_codes.ERROR_INVALID_ARGS

    def test_set_unknown(self, tmp_config):
        result = runner.invoke(app, ["set", "nope", "1"])
        assert result.exit_code == exit_codes.ERROR_NOT_FOUND

    def test_show_json(self, tmp_config):
        result = runner.invoke(app, ["show", "-o", "json"])
        assert result.exit_code == 0
        data = json.loads(result.output[: result.output.rindex("}") + 1])
        assert data["sync"]["port"] == DEFAULT_SYNC_PORT

    def test_show_table(self, tmp_config):
        result = runner.invoke(app, ["show"])
        assert result.exit_code == 0
        assert "Sync.Port" in result.output

    def test_reset_key(self, tmp_config):
        tmp_config.set("sync.port", 9000)
        result = runner.invoke(app, ["reset", "sync.port", "--yes"])
        assert result.exit_code == 0
        assert tmp_config.get("sync.port") == DEFAULT_SYNC_PORT

    def test_reset_cancelled(self, tmp_config):
        tmp_config.set("sync.port", 9000)
        result = runner.invoke(app, ["reset"], input="n\n")
        assert "Cancelled" in result.output
        assert tmp_config.get("sync.port") == 9000
