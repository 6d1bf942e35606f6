"""Tests for the vault command group."""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from conftest import PASSWORD
from lanvault.main import app
from lanvault.services.vault_service import VaultService
from lanvault.utils import exit_codes

runner = CliRunner()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_env(tmp_config, monkeypatch):
    monkeypatch.setenv("LANVAULT_PASSWORD", PASSWORD)
    return tmp_config


@pytest.fixture
def created(cli_env):
    result = runner.invoke(app, ["vault", "create"])
    assert result.exit_code == 0, result.output
    return cli_env


def _add(title, *args):
    result = runner.invoke(app, ["vault", "add", "--title", title, "--secret", "pw-" + title, *args])
    assert result.exit_code == 0, result.output


def _list(*args):
    result = runner.invoke(app, ["vault", "list", "-o", "json", *args])
    assert result.exit_code == 0, result.output
    return json.loads(result.output)


def _id_of(title):
    return next(e["id"] for e in _list() if e["title"] == title)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestCreate:
    def test_create(self, cli_env):
        result = runner.invoke(app, ["vault", "create"])
        assert result.exit_code == 0
        assert "Vault created" in result.output
        assert cli_env.vault_path.exists()

    def test_create_twice(self, created):
        result = runner.invoke(app, ["vault", "create"])
        assert result.exit_code == exit_codes.ERROR_INVALID_ARGS

    def test_create_with_prompt(self, tmp_config, monkeypatch):
        monkeypatch.delenv("LANVAULT_PASSWORD", raising=False)
        result = runner.invoke(app, ["vault", "create"], input=f"{PASSWORD}\n{PASSWORD}\n")
        assert result.exit_code == 0, result.output

    def test_list_without_vault(self, cli_env):
        result = runner.invoke(app, ["vault", "list"])
        assert result.exit_code == exit_codes.ERROR_NOT_FOUND

    def test_wrong_password(self, created, monkeypatch):
        monkeypatch.setenv("LANVAULT_PASSWORD", "not the password")
        result = runner.invoke(app, ["vault", "list"])
        assert result.exit_code == exit_codes.ERROR_AUTH_FAILURE
        assert "Incorrect master password" in result.output


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------


class TestEntries:
    def test_add_and_list(self, created):
        _add("GitHub", "--username", "octocat", "--url", "https://github.com")
        entries = _list()
        assert len(entries) == 1
        assert entries[0]["username"] == "octocat"
        assert "password" not in entries[0]

    def test_add_prompts_for_secret(self, created):
        result = runner.invoke(app, ["vault", "add", "--title", "Prompted"], input="typed\n")
        assert result.exit_code == 0, result.output
        shown = runner.invoke(
            app, ["vault", "get", _id_of("Prompted"), "--show-password", "-o", "json"]
        )
        assert json.loads(shown.output)["password"] == "typed"

    def test_get_masks_password(self, created):
        _add("Mail")
        result = runner.invoke(app, ["vault", "get", _id_of("Mail"), "-o", "json"])
        assert result.exit_code == 0
        detail = json.loads(result.output)
        assert detail["password"] != "pw-Mail"
        assert detail["title"] == "Mail"

    def test_get_shows_password(self, created):
        _add("Mail")
        result = runner.invoke(app, ["vault", "get", _id_of("Mail"), "-s", "-o", "json"])
        assert json.loads(result.output)["password"] == "pw-Mail"

    def test_get_table(self, created):
        _add("Mail")
        result = runner.invoke(app, ["vault", "get", _id_of("Mail")])
        assert result.exit_code == 0
        assert "Mail" in result.output

    def test_get_missing(self, created):
        result = runner.invoke(app, ["vault", "get", "missing-id"])
        assert result.exit_code == exit_codes.ERROR_NOT_FOUND

    def test_update(self, created):
        _add("Mail")
        entry_id = _id_of("Mail")
        result = runner.invoke(app, ["vault", "update", entry_id, "--username", "me@mail.test"])
        assert result.exit_code == 0, result.output
        assert _list()[0]["username"] == "me@mail.test"

    def test_update_nothing(self, created):
        _add("Mail")
        result = runner.invoke(app, ["vault", "update", _id_of("Mail")])
        assert result.exit_code == 0
        assert "Nothing to update" in result.output

    def test_delete(self, created):
        _add("Mail")
        result = runner.invoke(app, ["vault", "delete", _id_of("Mail"), "--yes"])
        assert result.exit_code == 0
        assert _list() == []

    def test_delete_cancelled(self, created):
        _add("Mail")
        result = runner.invoke(app, ["vault", "delete", _id_of("Mail")], input="n\n")
        assert result.exit_code == 0
        assert "Cancelled" in result.output
        assert len(_list()) == 1

    def test_favorite(self, created):
        _add("A")
        _add("B")
        result = runner.invoke(app, ["vault", "favorite", _id_of("A")])
        assert "added to favorites" in result.output
        assert [e["title"] for e in _list("--favorites")] == ["A"]

    def test_search(self, created):
        _add("GitHub", "--username", "octocat")
        _add("Bank")
        result = runner.invoke(app, ["vault", "search", "octo", "-o", "json"])
        assert [e["title"] for e in json.loads(result.output)] == ["GitHub"]

    def test_list_yaml(self, created):
        _add("Yaml")
        result = runner.invoke(app, ["vault", "list", "-o", "yaml"])
        assert "title: Yaml" in result.output

    def test_empty_table(self, created):
        result = runner.invoke(app, ["vault", "list"])
        assert "No items found" in result.output


class TestCorruptedEntries:
    @staticmethod
    def _corrupt(cli_env, entry_id):
        with VaultService(cli_env.vault_path) as service, service.connection:
            service.connection.execute(
                "UPDATE entries SET password = ? WHERE id = ?", ("@@not-a-blob@@", entry_id)
            )

    def test_list_shows_placeholder(self, created):
        _add("Good")
        _add("Broken", "--url", "https://broken.example")
        bad_id = _id_of("Broken")
        self._corrupt(created, bad_id)

        entries = _list()
        assert [e["status"] for e in entries] == ["ok", "corrupted"]
        placeholder = entries[1]
        assert placeholder["id"] == bad_id
        assert placeholder["url"] == "https://broken.example"
        assert placeholder["title"] == "<unreadable>"

    def test_list_table_shows_placeholder(self, created):
        _add("Broken")
        self._corrupt(created, _id_of("Broken"))
        result = runner.invoke(app, ["vault", "list"])
        assert result.exit_code == 0, result.output
        assert "corrupted" in result.output
        assert "No items found" not in result.output

    def test_search_warns_and_matches_url(self, created):
        _add("Broken", "--url", "https://bank.example")
        bad_id = _id_of("Broken")
        self._corrupt(created, bad_id)

        result = runner.invoke(app, ["vault", "search", "bank", "-o", "json"])
        assert [e["id"] for e in json.loads(result.output)] == [bad_id]

        result = runner.invoke(app, ["vault", "search", "nothing"])
        assert result.exit_code == 0
        assert "unreadable" in result.output
        assert bad_id in result.output.replace("\n", "")


# ---------------------------------------------------------------------------
# One-time codes and password generation
# ---------------------------------------------------------------------------


class TestTotp:
    def test_code_for_entry(self, created):
        _add("Mail", "--totp", "GEZD GNBV GY3T QOJQ GEZD GNBV GY3T QOJQ")
        with patch("lanvault.models.totp.time") as clock:
            clock.time.return_value = 59
            result = runner.invoke(app, ["vault", "totp", _id_of("Mail"), "-o", "json"])
        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == {"id": _id_of("Mail"), "code": "287082", "remaining": 1}

    def test_table_output_groups_digits(self, created):
        _add("Mail", "--totp", "otpauth://totp/Mail:me?secret=GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ")
        with patch("lanvault.models.totp.time") as clock:
            clock.time.return_value = 59
            result = runner.invoke(app, ["vault", "totp", _id_of("Mail")])
        assert result.exit_code == 0, result.output
        assert "287 082" in result.output
        assert "expires in 1s" in result.output

    def test_entry_without_secret(self, created):
        _add("Plain")
        result = runner.invoke(app, ["vault", "totp", _id_of("Plain")])
        assert result.exit_code == exit_codes.ERROR_INVALID_ARGS
        assert "no TOTP secret" in result.output

    def test_invalid_secret_rejected_on_add(self, created):
        result = runner.invoke(
            app, ["vault", "add", "--title", "Bad", "--secret", "x", "--totp", "not base32!"]
        )
        assert result.exit_code == exit_codes.ERROR_INVALID_ARGS
        assert _list() == []

    def test_update_sets_secret(self, created):
        _add("Mail")
        entry_id = _id_of("Mail")
        result = runner.invoke(app, ["vault", "update", entry_id, "--totp", "JBSWY3DPEHPK3PXP"])
        assert result.exit_code == 0, result.output
        result = runner.invoke(app, ["vault", "totp", entry_id, "-o", "json"])
        assert len(json.loads(result.output)["code"]) == 6


class TestGenerate:
    def test_default(self, cli_env):
        result = runner.invoke(app, ["vault", "generate"])
        assert result.exit_code == 0
        assert len(result.output.strip()) == 16

    def test_digits_only(self, cli_env):
        result = runner.invoke(
            app,
            ["vault", "generate", "-l", "40", "--no-uppercase", "--no-lowercase", "--no-symbols"],
        )
        assert result.exit_code == 0
        password = result.output.strip()
        assert len(password) == 40
        assert password.isdigit()

    def test_bad_length(self, cli_env):
        result = runner.invoke(app, ["vault", "generate", "--length", "0"])
        assert result.exit_code == exit_codes.ERROR_INVALID_ARGS

    def test_add_with_generated_password(self, created):
        result = runner.invoke(app, ["vault", "add", "--title", "Fresh", "--generate"])
        assert result.exit_code == 0, result.output
        shown = runner.invoke(app, ["vault", "get", _id_of("Fresh"), "-s", "-o", "json"])
        assert len(json.loads(shown.output)["password"]) == 16


class TestExportImport:
    def test_export_then_import(self, created, tmp_path):
        _add("Keep")
        export_file = tmp_path / "export.lvx"
        result = runner.invoke(app, ["vault", "export", str(export_file)])
        assert result.exit_code == 0, result.output
        assert "pw-Keep" not in export_file.read_text()

        result = runner.invoke(app, ["vault", "import", str(export_file)])
        assert result.exit_code == 0, result.output
        assert "skipped 1" in result.output

    def test_import_missing_file(self, created, tmp_path):
        result = runner.invoke(app, ["vault", "import", str(tmp_path / "nope")])
        assert result.exit_code == 2


class TestDoctor:
    def test_healthy(self, created):
        _add("A")
        result = runner.invoke(app, ["vault", "doctor"])
        assert result.exit_code == 0
        assert "Vault health" in result.output
        assert "All entries readable" in result.output


def test_version():
    from lanvault import __version__

    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.output
