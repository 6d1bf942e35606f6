"""Shared test fixtures and configuration.

Provides infrastructure to isolate tests from real filesystem state: logs,
config and vault databases all land under ``tmp_path``.
"""

from __future__ import annotations

import logging
import os
from unittest.mock import patch

import pytest

from lanvault.services.vault_service import VaultService

# Low enough to keep the suite fast; production uses 600k.
TEST_ITERATIONS = 1_000
PASSWORD = "correct-horse-battery"


@pytest.fixture(autouse=True)
def isolated_logging(tmp_path):
    """Point the application log file at a temporary directory."""
    import lanvault.utils.logger as logger_mod

    app_logger = logging.getLogger("lanvault")
    app_logger.handlers.clear()
    logger_mod._logger = None
    with patch("lanvault.utils.logger.user_log_dir", return_value=str(tmp_path / "logs")):
        logger_mod.get_logger()
        yield
    for handler in app_logger.handlers:
        handler.close()
    app_logger.handlers.clear()
    logger_mod._logger = None


@pytest.fixture()
def tmp_config(tmp_path, monkeypatch):
    """Provide a real ConfigService backed by a temporary directory.

    Also clears the lru_cache so each test gets a fresh service instance.
    """
    from lanvault.services.config_service import get_config_service

    monkeypatch.setenv("LANVAULT_CONFIG_DIR", str(tmp_path / "config"))
    get_config_service.cache_clear()
    svc = get_config_service()
    svc.set("vault.kdf_iterations", TEST_ITERATIONS)
    yield svc
    get_config_service.cache_clear()


@pytest.fixture()
def vault_service(tmp_path):
    """A VaultService over a fresh database file."""
    service = VaultService(tmp_path / "vault.db", kdf_iterations=TEST_ITERATIONS)
    yield service
    service.close()


@pytest.fixture()
def session(vault_service):
    """An open session on a freshly created vault."""
    session = vault_service.create(PASSWORD)
    yield session
    vault_service.lock(session)


@pytest.fixture()
def key():
    """A random 32-byte key."""
    return os.urandom(32)
