"""Configuration models for LanVault.

Every section has defaults so a missing or partial config.json still loads.
"""

from __future__ import annotations

import uuid

from pydantic import BaseModel, Field, field_validator

from lanvault.models.crypto.keys import DEFAULT_ITERATIONS

DEFAULT_SYNC_PORT = 51821


class VaultConfig(BaseModel):
    """Vault configuration."""

    path: str | None = Field(
        default=None, description="Database path (defaults to the user data dir)"
    )
    auto_lock_seconds: int = Field(default=300, description="Idle auto-lock, 0 = off")
    kdf_iterations: int = Field(default=DEFAULT_ITERATIONS)

    @field_validator("kdf_iterations")
    @classmethod
    def validate_iterations(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("kdf_iterations must be positive")
        return v


class SyncConfig(BaseModel):
    """Sync configuration."""

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=DEFAULT_SYNC_PORT)
    request_timeout: float = Field(default=10.0)
    connect_timeout: float = Field(default=10.0)
    device_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    device_name: str = Field(default="lanvault")

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not 0 <= v <= 65535:
            raise ValueError(f"port out of range: {v}")
        return v


class OutputConfig(BaseModel):
    """Output configuration."""

    format: str = Field(default="table")  # table, json, yaml
    color: bool = Field(default=True)
    show_passwords: bool = Field(default=False)


class AppConfig(BaseModel):
    """Main LanVault configuration"""

    vault: VaultConfig = Field(default_factory=VaultConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
