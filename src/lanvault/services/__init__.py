"""Service layer: vault store, sync engine and server, configuration."""
