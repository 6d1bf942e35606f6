"""Storage adapters for LanVault."""
