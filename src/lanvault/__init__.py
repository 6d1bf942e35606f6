"""LanVault - local-first encrypted credential vault with LAN peer sync."""

__version__ = "0.4.0"
