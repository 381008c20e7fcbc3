"""VaultLock: app lock and session gate for the vault client."""

__version__ = "0.1.0"
