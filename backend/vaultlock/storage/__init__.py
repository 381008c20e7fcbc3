"""Device storage backends, chosen once at startup by platform."""

import os
import sys

from ..config import LockConfig
from ..logging import get_logger
from .base import KeyValueStore, SessionStorage
from .native import PreferencesStore
from .web import LocalStorage

logger = get_logger("storage")

NATIVE_PLATFORMS = ("android", "ios")


def is_native_platform(config: LockConfig) -> bool:
    """Whether we run inside a native app shell."""
    if config.platform != "auto":
        return config.platform == "native"
    if sys.platform in NATIVE_PLATFORMS:
        return True
    # python-for-android sets this in the app process
    return "ANDROID_ARGUMENT" in os.environ


def create_device_store(config: LockConfig) -> KeyValueStore:
    """Pick the persistent store for this device."""
    if is_native_platform(config):
        store = PreferencesStore(config.data_path / "preferences")
        logger.info(f"Using native preference store at {store.directory}")
        return store
    store = LocalStorage(config.data_path / "local_storage.json")
    logger.info(f"Using local storage at {store.path}")
    return store


__all__ = [
    "KeyValueStore",
    "SessionStorage",
    "LocalStorage",
    "PreferencesStore",
    "is_native_platform",
    "create_device_store",
]
