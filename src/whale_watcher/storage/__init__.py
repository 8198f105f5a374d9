"""Storage layer - watch settings and alert state."""

from whale_watcher.storage.alert_state import (
    ALERTED_HASHES_KEY,
    AlertStateStore,
    InMemoryAlertStateStore,
    RedisAlertStateStore,
)
from whale_watcher.storage.errors import StorageError
from whale_watcher.storage.settings_store import (
    SETTINGS_KEY,
    InMemorySettingsStore,
    RedisSettingsStore,
    SettingsStore,
    WatchSettings,
    parse_settings,
)

__all__ = [
    "ALERTED_HASHES_KEY",
    "SETTINGS_KEY",
    "AlertStateStore",
    "InMemoryAlertStateStore",
    "InMemorySettingsStore",
    "RedisAlertStateStore",
    "RedisSettingsStore",
    "SettingsStore",
    "StorageError",
    "WatchSettings",
    "parse_settings",
]
