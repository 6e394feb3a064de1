"""
Settings store for user preferences
"""

import json
import os
import tempfile
import threading
from dataclasses import replace, fields
from pathlib import Path
from typing import Optional, Dict, Any
import logging

from .errors import SettingsError, InvalidSetting
from .types import Settings, Protocol

logger = logging.getLogger(__name__)

SETTINGS_KEY = 'vpn-orchestrator-settings'
SETTING_NAMES = tuple(f.name for f in fields(Settings))


def _coerce(key: str, value: Any) -> Any:
    """Validate a value for a known setting"""
    if key == 'protocol':
        try:
            return Protocol.parse(value)
        except ValueError as e:
            raise InvalidSetting(key, str(e)) from None

    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ('true', 'on', 'yes', '1'):
            return True
        if lowered in ('false', 'off', 'no', '0'):
            return False
    raise InvalidSetting(key, f"expected a boolean, got {value!r}")


class SettingsStore:
    """User preferences, served from memory and persisted on every change"""

    def __init__(self, storage_file: Optional[Path] = None):
        """
        Initialize settings store

        Args:
            storage_file: JSON file holding the settings record
        """
        if storage_file is None:
            storage_file = (
                Path.home() / '.config' / 'vpn-orchestrator' / 'storage.json'
            )
        self.storage_file = Path(storage_file)
        self._lock = threading.Lock()
        self._settings = self.load()

    @property
    def settings(self) -> Settings:
        return self._settings

    def load(self) -> Settings:
        """
        Load settings from storage

        Persisted keys overlay the defaults one by one; unknown keys and
        invalid values are ignored.
        """
        record = self._read_storage().get(SETTINGS_KEY)
        if not isinstance(record, dict):
            self._settings = Settings()
            return self._settings

        values = {}
        for key, value in record.items():
            if key not in SETTING_NAMES:
                logger.debug(f"Ignoring unknown setting: {key}")
                continue
            try:
                values[key] = _coerce(key, value)
            except InvalidSetting as e:
                logger.warning(f"{e}, using default")

        settings = replace(Settings(), **values)
        self._settings = settings
        return settings

    def get(self, key: str) -> Any:
        if key not in SETTING_NAMES:
            raise InvalidSetting(key)
        return getattr(self._settings, key)

    def set(self, key: str, value: Any) -> Settings:
        """
        Update one setting and persist it

        Args:
            key: One of protocol, killswitch, autoconnect, dns, notifications
            value: New value

        Returns:
            The updated settings
        """
        if key not in SETTING_NAMES:
            raise InvalidSetting(key)
        value = _coerce(key, value)

        with self._lock:
            updated = replace(self._settings, **{key: value})
            self._persist(updated)
            self._settings = updated

        logger.info(f"Setting {key} changed to {value}")
        return updated

    def reset(self) -> Settings:
        """Restore and persist the defaults"""
        with self._lock:
            defaults = Settings()
            self._persist(defaults)
            self._settings = defaults
        return defaults

    def as_dict(self) -> Dict[str, Any]:
        return self._settings.to_dict()

    def _read_storage(self) -> Dict:
        try:
            return self._load_storage()
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load settings: {e}")
            logger.info("Using default settings")
            return {}

    def _load_storage(self) -> Dict:
        """Parse the storage file; a missing file is empty"""
        if not self.storage_file.exists():
            return {}

        with open(self.storage_file, 'r') as f:
            data = json.load(f)

        if not isinstance(data, dict):
            raise ValueError("storage file does not hold a JSON object")
        return data

    def _persist(self, settings: Settings):
        try:
            storage = self._load_storage()
        except ValueError as e:
            # Nothing left to keep; move the damaged file aside
            backup = self.storage_file.with_name(self.storage_file.name + '.corrupt')
            logger.warning(f"Storage file is corrupt ({e}), moving it to {backup}")
            try:
                os.replace(self.storage_file, backup)
            except OSError as move_error:
                raise SettingsError(
                    f"Failed to save settings: {move_error}"
                ) from move_error
            storage = {}
        except OSError as e:
            logger.error(f"Failed to read storage file: {e}")
            raise SettingsError(f"Failed to save settings: {e}") from e

        storage[SETTINGS_KEY] = settings.to_dict()

        try:
            self.storage_file.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.storage_file.parent), suffix='.tmp'
            )
            try:
                with os.fdopen(fd, 'w') as f:
                    json.dump(storage, f, indent=2)
                os.replace(tmp_path, self.storage_file)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            logger.error(f"Failed to save settings: {e}")
            raise SettingsError(f"Failed to save settings: {e}") from e

        logger.debug("Settings saved successfully")
