"""
Configuration Manager for application settings
"""

import os
import yaml
from pathlib import Path
from typing import Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)

ENV_API_URL = 'VPN_ORCHESTRATOR_API_URL'
ENV_ACCESS_TOKEN = 'VPN_ORCHESTRATOR_TOKEN'


class ConfigManager:
    """Manage the orchestrator configuration file"""

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Initialize configuration manager

        Args:
            config_dir: Directory for configuration files
        """
        if config_dir is None:
            self.config_dir = Path.home() / '.config' / 'vpn-orchestrator'
        else:
            self.config_dir = Path(config_dir)

        self.config_dir.mkdir(parents=True, exist_ok=True)

        self.config_file = self.config_dir / 'config.yaml'

        # Default settings
        self.default_settings = {
            'api': {
                'url': 'http://localhost:8080',
                'timeout': 10,
                'access_token': None
            },
            'telemetry': {
                'stats_interval': 2.0,
                'timer_interval': 1.0
            },
            'storage_file': str(self.config_dir / 'storage.json'),
            'logging': {
                'level': 'INFO',
                'file': str(self.config_dir / 'logs' / 'vpn_orchestrator.log')
            }
        }

        self.settings = self.load_settings()
        self._apply_environment()

    def load_settings(self) -> Dict:
        """Load settings from file or create default"""
        if self.config_file.exists():
            try:
                with open(self.config_file, 'r') as f:
                    settings = yaml.safe_load(f) or {}

                # Merge with defaults to ensure all keys exist
                merged = self._deep_merge(self.default_settings, settings)
                logger.debug("Configuration loaded successfully")
                return merged

            except (OSError, yaml.YAMLError) as e:
                logger.error(f"Failed to load configuration: {e}")
                logger.info("Using default configuration")
                return self._deep_merge(self.default_settings, {})
        else:
            settings = self._deep_merge(self.default_settings, {})
            self.save_settings(settings)
            return settings

    def save_settings(self, settings: Optional[Dict] = None):
        """Save settings to file"""
        if settings is None:
            settings = self.settings

        try:
            with open(self.config_file, 'w') as f:
                yaml.safe_dump(settings, f, default_flow_style=False, sort_keys=False)

            self.settings = settings
            logger.debug("Configuration saved successfully")

        except OSError as e:
            logger.error(f"Failed to save configuration: {e}")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get setting value using dot notation

        Args:
            key: Setting key (e.g., 'api.timeout')
            default: Default value if key not found
        """
        keys = key.split('.')
        value = self.settings

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any):
        """
        Set setting value using dot notation

        Args:
            key: Setting key (e.g., 'telemetry.stats_interval')
            value: Value to set
        """
        keys = key.split('.')
        settings = self.settings

        for k in keys[:-1]:
            if not isinstance(settings.get(k), dict):
                settings[k] = {}
            settings = settings[k]

        settings[keys[-1]] = value
        self.save_settings()

    @property
    def api_url(self) -> str:
        return str(self.get('api.url')).rstrip('/')

    @property
    def api_timeout(self) -> float:
        return float(self.get('api.timeout', 10))

    @property
    def access_token(self) -> Optional[str]:
        return self.get('api.access_token')

    @property
    def stats_interval(self) -> float:
        return float(self.get('telemetry.stats_interval', 2.0))

    @property
    def timer_interval(self) -> float:
        return float(self.get('telemetry.timer_interval', 1.0))

    @property
    def storage_file(self) -> Path:
        return Path(self.get('storage_file')).expanduser()

    def _apply_environment(self):
        """Environment variables win over the file, without being saved"""
        api_url = os.environ.get(ENV_API_URL)
        if api_url:
            self.settings['api']['url'] = api_url

        token = os.environ.get(ENV_ACCESS_TOKEN)
        if token:
            self.settings['api']['access_token'] = token

    @staticmethod
    def _deep_merge(base: Dict, update: Dict) -> Dict:
        """Deep merge two dictionaries"""
        result = {}
        for key, value in base.items():
            result[key] = (
                ConfigManager._deep_merge(value, {}) if isinstance(value, dict) else value
            )

        for key, value in update.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = ConfigManager._deep_merge(result[key], value)
            else:
                result[key] = value

        return result
