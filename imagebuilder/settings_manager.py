"""
Settings Manager for the image builder
Manages daemon and registry settings stored in JSON file
"""

import json
import os
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

APP_DIR_NAME = 'docker-image-builder'

DEFAULT_SETTINGS = {
    'docker_host': '',
    'registry': '',
    'registry_user': '',
    'registry_password': '',
    'api_version': '1.23',
    'timeout': 60,
    'no_cache': True,
    'force_rm': True,
    'pull': True,
    'tls': False,
    'cert_path': '',
    'log_level': 'INFO',
}

# Environment variables take precedence over the settings file and are never saved
ENV_OVERRIDES = {
    'docker_host': 'DOCKER_HOST',
    'api_version': 'DOCKER_API_VERSION',
    'tls': 'DOCKER_TLS_VERIFY',
    'cert_path': 'DOCKER_CERT_PATH',
    'registry': 'DOCKER_REGISTRY',
    'registry_user': 'DOCKER_REGISTRY_USER',
    'registry_password': 'DOCKER_REGISTRY_PASSWORD',
}


class SettingsManager:
    """Manager for application settings"""

    # User settings file location
    @staticmethod
    def get_user_settings_path() -> str:
        """Get path to user settings file"""
        if os.name == 'nt':  # Windows
            base_dir = os.environ.get('APPDATA', os.path.expanduser('~'))
            data_dir = os.path.join(base_dir, APP_DIR_NAME)
        else:  # macOS, Linux
            data_dir = os.path.join(
                os.environ.get('XDG_DATA_HOME', os.path.expanduser('~/.local/share')),
                APP_DIR_NAME
            )

        os.makedirs(data_dir, exist_ok=True)
        return os.path.join(data_dir, 'settings.json')

    def __init__(self, settings_file: Optional[str] = None):
        """
        Initialize settings manager

        Args:
            settings_file: Explicit settings path (default: per-user data dir)
        """
        self.settings_file = settings_file or self.get_user_settings_path()
        self.settings: Dict[str, Any] = {}

        self.load()

    def load(self):
        """Load settings from user file"""
        try:
            if os.path.exists(self.settings_file):
                with open(self.settings_file, 'r', encoding='utf-8') as f:
                    loaded_settings = json.load(f)

                # User settings override defaults
                self.settings = DEFAULT_SETTINGS.copy()
                self.settings.update(loaded_settings)

                logger.debug(f"Settings loaded from {self.settings_file}")
            else:
                self.settings = DEFAULT_SETTINGS.copy()
                logger.debug("Using default settings")

                # Save defaults to user file
                self.save()

        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Error loading settings: {e}")
            self.settings = DEFAULT_SETTINGS.copy()

    def save(self) -> bool:
        """Save settings to file"""
        try:
            directory = os.path.dirname(self.settings_file)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.settings_file, 'w', encoding='utf-8') as f:
                json.dump(self.settings, f, indent=4, ensure_ascii=False)

            logger.debug(f"Settings saved to {self.settings_file}")
            return True

        except OSError as e:
            logger.error(f"Error saving settings: {e}")
            return False

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get setting value

        Args:
            key: Setting key
            default: Default value if key not found

        Returns:
            Environment override if set, otherwise the stored value
        """
        env_name = ENV_OVERRIDES.get(key)
        if env_name:
            env_value = os.environ.get(env_name)
            if env_value:
                if isinstance(DEFAULT_SETTINGS.get(key), bool):
                    return env_value.lower() not in ('0', 'false', 'no')
                return env_value
        return self.settings.get(key, default)

    def set(self, key: str, value: Any, save: bool = True):
        """
        Set setting value

        Args:
            key: Setting key
            value: Setting value
            save: Save to file immediately
        """
        self.settings[key] = value

        if save:
            self.save()

    def update(self, settings_dict: Dict[str, Any], save: bool = True):
        """
        Update multiple settings

        Args:
            settings_dict: Dictionary of settings to update
            save: Save to file immediately
        """
        self.settings.update(settings_dict)

        if save:
            self.save()

    def reset_to_defaults(self, save: bool = True):
        """
        Reset all settings to defaults

        Args:
            save: Save to file immediately
        """
        self.settings = DEFAULT_SETTINGS.copy()

        if save:
            self.save()
            logger.info("Settings reset to defaults")

    def get_all(self) -> Dict[str, Any]:
        """Get all settings, environment overrides applied"""
        return {key: self.get(key) for key in self.settings}
