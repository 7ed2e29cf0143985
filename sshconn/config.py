"""
Configuration Manager for ssh-conn
Handles application settings and preferences
"""

import copy
import json
import logging
import os
from typing import Any, Dict, Optional, Tuple

from .platform_utils import get_config_dir, get_default_ssh_config_path

logger = logging.getLogger(__name__)

# Increment this whenever the configuration format changes
CONFIG_VERSION = 1


class Config:
    """Configuration manager for ssh-conn"""

    def __init__(self, config_file: Optional[str] = None):
        self.config_file = config_file or os.path.join(get_config_dir(), 'config.json')
        self.config_data = self.load_json_config()

    def load_json_config(self) -> Dict[str, Any]:
        """Load configuration from JSON file"""
        try:
            if os.path.exists(self.config_file):
                with open(self.config_file, 'r', encoding='utf-8') as f:
                    config = json.load(f)
                if not isinstance(config, dict):
                    raise ValueError("top-level JSON value is not an object")

                # Purge outdated configurations
                stored_version = config.get('config_version', 0)
                if not isinstance(stored_version, int) or stored_version < CONFIG_VERSION:
                    backup_file = f"{self.config_file}.bak"
                    try:
                        os.replace(self.config_file, backup_file)
                        logger.warning(
                            "Outdated config version %s detected; backing up to %s and regenerating defaults",
                            stored_version,
                            backup_file,
                        )
                    except OSError:
                        logger.warning(
                            "Outdated config version %s detected; regenerating defaults",
                            stored_version,
                        )
                    config = self.get_default_config()
                    self.save_json_config(config)
                else:
                    config, updated = self._ensure_config_defaults(config)
                    if updated:
                        self.save_json_config(config)
                return config
            else:
                # Create default config
                default_config = self.get_default_config()
                self.save_json_config(default_config)
                return default_config
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load JSON config: {e}")
            return self.get_default_config()

    def save_json_config(self, config_data: Dict[str, Any] = None):
        """Save configuration to JSON file"""
        if config_data is None:
            config_data = self.config_data
        try:
            os.makedirs(os.path.dirname(self.config_file), exist_ok=True)
            with open(self.config_file, 'w', encoding='utf-8') as f:
                json.dump(config_data, f, indent=2)
            logger.debug("Configuration saved to JSON file")
        except OSError as e:
            logger.error(f"Failed to save JSON config: {e}")

    def get_default_config(self) -> Dict[str, Any]:
        """Get default configuration values"""
        return {
            'config_version': CONFIG_VERSION,
            'ssh': {
                'config_path': None,  # None means <ssh dir>/config
                'known_hosts_path': None,
                'strict_host_key_checking': 'accept-new',
                'connect_timeout': None,
            },
            'probe': {
                'timeout': 5,
                'concurrency': 16,
            },
            'connect': {
                'fallback_to_standard': True,
                'foreground_exec': False,
            },
            'credentials': {
                'service_name': 'ssh-conn',
            },
            'logging': {
                'debug': False,
            },
        }

    def _ensure_config_defaults(self, config: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
        """Ensure newly added keys exist in the provided config dict."""
        updated = False
        for section, defaults in self.get_default_config().items():
            if not isinstance(defaults, dict):
                continue
            current = config.get(section)
            if not isinstance(current, dict):
                config[section] = copy.deepcopy(defaults)
                updated = True
                continue
            for key, value in defaults.items():
                if key not in current:
                    current[key] = value
                    updated = True
        return config, updated

    def get_setting(self, key: str, default=None):
        """Get a setting value"""
        # Navigate nested dictionary
        value = self.config_data
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set_setting(self, key: str, value: Any):
        """Set a setting value"""
        keys = key.split('.')
        current = self.config_data
        for k in keys[:-1]:
            if k not in current or not isinstance(current[k], dict):
                current[k] = {}
            current = current[k]
        current[keys[-1]] = value
        self.save_json_config()
        logger.debug(f"Setting {key} = {value}")

    def get_ssh_config_path(self, override: Optional[str] = None) -> str:
        """Return the SSH config file to manage.

        Precedence: *override* (``--config``), ``ssh.config_path``, then
        ``<ssh dir>/config``.
        """
        path = override or self.get_setting('ssh.config_path') or get_default_ssh_config_path()
        return os.path.abspath(os.path.expanduser(path))

    def get_known_hosts_path(self) -> Optional[str]:
        path = self.get_setting('ssh.known_hosts_path')
        if not path:
            return None
        return os.path.abspath(os.path.expanduser(path))

    def reset_to_defaults(self):
        """Reset all settings to defaults"""
        self.config_data = self.get_default_config()
        self.save_json_config()
        logger.info("Configuration reset to defaults")
