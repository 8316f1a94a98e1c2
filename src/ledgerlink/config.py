"""
Configuration management for the ledger client.

Settings come from a configuration file or environment variables: the
remote service URL, storage location, polling periods and notification
timeouts.
"""

import configparser
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "LEDGERLINK_"


class ClientConfig:
    """Client configuration manager"""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to config file (default: ~/.ledgerlink/ledgerlink.conf)
        """
        if config_path is None:
            config_dir = Path.home() / ".ledgerlink"
            config_path = config_dir / "ledgerlink.conf"

        self.config_path = Path(config_path)
        self.config = configparser.ConfigParser()

        # Default values
        self.defaults = {
            'api_url': 'http://localhost:3001/api',
            'datadir': str(Path.home() / ".ledgerlink"),
            'store': 'leveldb',
            'request_timeout': '10',
            'chain_interval': '30',
            'balance_interval': '60',
            'pending_interval': '10',
            'error_timeout': '6',
            'success_timeout': '4',
            'persist_debounce': '0.5',
            'host': '127.0.0.1',
            'port': '8787',
            'debug': '0',
            'logtimestamps': '1',
        }

        # Load config if exists
        if self.config_path.exists():
            try:
                self.config.read(self.config_path)
            except configparser.Error as e:
                logger.warning(f"Error reading config file {self.config_path}: {e}")

    def get(self, key: str, section: Optional[str] = None) -> Optional[str]:
        """
        Get config value.

        Priority order:
        1. Environment variable (LEDGERLINK_<KEY>)
        2. Config file value (given section, then DEFAULT, then any section)
        3. Default value

        Args:
            key: Config key
            section: Config section to look in first

        Returns:
            Config value or default
        """
        env_value = os.environ.get(f"{ENV_PREFIX}{key.upper()}")
        if env_value:
            return env_value

        if section and self.config.has_option(section, key):
            return self.config.get(section, key)
        if key in self.config.defaults():
            return self.config.defaults()[key]
        for name in self.config.sections():
            if self.config.has_option(name, key):
                return self.config.get(name, key)

        return self.defaults.get(key)

    def getint(self, key: str, section: Optional[str] = None) -> int:
        """
        Get config value as integer.

        Falls back to the default when the value is not a valid integer.
        """
        value = self.get(key, section)
        try:
            return int(value)
        except (TypeError, ValueError):
            try:
                return int(self.defaults.get(key, '0'))
            except ValueError:
                return 0

    def getfloat(self, key: str, section: Optional[str] = None) -> float:
        """Get config value as float, falling back to the default."""
        value = self.get(key, section)
        try:
            return float(value)
        except (TypeError, ValueError):
            try:
                return float(self.defaults.get(key, '0'))
            except ValueError:
                return 0.0

    def getboolean(self, key: str, section: Optional[str] = None) -> bool:
        """Get config value as boolean."""
        value = self.get(key, section)
        if value is None:
            return False
        return value.lower() in ('1', 'true', 'yes', 'on')

    @property
    def datadir(self) -> Path:
        return Path(self.get('datadir')).expanduser()

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert config to dictionary.

        Returns:
            Dictionary with all configuration values
        """
        return {
            'api_url': self.get('api_url'),
            'datadir': str(self.datadir),
            'store': self.get('store'),
            'request_timeout': self.getfloat('request_timeout'),
            'chain_interval': self.getfloat('chain_interval'),
            'balance_interval': self.getfloat('balance_interval'),
            'pending_interval': self.getfloat('pending_interval'),
            'error_timeout': self.getfloat('error_timeout'),
            'success_timeout': self.getfloat('success_timeout'),
            'persist_debounce': self.getfloat('persist_debounce'),
            'host': self.get('host'),
            'port': self.getint('port'),
            'debug': self.getboolean('debug'),
            'log_timestamps': self.getboolean('logtimestamps'),
        }
