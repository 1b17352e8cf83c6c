import configparser
import logging
import os
from typing import Any, Optional

from .constants import (
    API_DEFAULT_ADDRESS,
    API_DEFAULT_PORT,
    CONFIG_POLL_INTERVAL,
    DEFAULT_ENV_FILE,
    DNS_QUERY_TIMEOUT,
)

logger = logging.getLogger(__name__)


class SettingsError(Exception):
    """Settings file could not be read"""

    pass


class ServiceSettings:
    """Service settings manager (listen address, logging, timeouts)"""

    DEFAULT_CONFIG_PATH = "/etc/btk-check/btk-check.cfg"
    DEFAULT_CONFIG = {
        "api": {
            "listen-port": str(API_DEFAULT_PORT),
            "listen-address": API_DEFAULT_ADDRESS,
        },
        "check": {
            "env-file": DEFAULT_ENV_FILE,
            "poll-interval": str(CONFIG_POLL_INTERVAL),
            "query-timeout": str(DNS_QUERY_TIMEOUT),
        },
        "metrics": {
            "enabled": "true",
        },
        "log-file": {
            "log-file": "none",
            "debug-level": "INFO",
            "syslog": "false",
        },
    }

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or self.DEFAULT_CONFIG_PATH
        self.config = configparser.ConfigParser()
        self._load_defaults()
        self._load_config()

    def _load_defaults(self):
        """Load default configuration"""
        for section, options in self.DEFAULT_CONFIG.items():
            self.config.add_section(section)
            for key, value in options.items():
                self.config.set(section, key, value)

    def _load_config(self):
        """Load configuration from file"""
        if os.path.exists(self.config_path):
            try:
                self.config.read(self.config_path)
            except configparser.Error as e:
                raise SettingsError(f"Error reading config file {self.config_path}: {e}")
        else:
            logger.warning(f"Config file {self.config_path} not found, using defaults")

    def get(self, section: str, option: str, fallback: Any = None) -> str:
        """Get configuration value"""
        try:
            return self.config.get(section, option)
        except (configparser.NoSectionError, configparser.NoOptionError):
            return fallback

    def getint(self, section: str, option: str, fallback: int = 0) -> int:
        """Get integer configuration value"""
        try:
            return self.config.getint(section, option)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return fallback

    def getfloat(self, section: str, option: str, fallback: float = 0.0) -> float:
        """Get float configuration value"""
        try:
            return self.config.getfloat(section, option)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return fallback

    def getboolean(self, section: str, option: str, fallback: bool = False) -> bool:
        """Get boolean configuration value"""
        try:
            return self.config.getboolean(section, option)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return fallback

    @property
    def listen_port(self) -> int:
        return self.getint("api", "listen-port", API_DEFAULT_PORT)

    @property
    def listen_address(self) -> str:
        return self.get("api", "listen-address", API_DEFAULT_ADDRESS)

    @property
    def env_file(self) -> str:
        return self.get("check", "env-file", DEFAULT_ENV_FILE)

    @property
    def poll_interval(self) -> float:
        return self.getfloat("check", "poll-interval", CONFIG_POLL_INTERVAL)

    @property
    def query_timeout(self) -> float:
        return self.getfloat("check", "query-timeout", DNS_QUERY_TIMEOUT)

    @property
    def metrics_enabled(self) -> bool:
        return self.getboolean("metrics", "enabled", True)
