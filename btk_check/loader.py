# btk_check/loader.py
"""Load the check configuration from .env and reload it when the file changes"""

import logging
import os
from typing import Dict, Mapping, Optional

from dotenv import dotenv_values
from twisted.internet import task

from .config import (
    ConfigRejectedError,
    Configuration,
    ConfigurationStore,
    parse_comma_separated,
    parse_location,
    parse_resolvers,
)
from .constants import (
    CONFIG_POLL_INTERVAL,
    DEFAULT_ENV_FILE,
    DEFAULT_RESOLVERS,
    DEFAULT_SENTINEL_IPS,
    ENV_LOCATION,
    ENV_RESOLVERS,
    ENV_SENTINEL_IPS,
)
from .metrics import MetricsCollector, get_metrics
from .version import __version__

logger = logging.getLogger(__name__)


def log_configuration(configuration: Configuration):
    """Log the values a configuration carries"""
    logger.info(f"  DNS servers: {', '.join(configuration.resolvers)}")
    logger.info(f"  Blocked IPs: {', '.join(configuration.sentinel_ips)}")
    logger.info(f"  Server location: {configuration.location}")


class EnvConfigLoader:
    """
    Builds a Configuration from a .env file layered over the environment

    Values in the file win over the process environment, so editing the
    file is enough to change a running service. Missing or blank variables
    fall back to the built-in defaults.
    """

    def __init__(
        self, env_file: str = DEFAULT_ENV_FILE, environ: Optional[Mapping[str, str]] = None
    ):
        self.env_file = env_file
        self._environ = os.environ if environ is None else environ

    def read_values(self) -> Dict[str, str]:
        """Merged variables from the environment and the .env file"""
        values = dict(self._environ)
        if os.path.exists(self.env_file):
            file_values = dotenv_values(self.env_file)
            values.update({key: value for key, value in file_values.items() if value is not None})
        return values

    def load(self) -> Configuration:
        """
        Parse the current source into a Configuration

        Raises:
            ConfigRejectedError: If the resolver variable is set but holds
                no usable entry
        """
        values = self.read_values()

        resolvers_value = values.get(ENV_RESOLVERS, "")
        if resolvers_value.strip():
            resolvers = parse_resolvers(resolvers_value)
            if not resolvers:
                raise ConfigRejectedError(f"{ENV_RESOLVERS} contains no resolver entries")
        else:
            resolvers = list(DEFAULT_RESOLVERS)

        sentinel_ips = parse_comma_separated(values.get(ENV_SENTINEL_IPS))
        if not sentinel_ips:
            sentinel_ips = list(DEFAULT_SENTINEL_IPS)

        return Configuration(
            resolvers=tuple(resolvers),
            sentinel_ips=tuple(sentinel_ips),
            location=parse_location(values.get(ENV_LOCATION)),
        )


class ConfigWatcher:
    """Polls the .env file using Twisted's task.LoopingCall and reloads on change"""

    def __init__(
        self,
        store: ConfigurationStore,
        loader: EnvConfigLoader,
        interval: float = CONFIG_POLL_INTERVAL,
        clock=None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = store
        self.loader = loader
        self.interval = interval
        self.clock = clock
        self.metrics = metrics or get_metrics()
        self._loop: Optional[task.LoopingCall] = None
        self._last_mtime: Optional[float] = None

    @property
    def running(self) -> bool:
        return self._loop is not None and self._loop.running

    def start(self):
        """Remember the current modification time and start polling"""
        if self.running:
            logger.warning("Config watcher already started")
            return

        self._last_mtime = self._current_mtime()

        self._loop = task.LoopingCall(self.poll)
        if self.clock is not None:
            self._loop.clock = self.clock
        self._loop.start(self.interval, now=False)

        logger.info(f"Watching {self.loader.env_file} for changes (every {self.interval}s)")

    def stop(self):
        """Stop polling"""
        if self.running:
            self._loop.stop()
            logger.info("Stopped config watcher")

    def _current_mtime(self) -> Optional[float]:
        try:
            return os.stat(self.loader.env_file).st_mtime
        except OSError:
            return None

    def poll(self) -> bool:
        """
        Reload when the file is newer than the last one seen (called by LoopingCall)

        Never raises, so one bad tick cannot stop the loop.

        Returns:
            True if a new configuration was applied
        """
        try:
            return self._poll()
        except Exception as e:
            logger.error(f"Config poll error for {self.loader.env_file}: {e}", exc_info=True)
            return False

    def _poll(self) -> bool:
        mtime = self._current_mtime()
        if mtime is None:
            return False
        if self._last_mtime is not None and mtime <= self._last_mtime:
            return False

        self._last_mtime = mtime
        logger.info(f"{self.loader.env_file} changed, reloading configuration")
        return self.apply()

    def apply(self) -> bool:
        """Load the source and hand it to the store, keeping the old one on failure"""
        try:
            configuration = self.loader.load()
            self.store.reload(configuration)
        except ConfigRejectedError as e:
            self.metrics.record_config_reload("rejected")
            logger.warning(f"Configuration rejected, keeping previous: {e}")
            return False
        except OSError as e:
            self.metrics.record_config_reload("rejected")
            logger.error(f"Could not read {self.loader.env_file}: {e}")
            return False
        except ValueError as e:
            # Includes UnicodeDecodeError from a file that is not UTF-8
            self.metrics.record_config_reload("rejected")
            logger.error(f"Could not parse {self.loader.env_file}: {e}")
            return False

        self.metrics.record_config_reload("applied")
        self.metrics.set_info(__version__, configuration.location)
        logger.info("Configuration updated:")
        log_configuration(configuration)
        return True
