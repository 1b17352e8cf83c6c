# btk_check/config.py
"""Hot-reloadable check configuration: resolvers, sentinel IPs and location"""

import logging
import re
import threading
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .constants import (
    DEFAULT_LOCATION,
    DEFAULT_RESOLVERS,
    DEFAULT_SENTINEL_IPS,
    DNS_DEFAULT_PORT,
)

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s")


class ConfigRejectedError(Exception):
    """A new configuration was refused; the previous one stays active"""

    pass


@dataclass(frozen=True)
class Configuration:
    """Immutable set of values a check reads from"""

    resolvers: Tuple[str, ...] = DEFAULT_RESOLVERS
    sentinel_ips: Tuple[str, ...] = DEFAULT_SENTINEL_IPS
    location: str = DEFAULT_LOCATION

    def __post_init__(self):
        # Accept lists from callers but always store tuples
        object.__setattr__(self, "resolvers", tuple(self.resolvers))
        object.__setattr__(self, "sentinel_ips", tuple(self.sentinel_ips))

    def to_dict(self) -> dict:
        return {
            "dns_servers": list(self.resolvers),
            "blocked_ips": list(self.sentinel_ips),
            "server_location": self.location,
        }


def parse_comma_separated(value: Optional[str]) -> List[str]:
    """Split a comma separated string, trimming entries and dropping empty ones"""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def split_endpoint(endpoint: str, default_port: int = DNS_DEFAULT_PORT) -> Tuple[str, int]:
    """
    Split a resolver endpoint into host and port

    Handles:
    - IPv4 or hostname: 195.175.39.39 or 195.175.39.39:53
    - IPv6: 2a01:358::1 or [2a01:358::1]:53

    Args:
        endpoint: Endpoint string
        default_port: Port used when the endpoint has none

    Returns:
        Tuple of (host, port)

    Raises:
        ValueError: If the port is not a number
    """
    endpoint = endpoint.strip()

    # IPv6 with brackets, optionally with port
    if endpoint.startswith("["):
        bracket_end = endpoint.index("]")
        host = endpoint[1:bracket_end]
        rest = endpoint[bracket_end + 1:]
        if rest.startswith(":"):
            return host, int(rest[1:])
        return host, default_port

    # Bare IPv6 literal, never carries a port
    if endpoint.count(":") > 1:
        return endpoint, default_port

    if ":" in endpoint:
        host, port = endpoint.rsplit(":", 1)
        return host, int(port)

    return endpoint, default_port


def format_endpoint(host: str, port: int) -> str:
    """Join host and port, bracketing IPv6 hosts"""
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def parse_resolvers(value: Optional[str], default_port: int = DNS_DEFAULT_PORT) -> List[str]:
    """
    Parse a comma separated resolver list into host:port endpoints

    Entries without a port are given the default DNS port.

    Raises:
        ConfigRejectedError: If an entry has an invalid port
    """
    resolvers = []
    for entry in parse_comma_separated(value):
        try:
            host, port = split_endpoint(entry, default_port)
        except ValueError:
            raise ConfigRejectedError(f"Invalid resolver entry: {entry!r}")
        resolvers.append(format_endpoint(host, port))
    return resolvers


def parse_location(value: Optional[str]) -> str:
    """Trim the location label and replace inner whitespace with underscores"""
    if not value or not value.strip():
        return DEFAULT_LOCATION
    return _WHITESPACE.sub("_", value.strip())


class ConfigurationStore:
    """
    Holder of the current Configuration

    Readers get the current immutable Configuration without taking a lock;
    reload() swaps the whole value in a single reference assignment, so a
    reader sees either the old or the new configuration, never a mix.
    Writers are serialized among themselves.
    """

    def __init__(self, initial: Optional[Configuration] = None):
        self._current = initial or Configuration()
        self._write_lock = threading.Lock()
        self._generation = 0

    def snapshot(self) -> Configuration:
        """Return the configuration active right now"""
        return self._current

    @property
    def generation(self) -> int:
        """Number of reloads applied since start"""
        return self._generation

    def reload(self, new: Configuration) -> Configuration:
        """
        Replace the whole configuration

        Args:
            new: Fully parsed configuration

        Returns:
            The configuration that was active before the reload

        Raises:
            ConfigRejectedError: If the new configuration has no resolvers
        """
        if not new.resolvers:
            raise ConfigRejectedError("Resolver list is empty")

        with self._write_lock:
            previous = self._current
            self._current = new
            self._generation += 1

        logger.debug(f"Configuration generation {self._generation} applied")
        return previous

