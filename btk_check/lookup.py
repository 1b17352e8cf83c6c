# btk_check/lookup.py
"""Ordered resolver fallback"""

import logging
from typing import List, NamedTuple, Optional

from twisted.internet import defer

from .config import Configuration, ConfigurationStore
from .constants import DNS_QUERY_TIMEOUT
from .metrics import MetricsCollector, get_metrics
from .resolver import ResolverClient, ResolverError

logger = logging.getLogger(__name__)


class Resolution(NamedTuple):
    """Addresses returned by the first resolver that answered"""

    addresses: List[str]
    resolver_used: str


class ResolutionError(Exception):
    """No configured resolver produced addresses"""

    pass


class ResolutionFailedError(ResolutionError):
    """At least one resolver failed; carries the last failure"""

    def __init__(self, last_error: Exception):
        self.last_error = last_error
        super().__init__(f"DNS resolution failed: {last_error}")


class NoAddressesError(ResolutionError):
    """Every resolver answered, but none with an address"""

    def __init__(self):
        super().__init__("DNS resolution failed: no IP addresses found")


class LookupOrchestrator:
    """
    Tries the configured resolvers one after another

    Resolvers are queried sequentially in configuration order and the first
    non-empty answer is trusted. The resolver list is read once per call, so
    a reload in the middle of a lookup does not change its fallback order.
    Worst case latency is len(resolvers) * timeout.
    """

    def __init__(
        self,
        store: ConfigurationStore,
        client: Optional[ResolverClient] = None,
        timeout: float = DNS_QUERY_TIMEOUT,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = store
        self.client = client or ResolverClient()
        self.timeout = timeout
        self.metrics = metrics or get_metrics()

    @defer.inlineCallbacks
    def resolve(self, domain: str, configuration: Optional[Configuration] = None):
        """
        Resolve a domain through the configured resolvers

        Args:
            domain: Canonical domain name
            configuration: Snapshot to use; taken from the store when omitted

        Returns:
            Deferred firing with a Resolution, or failing with
            ResolutionFailedError / NoAddressesError
        """
        if configuration is None:
            configuration = self.store.snapshot()
        resolvers = list(configuration.resolvers)

        last_error: Optional[Exception] = None

        for resolver_addr in resolvers:
            try:
                addresses = yield self.client.lookup(domain, resolver_addr, self.timeout)
            except ResolverError as e:
                last_error = e
                self.metrics.record_resolver_attempt(resolver_addr, "error")
                logger.debug(f"{resolver_addr} failed for {domain}, trying next: {e.reason}")
                continue

            if not addresses:
                self.metrics.record_resolver_attempt(resolver_addr, "empty")
                logger.debug(f"{resolver_addr} had no addresses for {domain}, trying next")
                continue

            self.metrics.record_resolver_attempt(resolver_addr, "success")
            return Resolution(list(addresses), resolver_addr)

        if last_error is not None:
            raise ResolutionFailedError(last_error)
        raise NoAddressesError()
