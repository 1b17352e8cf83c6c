# btk_check/resolver.py
"""Single host-address lookup against one specific DNS resolver"""

import logging
import socket
from typing import Callable, List, Optional

from twisted.internet import defer
from twisted.internet import error as internet_error
from twisted.internet.abstract import isIPAddress, isIPv6Address
from twisted.names import client, dns, error

from .config import split_endpoint
from .constants import DNS_QUERY_TIMEOUT

logger = logging.getLogger(__name__)


class ResolverError(Exception):
    """A resolver gave no usable answer"""

    def __init__(self, domain: str, resolver: str, reason: str, cause: Optional[Exception] = None):
        self.domain = domain
        self.resolver = resolver
        self.reason = reason
        self.cause = cause
        super().__init__(f"lookup {domain} on {resolver}: {reason}")


def describe_failure(exc: Exception) -> str:
    """Short reason for a failed DNS query"""
    if isinstance(exc, defer.TimeoutError):
        return "timeout"
    if isinstance(exc, error.DNSNameError):
        return "no such host"
    if isinstance(exc, error.DNSQueryRefusedError):
        return "refused"
    if isinstance(exc, error.DNSServerError):
        return "server failure"
    if isinstance(exc, error.DNSFormatError):
        return "malformed response"
    if isinstance(exc, UnicodeError):
        return "malformed domain"
    return str(exc) or exc.__class__.__name__


def extract_addresses(answers: List[dns.RRHeader]) -> List[str]:
    """Return A and AAAA addresses from answer records, in answer order"""
    addresses = []
    for rr in answers:
        if rr.type == dns.A:
            addresses.append(rr.payload.dottedQuad())
        elif rr.type == dns.AAAA:
            addresses.append(socket.inet_ntop(socket.AF_INET6, rr.payload.address))
    return addresses


class ResolverClient:
    """
    Resolves a host name through one named resolver

    Each lookup sends the A and AAAA questions together over UDP and waits
    at most `timeout` seconds for both. The client never retries; falling
    back to another resolver is the caller's job. Resolver endpoints given
    by host name are resolved to an address first.
    """

    def __init__(
        self,
        resolver_factory: Callable[..., client.Resolver] = client.Resolver,
        host_resolver: Optional[Callable[[str], defer.Deferred]] = None,
    ):
        self._resolver_factory = resolver_factory
        if host_resolver is None:
            from twisted.internet import reactor

            host_resolver = reactor.resolve
        self._host_resolver = host_resolver

    @defer.inlineCallbacks
    def lookup(self, domain: str, resolver_addr: str, timeout: float = DNS_QUERY_TIMEOUT):
        """
        Look up the addresses of a domain

        Args:
            domain: Canonical domain name
            resolver_addr: Resolver endpoint as host:port
            timeout: Seconds to wait for the resolver

        Returns:
            Deferred firing with the list of address strings (possibly empty),
            or failing with ResolverError
        """
        # Literal addresses need no resolution
        if isIPAddress(domain) or isIPv6Address(domain):
            return [domain]

        try:
            host, port = split_endpoint(resolver_addr)
        except ValueError as e:
            raise ResolverError(domain, resolver_addr, "invalid resolver address", e)

        if not (isIPAddress(host) or isIPv6Address(host)):
            try:
                host = yield self._host_resolver(host)
            except (internet_error.DNSLookupError, defer.TimeoutError) as e:
                raise ResolverError(domain, resolver_addr, "cannot resolve resolver host", e)

        resolver = self._resolver_factory(servers=[(host, port)])
        timeouts = (timeout,)  # Twisted expects tuple, one entry means no retry

        logger.debug(f"Querying {resolver_addr} for {domain} (timeout {timeout}s)")

        try:
            queries = [
                resolver.lookupAddress(domain, timeouts),
                resolver.lookupIPV6Address(domain, timeouts),
            ]
        except UnicodeError as e:
            # Empty or over-long labels fail IDNA encoding before anything is sent
            raise ResolverError(domain, resolver_addr, "malformed domain", e)

        results = yield defer.DeferredList(queries, consumeErrors=True)
        return self._collect_addresses(results, domain, resolver_addr)

    def _collect_addresses(self, results, domain: str, resolver_addr: str) -> List[str]:
        """Merge the A and AAAA answers or raise the first failure"""
        addresses = []
        failures = []

        for succeeded, value in results:
            if succeeded:
                answers, _authority, _additional = value
                addresses.extend(extract_addresses(answers))
            else:
                failures.append(value)

        if addresses:
            logger.debug(f"{resolver_addr} answered {domain}: {', '.join(addresses)}")
            return addresses

        if failures:
            cause = failures[0].value
            reason = describe_failure(cause)
            logger.debug(f"{resolver_addr} failed for {domain}: {reason}")
            raise ResolverError(domain, resolver_addr, reason, cause)

        logger.debug(f"{resolver_addr} returned no addresses for {domain}")
        return addresses
