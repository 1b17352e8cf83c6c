#!/usr/bin/env python3
"""Unit tests for ordered resolver fallback"""

from twisted.trial.unittest import SynchronousTestCase

from btk_check.config import Configuration, ConfigurationStore
from btk_check.lookup import (
    LookupOrchestrator,
    NoAddressesError,
    Resolution,
    ResolutionError,
    ResolutionFailedError,
)
from btk_check.resolver import ResolverError
from fakes import FakeResolverClient

A = "10.0.0.1:53"
B = "10.0.0.2:53"
C = "10.0.0.3:53"


def timeout_error(resolver):
    return ResolverError("example.com", resolver, "timeout")


class TestLookupOrchestrator(SynchronousTestCase):
    """Test fallback order and failure reporting"""

    def _orchestrator(self, answers, resolvers=(A, B)):
        store = ConfigurationStore(Configuration(resolvers=resolvers))
        client = FakeResolverClient(answers)
        return LookupOrchestrator(store, client=client, timeout=5.0), client, store

    def test_first_resolver_answers(self):
        orchestrator, client, _ = self._orchestrator({A: ["1.2.3.4"], B: ["5.6.7.8"]})

        result = self.successResultOf(orchestrator.resolve("example.com"))

        self.assertEqual(result, Resolution(["1.2.3.4"], A))
        self.assertEqual([call[1] for call in client.calls], [A])

    def test_falls_back_after_error(self):
        """Second resolver's answer is used when the first fails"""
        orchestrator, client, _ = self._orchestrator({A: timeout_error(A), B: ["5.6.7.8"]})

        result = self.successResultOf(orchestrator.resolve("example.com"))

        self.assertEqual(result.resolver_used, B)
        self.assertEqual(result.addresses, ["5.6.7.8"])
        self.assertEqual([call[1] for call in client.calls], [A, B])

    def test_falls_back_after_empty_answer(self):
        orchestrator, _, _ = self._orchestrator({A: [], B: ["5.6.7.8"]})

        result = self.successResultOf(orchestrator.resolve("example.com"))

        self.assertEqual(result.resolver_used, B)

    def test_timeout_passed_to_client(self):
        orchestrator, client, _ = self._orchestrator({A: ["1.2.3.4"]})

        self.successResultOf(orchestrator.resolve("example.com"))

        self.assertEqual(client.calls, [("example.com", A, 5.0)])

    def test_all_failed_reports_last_error(self):
        orchestrator, _, _ = self._orchestrator(
            {A: timeout_error(A), B: ResolverError("example.com", B, "refused")}
        )

        failure = self.failureResultOf(orchestrator.resolve("example.com"), ResolutionFailedError)

        self.assertEqual(failure.value.last_error.resolver, B)
        self.assertEqual(
            str(failure.value), "DNS resolution failed: lookup example.com on 10.0.0.2:53: refused"
        )

    def test_error_wins_over_empty(self):
        """Any recorded error is reported even if a later resolver answered empty"""
        orchestrator, _, _ = self._orchestrator({A: timeout_error(A), B: []})

        failure = self.failureResultOf(orchestrator.resolve("example.com"), ResolutionFailedError)

        self.assertEqual(failure.value.last_error.resolver, A)

    def test_all_empty_is_distinct(self):
        """Successful but empty answers give NoAddressesError, not a transport failure"""
        orchestrator, _, _ = self._orchestrator({A: [], B: []})

        failure = self.failureResultOf(orchestrator.resolve("example.com"), NoAddressesError)

        self.assertNotIsInstance(failure.value, ResolutionFailedError)
        self.assertIsInstance(failure.value, ResolutionError)
        self.assertEqual(str(failure.value), "DNS resolution failed: no IP addresses found")

    def test_explicit_configuration_used(self):
        """A given snapshot decides the order, not the store"""
        orchestrator, client, store = self._orchestrator(
            {A: ["1.1.1.1"], C: ["3.3.3.3"]}, resolvers=(A,)
        )

        result = self.successResultOf(
            orchestrator.resolve("example.com", Configuration(resolvers=(C, A)))
        )

        self.assertEqual(result.resolver_used, C)
        self.assertEqual(store.snapshot().resolvers, (A,))

    def test_snapshot_taken_once(self):
        """A reload during the lookup does not change the fallback order"""
        store = ConfigurationStore(Configuration(resolvers=(A, B)))

        class ReloadingClient(FakeResolverClient):
            def lookup(self, domain, resolver_addr, timeout=5.0):
                store.reload(Configuration(resolvers=(C,)))
                return super().lookup(domain, resolver_addr, timeout)

        client = ReloadingClient({A: timeout_error(A), B: ["5.6.7.8"], C: ["3.3.3.3"]})
        orchestrator = LookupOrchestrator(store, client=client)

        result = self.successResultOf(orchestrator.resolve("example.com"))

        self.assertEqual(result.resolver_used, B)
        self.assertEqual([call[1] for call in client.calls], [A, B])
