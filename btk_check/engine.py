# btk_check/engine.py
"""Block check: normalize, resolve through the regulator resolvers, match sentinels"""

import logging
import time
from datetime import datetime
from typing import Callable, Optional

from twisted.internet import defer
from twisted.python.failure import Failure

from .config import ConfigurationStore
from .constants import EMPTY_DOMAIN_ERROR, QUERY_TIME_FORMAT
from .domain import normalize_domain
from .lookup import LookupOrchestrator, ResolutionError
from .matcher import match_sentinel
from .metrics import MetricsCollector, get_metrics
from .models import CheckResult

logger = logging.getLogger(__name__)


def format_query_time(timestamp: float) -> str:
    """Local wall-clock time with milliseconds, e.g. 14:03:07.251"""
    moment = datetime.fromtimestamp(timestamp)
    return f"{moment.strftime(QUERY_TIME_FORMAT)}.{moment.microsecond // 1000:03d}"


class CheckEngine:
    """Runs one block check per call and always produces a CheckResult"""

    def __init__(
        self,
        store: ConfigurationStore,
        orchestrator: Optional[LookupOrchestrator] = None,
        metrics: Optional[MetricsCollector] = None,
        now: Callable[[], float] = time.time,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.metrics = metrics or get_metrics()
        self.orchestrator = orchestrator or LookupOrchestrator(store, metrics=self.metrics)
        self._now = now
        self._timer = timer

    def check(self, raw_domain: Optional[str]) -> defer.Deferred:
        """
        Check whether a domain resolves to a block page

        Args:
            raw_domain: Domain or URL as supplied by the user, may be empty

        Returns:
            Deferred firing with a CheckResult; it never fails
        """
        d = defer.maybeDeferred(self._check, raw_domain or "")
        d.addErrback(self._internal_error, raw_domain or "")
        return d

    @defer.inlineCallbacks
    def _check(self, raw_domain: str):
        timestamp = int(self._now())

        domain = normalize_domain(raw_domain)
        if not domain:
            self.metrics.record_check("invalid")
            return CheckResult(
                domain=raw_domain,
                timestamp=timestamp,
                success=False,
                error_detail=EMPTY_DOMAIN_ERROR,
            )

        # One snapshot for fallback order, sentinels and location alike
        configuration = self.store.snapshot()
        start = self._timer()

        try:
            resolution = yield self.orchestrator.resolve(domain, configuration)
        except ResolutionError as e:
            elapsed = self._timer() - start
            self.metrics.record_check("failed", elapsed)
            logger.info(f"Check {domain}: {e}")
            return CheckResult(
                domain=domain,
                timestamp=timestamp,
                success=False,
                error_detail=str(e),
                elapsed=elapsed,
                query_time=format_query_time(self._now()),
                location=configuration.location,
            )

        is_blocked, sentinel = match_sentinel(resolution.addresses, configuration.sentinel_ips)
        elapsed = self._timer() - start

        self.metrics.record_check("blocked" if is_blocked else "not_blocked", elapsed)
        logger.info(
            f"Check {domain} via {resolution.resolver_used}: "
            f"{'BLOCKED (' + sentinel + ')' if is_blocked else 'not blocked'} "
            f"({elapsed * 1000:.1f}ms)"
        )

        return CheckResult(
            domain=domain,
            timestamp=timestamp,
            success=True,
            is_blocked=is_blocked,
            resolver_used=resolution.resolver_used,
            resolved_addresses=tuple(resolution.addresses),
            matched_sentinel=sentinel,
            elapsed=elapsed,
            query_time=format_query_time(self._now()),
            location=configuration.location,
        )

    def _internal_error(self, failure: Failure, raw_domain: str) -> CheckResult:
        """Turn an unexpected failure into a failed result"""
        logger.error(f"Unexpected error checking {raw_domain!r}: {failure.getErrorMessage()}")
        logger.error(f"Traceback: {failure.getTraceback()}")
        self.metrics.record_check("failed")
        return CheckResult(
            domain=normalize_domain(raw_domain),
            timestamp=int(self._now()),
            success=False,
            error_detail=f"internal error: {failure.getErrorMessage()}",
        )
