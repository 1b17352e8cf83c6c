# btk_check/metrics.py
"""
BTK Check Metrics Collection Module

Provides Prometheus-compatible metrics for monitoring block checks,
resolver behaviour and configuration reloads.
"""

import logging
import time
from typing import Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, Info
from prometheus_client.twisted import MetricsResource
from twisted.web.resource import Resource

logger = logging.getLogger(__name__)

# Constants for metrics
METRIC_NAMESPACE = "btk_check"
LATENCY_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)


class MetricsCollector:
    """Centralized metrics collection for the check service"""

    def __init__(self, enabled: bool = True, registry: CollectorRegistry = REGISTRY):
        self.enabled = enabled
        self.registry = registry
        self._start_time = time.time()

        if not self.enabled:
            logger.info("Metrics collection disabled")
            return

        self._init_check_metrics()
        self._init_resolver_metrics()
        self._init_config_metrics()
        self._init_system_metrics()

        logger.info("Metrics collector initialized")

    def _init_check_metrics(self):
        """Initialize block check metrics"""
        self.checks_total = Counter(
            f"{METRIC_NAMESPACE}_checks_total",
            "Total number of domain checks",
            ["result"],
            registry=self.registry,
        )

        self.check_duration = Histogram(
            f"{METRIC_NAMESPACE}_check_duration_seconds",
            "Time spent resolving a domain across all resolvers",
            buckets=LATENCY_BUCKETS,
            registry=self.registry,
        )

    def _init_resolver_metrics(self):
        """Initialize per-resolver metrics"""
        self.resolver_attempts = Counter(
            f"{METRIC_NAMESPACE}_resolver_attempts_total",
            "Lookups sent to each resolver by outcome",
            ["resolver", "outcome"],
            registry=self.registry,
        )

    def _init_config_metrics(self):
        """Initialize configuration reload metrics"""
        self.config_reloads = Counter(
            f"{METRIC_NAMESPACE}_config_reloads_total",
            "Configuration reloads by result",
            ["result"],
            registry=self.registry,
        )

    def _init_system_metrics(self):
        """Initialize system metrics"""
        self.info = Info(
            f"{METRIC_NAMESPACE}_info", "Service version and location", registry=self.registry
        )

        self.uptime_seconds = Gauge(
            f"{METRIC_NAMESPACE}_uptime_seconds",
            "Time since the service started in seconds",
            registry=self.registry,
        )
        self.uptime_seconds.set_function(lambda: time.time() - self._start_time)

    def record_check(self, result: str, duration: Optional[float] = None):
        """Record a finished check"""
        if not self.enabled:
            return
        self.checks_total.labels(result=result).inc()
        if duration is not None:
            self.check_duration.observe(duration)

    def record_resolver_attempt(self, resolver: str, outcome: str):
        """Record the outcome of one resolver lookup"""
        if self.enabled:
            self.resolver_attempts.labels(resolver=resolver, outcome=outcome).inc()

    def record_config_reload(self, result: str):
        """Record an applied or rejected reload"""
        if self.enabled:
            self.config_reloads.labels(result=result).inc()

    def set_info(self, version: str, location: str):
        """Set version and location info"""
        if self.enabled:
            self.info.info({"version": version, "location": location})

    def resource(self) -> Resource:
        """Twisted Web resource serving this collector's registry"""
        return MetricsResource(registry=self.registry)


# Global metrics instance (initialized by main)
metrics: Optional[MetricsCollector] = None


def init_metrics(enabled: bool = True) -> MetricsCollector:
    """Initialize global metrics collector"""
    global metrics
    metrics = MetricsCollector(enabled)
    return metrics


def get_metrics() -> MetricsCollector:
    """Get global metrics instance, a disabled one if main never set it up"""
    global metrics
    if metrics is None:
        metrics = MetricsCollector(enabled=False)
    return metrics
