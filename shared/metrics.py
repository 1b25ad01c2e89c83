"""
Shared metrics configuration for the premium tiers system.
"""

from typing import Dict, Any, Optional
import threading

from prometheus_client import Counter, Histogram, CollectorRegistry


class MetricsCollector:
    """Centralized metrics collector for the premium system."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up metrics for the service."""

        # Cache metrics
        self._metrics["cache_lookups_total"] = Counter(
            "premium_cache_lookups_total",
            "Total lookaside cache lookups",
            ["result"],
            registry=self.registry
        )

        self._metrics["cache_evictions_total"] = Counter(
            "premium_cache_evictions_total",
            "Total cache entries evicted",
            ["reason"],
            registry=self.registry
        )

        # Entitlement metrics
        self._metrics["tier_transitions_total"] = Counter(
            "premium_tier_transitions_total",
            "Total tier transitions",
            ["direction"],
            registry=self.registry
        )

        self._metrics["gift_code_redemptions_total"] = Counter(
            "premium_gift_code_redemptions_total",
            "Total gift code redemption attempts",
            ["outcome"],
            registry=self.registry
        )

        # Expiry sweep metrics
        self._metrics["expiry_sweeps_total"] = Counter(
            "premium_expiry_sweeps_total",
            "Total expiry sweeps",
            ["status"],
            registry=self.registry
        )

        self._metrics["expired_users_total"] = Counter(
            "premium_expired_users_total",
            "Total users demoted by the expiry sweep",
            registry=self.registry
        )

        self._metrics["expiry_sweep_duration_seconds"] = Histogram(
            "premium_expiry_sweep_duration_seconds",
            "Expiry sweep duration in seconds",
            registry=self.registry
        )

    def record_cache_lookup(self, hit: bool):
        """Record a cache lookup."""
        self._metrics["cache_lookups_total"].labels(result="hit" if hit else "miss").inc()

    def record_cache_eviction(self, reason: str):
        """Record a cache eviction ("size" or "ttl")."""
        self._metrics["cache_evictions_total"].labels(reason=reason).inc()

    def record_tier_transition(self, direction: str):
        """Record an upgrade or downgrade."""
        self._metrics["tier_transitions_total"].labels(direction=direction).inc()

    def record_redemption(self, outcome: str):
        """Record a gift code redemption outcome."""
        self._metrics["gift_code_redemptions_total"].labels(outcome=outcome).inc()

    def record_expiry_sweep(self, status: str, duration: float, demoted: int = 0):
        """Record an expiry sweep run."""
        self._metrics["expiry_sweeps_total"].labels(status=status).inc()
        self._metrics["expiry_sweep_duration_seconds"].observe(duration)
        if demoted:
            self._metrics["expired_users_total"].inc(demoted)

    def get_metric(self, name: str) -> Optional[Any]:
        """Get a metric by name."""
        return self._metrics.get(name)


# Global metrics collector instances
_metrics_collectors: Dict[str, MetricsCollector] = {}
_collectors_lock = threading.Lock()


def get_metrics_collector(service_name: str) -> MetricsCollector:
    """Get or create the metrics collector for a service on the default registry."""
    with _collectors_lock:
        if service_name not in _metrics_collectors:
            _metrics_collectors[service_name] = MetricsCollector(service_name)
        return _metrics_collectors[service_name]
