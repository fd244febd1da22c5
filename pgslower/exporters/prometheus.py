# pgslower/exporters/prometheus.py - Prometheus metrics exporter
"""
Exposes engine counters in Prometheus format.
Provides HTTP endpoint for Prometheus to scrape.
"""

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server, generate_latest
from typing import Dict, Optional
import logging

from pgslower.collector.transaction import TransactionReport


class PrometheusExporter:
    """
    Exports engine metrics to Prometheus.

    Counters are updated from engine stats snapshots; reported transaction
    durations are observed as they are emitted.
    """

    def __init__(self, port: Optional[int] = None, registry: Optional[CollectorRegistry] = None):
        """
        Initialize the Prometheus exporter.

        Args:
            port: Port to expose metrics on
            registry: Registry to register metrics in (default: a private one)
        """
        self.port = port
        self.registry = registry or CollectorRegistry()
        self.logger = logging.getLogger(__name__)

        self.transactions = Counter(
            'pgslower_transactions_total',
            'Finished transactions by threshold decision',
            ['decision'],
            registry=self.registry
        )

        self.dropped = Counter(
            'pgslower_dropped_transactions_total',
            'Transactions not tracked because max_active was reached',
            registry=self.registry
        )

        self.out_of_order = Counter(
            'pgslower_out_of_order_events_total',
            'Events ignored because their timestamp went backwards',
            registry=self.registry
        )

        self.slow_duration = Histogram(
            'pgslower_slow_transaction_duration_milliseconds',
            'Duration of reported transactions in milliseconds',
            ['outcome'],
            buckets=[10, 50, 100, 250, 500, 1000, 2500, 5000, 10000, 60000],
            registry=self.registry
        )

        self.active = Gauge(
            'pgslower_active_transactions',
            'Transactions currently buffered',
            registry=self.registry
        )

        # Last stats snapshot, counters are advanced by the difference
        self._last: Dict[str, int] = {}

    def start(self):
        """
        Start the Prometheus HTTP server.
        """
        try:
            start_http_server(self.port, registry=self.registry)
            self.logger.info(f"Prometheus metrics available at http://localhost:{self.port}/metrics")
        except OSError as e:
            self.logger.error(f"Failed to start Prometheus server: {e}")
            raise

    def record_report(self, report: TransactionReport):
        """
        Record a reported transaction. Usable directly as a decider sink.

        Args:
            report: Emitted transaction report
        """
        self.slow_duration.labels(outcome=report.outcome).observe(report.duration_ms)

    __call__ = record_report

    def update(self, stats: Dict):
        """
        Advance counters from an engine stats snapshot.

        Args:
            stats: Dictionary from SessionTracker.get_stats()
        """
        self.transactions.labels(decision='reported').inc(self._delta(stats, 'reported'))
        self.transactions.labels(decision='discarded').inc(self._delta(stats, 'discarded'))
        self.dropped.inc(self._delta(stats, 'dropped'))
        self.out_of_order.inc(self._delta(stats, 'out_of_order'))
        self.active.set(stats.get('active', 0))

    def _delta(self, stats: Dict, key: str) -> int:
        value = stats.get(key, 0)
        delta = value - self._last.get(key, 0)
        self._last[key] = value
        return max(delta, 0)

    def get_metrics_text(self) -> str:
        """
        Get current metrics in Prometheus text format.

        Returns:
            Metrics as text
        """
        return generate_latest(self.registry).decode('utf-8')
