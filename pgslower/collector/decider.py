# pgslower/collector/decider.py - Threshold decision and report emission
"""
The single filtering point of the engine: on transaction end, either commit
the buffered lines to the output sinks or discard them.
"""

from typing import Callable, List, Optional
import threading
import logging

from pgslower.collector.transaction import Transaction, TransactionReport


class ThresholdDecider:
    """
    Compares a finished transaction's duration to the threshold and emits
    a TransactionReport to every registered sink when it is exceeded.
    """

    def __init__(self, threshold_ns: int, sinks: Optional[List[Callable]] = None):
        """
        Initialize the decider.

        Args:
            threshold_ns: Transactions lasting longer than this are reported
            sinks: Callables receiving each TransactionReport
        """
        self.threshold_ns = threshold_ns
        self.sinks: List[Callable] = list(sinks or [])

        # One report at a time so lines from different sessions never interleave
        self._emit_lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def add_sink(self, sink: Callable):
        """
        Register an output sink.

        Args:
            sink: Function taking a TransactionReport
        """
        self.sinks.append(sink)

    def is_slow(self, duration_ns: int) -> bool:
        """Strictly greater than the threshold"""
        return duration_ns > self.threshold_ns

    def decide(self, txn: Transaction, end_ns: int, outcome: str) -> Optional[TransactionReport]:
        """
        Commit or discard a finished transaction's buffered lines.

        Args:
            txn: Finished transaction, closing line already buffered
            end_ns: Timestamp of the closing event
            outcome: COMMIT, ABORT or DONE

        Returns:
            The emitted report, or None if the lines were discarded
        """
        total = end_ns - txn.start_time
        if not self.is_slow(total):
            txn.lines.clear()
            return None

        report = TransactionReport(
            session_id=txn.session_id,
            start_ns=txn.start_time,
            end_ns=end_ns,
            outcome=outcome,
            lines=list(txn.lines),
        )
        self.emit(report)
        return report

    def emit(self, report: TransactionReport):
        """
        Hand a report to every sink.

        Args:
            report: Report to emit
        """
        self.logger.debug(
            f"Session {report.session_id}: {report.outcome} after "
            f"{report.duration_ms:.3f}ms, reporting {len(report.lines)} lines"
        )
        with self._emit_lock:
            for sink in self.sinks:
                sink(report)
