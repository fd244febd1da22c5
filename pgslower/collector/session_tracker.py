# pgslower/collector/session_tracker.py - Session state store and engine entry point
"""
Tracks the in-flight transaction of every session and routes events to it.
Each session's transaction is independent of every other session's.
"""

from enum import Enum
from typing import Dict, Optional
import threading
import logging

from pgslower.collector.decider import ThresholdDecider
from pgslower.collector.event_handler import Event, EventKind
from pgslower.collector.phase_tracker import PhaseTracker
from pgslower.collector.transaction import Transaction, TransactionReport
from pgslower.errors import BufferCapacityExceeded, OutOfOrderEvent


class TrackingMode(Enum):
    """
    Which events open and close a tracked unit.
    """
    TRANSACTION = 'txn'
    QUERY = 'query'

    @property
    def open_kind(self) -> EventKind:
        if self is TrackingMode.QUERY:
            return EventKind.QUERY_START
        return EventKind.TXN_START

    @property
    def close_labels(self) -> Dict[EventKind, str]:
        if self is TrackingMode.QUERY:
            return {EventKind.QUERY_DONE: 'DONE'}
        return {EventKind.TXN_COMMIT: 'COMMIT', EventKind.TXN_ABORT: 'ABORT'}

    @property
    def start_label(self) -> str:
        if self is TrackingMode.QUERY:
            return 'QUERY'
        return 'START'


# Events that only mean something in the other mode
_MODE_EVENTS = {
    TrackingMode.TRANSACTION: {EventKind.QUERY_START, EventKind.QUERY_DONE},
    TrackingMode.QUERY: {EventKind.TXN_START, EventKind.TXN_COMMIT, EventKind.TXN_ABORT},
}


class SessionTracker:
    """
    Session state store: at most one Transaction per session id.

    Creates a Transaction on the opening event, feeds everything else through
    the PhaseTracker and hands the finished Transaction to the
    ThresholdDecider on the closing event.
    """

    def __init__(self, decider: ThresholdDecider, max_active: int = 1024,
                 mode: TrackingMode = TrackingMode.TRANSACTION,
                 epoch_ns: Optional[int] = None):
        """
        Initialize the session tracker.

        Args:
            decider: Threshold decider receiving finished transactions
            max_active: Maximum number of transactions buffered at once
            mode: Transaction or companion query mode
            epoch_ns: Run start timestamp (defaults to the earliest timestamp
                seen before the first transaction opens)
        """
        self.decider = decider
        self.max_active = max_active
        self.mode = mode
        self.epoch_ns = epoch_ns
        self.phases = PhaseTracker(epoch_ns or 0)
        self._epoch_fixed = epoch_ns is not None

        # In-flight transactions by session id
        self.active: Dict[int, Transaction] = {}
        self._lock = threading.Lock()

        self.stats = {
            'started': 0,
            'reported': 0,
            'discarded': 0,
            'dropped': 0,
            'out_of_order': 0,
            'orphan_events': 0,
            'ignored_restarts': 0,
        }

        self.logger = logging.getLogger(__name__)

    def on_event(self, event: Event) -> Optional[TransactionReport]:
        """
        Route one event to its session's transaction.

        Args:
            event: Event from the feed

        Returns:
            Report emitted if this event closed a slow transaction, else None
        """
        if not self._epoch_fixed:
            self._observe_epoch(event.timestamp_ns)

        if event.kind in _MODE_EVENTS[self.mode]:
            return None

        if event.kind == self.mode.open_kind:
            try:
                self._open(event)
            except BufferCapacityExceeded as e:
                self._bump('dropped')
                self.logger.warning(f"{e}, dropping new transaction")
            return None

        txn = self.active.get(event.session_id)
        if txn is None:
            self._bump('orphan_events')
            return None

        if not self._in_order(txn, event):
            return None

        labels = self.mode.close_labels
        if event.kind in labels:
            return self._close(txn, event, labels[event.kind])

        self.phases.apply(txn, event)
        return None

    def _open(self, event: Event):
        session_id = event.session_id
        txn = self.active.get(session_id)

        if txn is not None:
            if not self._in_order(txn, event):
                return
            if self.mode is TrackingMode.QUERY:
                # Recursive query start inside an open query
                txn.nesting += 1
            else:
                self._bump('ignored_restarts')
                self.logger.debug(f"Session {session_id}: transaction already open, ignoring start")
            return

        with self._lock:
            if len(self.active) >= self.max_active:
                raise BufferCapacityExceeded(session_id, self.max_active)
            self._epoch_fixed = True
            self.active[session_id] = self.phases.begin(session_id, event, self.mode.start_label)
            self.stats['started'] += 1

    def _close(self, txn: Transaction, event: Event, label: str) -> Optional[TransactionReport]:
        if txn.nesting > 0:
            txn.nesting -= 1
            return None

        now = event.timestamp_ns
        self.phases.finish(txn, now, label)

        with self._lock:
            self.active.pop(txn.session_id, None)

        report = self.decider.decide(txn, now, label)
        self._bump('reported' if report else 'discarded')
        return report

    @staticmethod
    def _check_order(txn: Transaction, event: Event):
        if event.timestamp_ns < txn.last_timestamp_ns:
            raise OutOfOrderEvent(txn.session_id, event.timestamp_ns, txn.last_timestamp_ns)
        txn.last_timestamp_ns = event.timestamp_ns

    def _in_order(self, txn: Transaction, event: Event) -> bool:
        try:
            self._check_order(txn, event)
        except OutOfOrderEvent as e:
            self._bump('out_of_order')
            self.logger.warning(f"{e}, ignoring {event.kind.name}")
            return False
        return True

    def _observe_epoch(self, timestamp_ns: int):
        # The epoch follows the earliest timestamp until the first line is buffered
        with self._lock:
            if self._epoch_fixed:
                return
            if self.epoch_ns is None or timestamp_ns < self.epoch_ns:
                self.epoch_ns = timestamp_ns
                self.phases.epoch_ns = timestamp_ns

    def _bump(self, key: str):
        with self._lock:
            self.stats[key] += 1

    def active_count(self) -> int:
        """Number of transactions currently buffered"""
        return len(self.active)

    def get_transaction(self, session_id: int) -> Optional[Transaction]:
        """
        Get the in-flight transaction for a session.

        Args:
            session_id: Session id

        Returns:
            Transaction or None
        """
        return self.active.get(session_id)

    def reset(self):
        """
        Discard every in-flight transaction without reporting it.
        """
        with self._lock:
            dropped = len(self.active)
            self.active.clear()

        if dropped:
            self.logger.info(f"Discarded {dropped} in-flight transactions")

    def get_stats(self) -> Dict:
        """
        Get tracker statistics.

        Returns:
            Dictionary with engine counters
        """
        with self._lock:
            stats = dict(self.stats)
        stats['active'] = self.active_count()
        return stats


def build_engine(threshold_ns: int, max_active: int = 1024,
                 mode: TrackingMode = TrackingMode.TRANSACTION,
                 sinks=None) -> SessionTracker:
    """
    Wire a session tracker to a threshold decider.

    Args:
        threshold_ns: Report transactions longer than this
        max_active: Maximum number of transactions buffered at once
        mode: Transaction or companion query mode
        sinks: Callables receiving each emitted TransactionReport

    Returns:
        SessionTracker ready for on_event()
    """
    decider = ThresholdDecider(threshold_ns, sinks)
    return SessionTracker(decider, max_active=max_active, mode=mode)
