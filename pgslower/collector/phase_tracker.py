# pgslower/collector/phase_tracker.py - Outermost phase timing
"""
Turns phase start/done event pairs into timed report lines.

A depth counter tracks nested phase probes (for example a trigger running a
query inside an execute phase). Only the outermost start/done edge is timed;
nested probes only move the counter.
"""

from typing import Optional
import logging

from pgslower.collector.event_handler import Event, EventKind, PHASE_DONES
from pgslower.collector.transaction import ReportLine, Transaction


logger = logging.getLogger(__name__)


class PhaseTracker:
    """
    Applies session events to a Transaction and buffers its report lines.
    """

    def __init__(self, epoch_ns: int = 0):
        """
        Initialize the phase tracker.

        Args:
            epoch_ns: Timestamp of run start; report times are relative to it
        """
        self.epoch_ns = epoch_ns

    def begin(self, session_id: int, event: Event, label: str = 'START') -> Transaction:
        """
        Create the state for a new transaction and buffer its start line.

        Args:
            session_id: Session the transaction belongs to
            event: Opening event
            label: Event name for the start line

        Returns:
            New Transaction
        """
        txn = Transaction(session_id=session_id, start_time=event.timestamp_ns)
        txn.append(self._line(txn, event.timestamp_ns, 0, 0, label, event.query or ""))
        return txn

    def apply(self, txn: Transaction, event: Event):
        """
        Apply one in-transaction event.

        Args:
            txn: Transaction open on the event's session
            event: Phase, buffer read or sort event
        """
        if event.is_phase_start:
            self._phase_start(txn, event)
        elif event.is_phase_done:
            self._phase_done(txn, event, PHASE_DONES[event.kind])
        elif event.kind == EventKind.BUFFER_READ_DONE:
            if txn.depth >= 1:
                txn.buffer_reads += 1
                if event.cache_hit:
                    txn.buffer_hits += 1
        elif event.kind == EventKind.SORT_DONE:
            if txn.depth >= 1:
                if event.external:
                    txn.external_sorts += 1
                else:
                    txn.internal_sorts += 1

    def finish(self, txn: Transaction, now: int, label: str):
        """
        Buffer the closing line. Works whether or not a phase is still open.

        Args:
            txn: Transaction being closed
            now: Timestamp of the closing event
            label: COMMIT, ABORT or DONE
        """
        txn.append(self._line(txn, now, now - txn.gap_start, now - txn.start_time, label))
        txn.depth = 0

    def _phase_start(self, txn: Transaction, event: Event):
        txn.depth += 1
        if txn.depth != 1:
            return

        now = event.timestamp_ns
        txn.gap = now - txn.gap_start
        txn.op_start = now
        if event.kind == EventKind.PARSE_START:
            txn.query_text = event.query

    def _phase_done(self, txn: Transaction, event: Event, phase: str):
        if txn.depth == 0:
            logger.debug(f"Session {txn.session_id}: {phase} done with no phase open, ignoring")
            return

        if txn.depth == 1 and txn.op_start is not None:
            now = event.timestamp_ns
            detail = self._detail(txn, phase)
            txn.append(self._line(txn, now, txn.gap, now - txn.op_start, phase, detail))

            if phase == 'EXECUTE':
                txn.reset_counters()
            txn.end_phase(now)

        txn.depth -= 1

    @staticmethod
    def _detail(txn: Transaction, phase: str) -> str:
        if phase == 'PARSE':
            return txn.query_text or ""
        if phase == 'EXECUTE':
            return (f"reads={txn.buffer_reads} hits={txn.buffer_hits} "
                    f"misses={txn.buffer_misses} "
                    f"sorts={txn.internal_sorts} internal/{txn.external_sorts} external")
        return ""

    def _line(self, txn: Transaction, now: int, gap: Optional[int], elapsed: int,
              event: str, detail: str = "") -> ReportLine:
        return ReportLine(
            time_ns=now - self.epoch_ns,
            session_id=txn.session_id,
            gap_ns=gap or 0,
            elapsed_ns=elapsed,
            event=event,
            detail=detail,
        )
