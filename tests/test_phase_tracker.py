# tests/test_phase_tracker.py - Tests for phase tracker module
"""
Unit tests for the PhaseTracker class.
"""

import pytest
from pgslower.collector.event_handler import Event, EventKind
from pgslower.collector.phase_tracker import PhaseTracker


MS = 1_000_000


def ev(ms, kind, **payload):
    return Event(session_id=7, timestamp_ns=int(ms * MS), kind=kind, **payload)


@pytest.fixture
def tracker():
    return PhaseTracker(epoch_ns=0)


@pytest.fixture
def txn(tracker):
    return tracker.begin(7, ev(0, EventKind.TXN_START))


class TestPhaseTracker:
    """Test cases for PhaseTracker"""

    def test_begin_initializes_state(self, txn):
        """Test transaction start state and start line"""
        assert txn.start_time == 0
        assert txn.gap_start == 0
        assert txn.depth == 0
        assert txn.buffer_reads == 0
        assert len(txn.lines) == 1
        assert txn.lines[0].event == 'START'
        assert txn.lines[0].detail == ""

    def test_outermost_start_records_gap(self, tracker, txn):
        """Test gap and op start are taken on the outermost start"""
        tracker.apply(txn, ev(3, EventKind.PARSE_START, query="SELECT 1"))

        assert txn.depth == 1
        assert txn.gap == 3 * MS
        assert txn.op_start == 3 * MS
        assert txn.query_text == "SELECT 1"

    def test_nested_start_is_inert(self, tracker, txn):
        """Test nested starts only move the depth counter"""
        tracker.apply(txn, ev(1, EventKind.EXEC_START))
        tracker.apply(txn, ev(4, EventKind.PARSE_START, query="SELECT inner"))

        assert txn.depth == 2
        assert txn.op_start == 1 * MS
        assert txn.gap == 1 * MS
        assert txn.query_text is None

    def test_phase_done_buffers_line(self, tracker, txn):
        """Test outermost done buffers one line with gap and duration"""
        tracker.apply(txn, ev(1, EventKind.PARSE_START, query="SELECT 1"))
        tracker.apply(txn, ev(2.5, EventKind.PARSE_DONE))

        line = txn.lines[-1]
        assert line.event == 'PARSE'
        assert line.gap_ns == 1 * MS
        assert line.elapsed_ns == int(1.5 * MS)
        assert line.detail == "SELECT 1"
        assert line.time_ns == int(2.5 * MS)

        assert txn.depth == 0
        assert txn.gap_start == int(2.5 * MS)
        assert txn.op_start is None
        assert txn.gap is None
        assert txn.query_text is None

    def test_nested_done_produces_no_line(self, tracker, txn):
        """Test only the outermost done produces a line"""
        tracker.apply(txn, ev(1, EventKind.EXEC_START))
        tracker.apply(txn, ev(2, EventKind.EXEC_START))
        tracker.apply(txn, ev(3, EventKind.PLAN_START))
        tracker.apply(txn, ev(4, EventKind.PLAN_DONE))
        tracker.apply(txn, ev(5, EventKind.EXEC_DONE))

        assert len(txn.lines) == 1
        assert txn.depth == 1

        tracker.apply(txn, ev(9, EventKind.EXEC_DONE))

        assert len(txn.lines) == 2
        assert txn.lines[-1].event == 'EXECUTE'
        assert txn.lines[-1].elapsed_ns == 8 * MS
        assert txn.depth == 0

    def test_done_without_start_is_ignored(self, tracker, txn):
        """Test depth never goes negative"""
        tracker.apply(txn, ev(1, EventKind.PLAN_DONE))

        assert txn.depth == 0
        assert len(txn.lines) == 1

    def test_counters_need_open_phase(self, tracker, txn):
        """Test buffer reads and sorts outside a phase are not counted"""
        tracker.apply(txn, ev(1, EventKind.BUFFER_READ_DONE, cache_hit=True))
        tracker.apply(txn, ev(1, EventKind.SORT_DONE, external=False))

        assert txn.buffer_reads == 0
        assert txn.internal_sorts == 0

    def test_execute_line_reports_counters(self, tracker, txn):
        """Test execute line shows reads, hits, misses and sorts"""
        tracker.apply(txn, ev(1, EventKind.EXEC_START))
        tracker.apply(txn, ev(2, EventKind.BUFFER_READ_DONE, cache_hit=True))
        tracker.apply(txn, ev(3, EventKind.BUFFER_READ_DONE, cache_hit=False))
        tracker.apply(txn, ev(4, EventKind.BUFFER_READ_DONE, cache_hit=True))
        tracker.apply(txn, ev(5, EventKind.SORT_DONE, external=False))
        tracker.apply(txn, ev(6, EventKind.SORT_DONE, external=True))
        tracker.apply(txn, ev(6, EventKind.SORT_DONE, external=True))
        tracker.apply(txn, ev(7, EventKind.EXEC_DONE))

        assert txn.lines[-1].detail == "reads=3 hits=2 misses=1 sorts=1 internal/2 external"

    def test_counters_reset_after_execute(self, tracker, txn):
        """Test back-to-back executes each report only their own events"""
        tracker.apply(txn, ev(1, EventKind.EXEC_START))
        for t in (2, 3, 4):
            tracker.apply(txn, ev(t, EventKind.BUFFER_READ_DONE, cache_hit=False))
        tracker.apply(txn, ev(4, EventKind.SORT_DONE, external=True))
        tracker.apply(txn, ev(5, EventKind.EXEC_DONE))

        assert txn.buffer_reads == 0
        assert txn.external_sorts == 0

        tracker.apply(txn, ev(6, EventKind.EXEC_START))
        tracker.apply(txn, ev(7, EventKind.BUFFER_READ_DONE, cache_hit=True))
        tracker.apply(txn, ev(8, EventKind.EXEC_DONE))

        first, second = txn.lines[1], txn.lines[2]
        assert first.detail == "reads=3 hits=0 misses=3 sorts=0 internal/1 external"
        assert second.detail == "reads=1 hits=1 misses=0 sorts=0 internal/0 external"

    def test_counters_survive_non_execute_phase(self, tracker, txn):
        """Test only execute completion resets the counters"""
        tracker.apply(txn, ev(1, EventKind.PLAN_START))
        tracker.apply(txn, ev(2, EventKind.BUFFER_READ_DONE, cache_hit=False))
        tracker.apply(txn, ev(3, EventKind.PLAN_DONE))

        assert txn.buffer_reads == 1

    def test_finish_mid_phase(self, tracker, txn):
        """Test closing line while a phase is still open"""
        tracker.apply(txn, ev(5, EventKind.EXEC_START))
        tracker.apply(txn, ev(6, EventKind.EXEC_START))
        tracker.finish(txn, 200 * MS, 'ABORT')

        line = txn.lines[-1]
        assert line.event == 'ABORT'
        assert line.gap_ns == 200 * MS
        assert line.elapsed_ns == 200 * MS
        assert txn.depth == 0
        assert [l.event for l in txn.lines] == ['START', 'ABORT']

    def test_times_relative_to_epoch(self):
        """Test report times are measured from the run epoch"""
        tracker = PhaseTracker(epoch_ns=1000 * MS)
        txn = tracker.begin(7, ev(1010, EventKind.TXN_START))

        assert txn.lines[0].time_ns == 10 * MS
