# pgslower/collector/transaction.py - Per-session transaction state
"""
State of one in-flight transaction (or query, in query mode) and the report
records buffered for it until the threshold decision is made.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from pgslower.utils.helpers import format_ms


HEADER = f"{'TIME(ms)':>12} {'PID':>7} {'GAP(ms)':>10} {'ELAPSED(ms)':>12} {'EVENT':<10} DETAIL"


@dataclass(frozen=True)
class ReportLine:
    """
    One line of a transaction report.

    time_ns is measured from the run epoch; gap_ns and elapsed_ns are the
    two durations measured for the line's event.
    """
    time_ns: int
    session_id: int
    gap_ns: int
    elapsed_ns: int
    event: str
    detail: str = ""

    def format(self) -> str:
        """Column-aligned text form"""
        line = (f"{format_ms(self.time_ns):>12} {self.session_id:>7} "
                f"{format_ms(self.gap_ns):>10} {format_ms(self.elapsed_ns):>12} "
                f"{self.event:<10}")
        if self.detail:
            line = f"{line} {self.detail}"
        return line.rstrip()

    def to_dict(self) -> Dict:
        return {
            'time_ms': self.time_ns / 1_000_000.0,
            'session': self.session_id,
            'gap_ms': self.gap_ns / 1_000_000.0,
            'elapsed_ms': self.elapsed_ns / 1_000_000.0,
            'event': self.event,
            'detail': self.detail,
        }

    def __str__(self) -> str:
        return self.format()


@dataclass
class Transaction:
    """
    Mutable state for the unit currently open on a session.

    Owned by the session tracker; only the thread handling the session
    touches it.
    """
    session_id: int
    start_time: int
    gap_start: int = field(init=False, default=0)
    op_start: Optional[int] = None
    gap: Optional[int] = None
    depth: int = 0
    query_text: Optional[str] = None

    # Counters for the current execute invocation
    buffer_reads: int = 0
    buffer_hits: int = 0
    internal_sorts: int = 0
    external_sorts: int = 0

    # Recursive opening events (query mode)
    nesting: int = 0
    last_timestamp_ns: int = field(init=False, default=0)

    # Speculative line buffer
    lines: List[ReportLine] = field(default_factory=list)

    def __post_init__(self):
        self.gap_start = self.start_time
        self.last_timestamp_ns = self.start_time

    @property
    def buffer_misses(self) -> int:
        return self.buffer_reads - self.buffer_hits

    def append(self, line: ReportLine):
        """Buffer a report line"""
        self.lines.append(line)

    def reset_counters(self):
        """Clear the per-execute counters"""
        self.buffer_reads = 0
        self.buffer_hits = 0
        self.internal_sorts = 0
        self.external_sorts = 0

    def end_phase(self, now: int):
        """Close the outermost phase and start timing the next gap"""
        self.gap_start = now
        self.op_start = None
        self.gap = None
        self.query_text = None


@dataclass
class TransactionReport:
    """
    A transaction that exceeded the threshold, with all of its buffered lines.
    """
    session_id: int
    start_ns: int
    end_ns: int
    outcome: str
    lines: List[ReportLine] = field(default_factory=list)

    @property
    def duration_ns(self) -> int:
        return self.end_ns - self.start_ns

    @property
    def duration_ms(self) -> float:
        return self.duration_ns / 1_000_000.0

    def format_lines(self) -> List[str]:
        return [line.format() for line in self.lines]

    def to_dict(self) -> Dict:
        return {
            'session': self.session_id,
            'start_ns': self.start_ns,
            'end_ns': self.end_ns,
            'duration_ms': self.duration_ms,
            'outcome': self.outcome,
            'lines': [line.to_dict() for line in self.lines],
        }
