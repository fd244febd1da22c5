# pgslower/collector/event_handler.py - Event model and perf record decoding
"""
Event handler for processing PostgreSQL lifecycle events from the kernel.
Converts raw perf records into structured Event objects.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional
import logging


class EventKind(Enum):
    """
    Lifecycle event kinds. Values match the `kind` field written by
    ebpf/pg_usdt.c.
    """
    TXN_START = 0
    TXN_COMMIT = 1
    TXN_ABORT = 2
    PARSE_START = 3
    PARSE_DONE = 4
    PLAN_START = 5
    PLAN_DONE = 6
    REWRITE_START = 7
    REWRITE_DONE = 8
    EXEC_START = 9
    EXEC_DONE = 10
    BUFFER_READ_DONE = 11
    SORT_DONE = 12
    QUERY_START = 13
    QUERY_DONE = 14

    @classmethod
    def from_name(cls, name: str) -> "EventKind":
        """
        Look up a kind by name.

        Accepts both `PARSE_START` and `ParseStart` spellings.

        Args:
            name: Kind name

        Returns:
            Matching EventKind
        """
        key = name.strip()
        if key.upper() in cls.__members__:
            return cls[key.upper()]

        # CamelCase -> UPPER_SNAKE
        snake = ''.join(
            f"_{c}" if c.isupper() and i > 0 else c
            for i, c in enumerate(key)
        ).upper()
        if snake in cls.__members__:
            return cls[snake]

        raise ValueError(f"Unknown event kind: {name}")


# Phase name for each start/done kind
PHASE_STARTS = {
    EventKind.PARSE_START: 'PARSE',
    EventKind.PLAN_START: 'PLAN',
    EventKind.REWRITE_START: 'REWRITE',
    EventKind.EXEC_START: 'EXECUTE',
}

PHASE_DONES = {
    EventKind.PARSE_DONE: 'PARSE',
    EventKind.PLAN_DONE: 'PLAN',
    EventKind.REWRITE_DONE: 'REWRITE',
    EventKind.EXEC_DONE: 'EXECUTE',
}


def _integral(data: Dict, key: str) -> int:
    """Whole number field of a replay record; integral strings are accepted"""
    value = data[key]
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, (int, str)) and not isinstance(value, bool):
        try:
            return int(value)
        except ValueError:
            pass
    raise ValueError(f"'{key}' must be an integer, got {value!r}")


def _flag(data: Dict, key: str) -> Optional[bool]:
    value = data.get(key)
    if value is not None and not isinstance(value, bool):
        raise ValueError(f"'{key}' must be true or false, got {value!r}")
    return value


@dataclass(frozen=True)
class Event:
    """
    One timestamped lifecycle event for a session.
    """
    session_id: int
    timestamp_ns: int
    kind: EventKind
    query: Optional[str] = None
    cache_hit: Optional[bool] = None
    external: Optional[bool] = None

    @property
    def is_phase_start(self) -> bool:
        return self.kind in PHASE_STARTS

    @property
    def is_phase_done(self) -> bool:
        return self.kind in PHASE_DONES

    @classmethod
    def from_dict(cls, data: Dict) -> "Event":
        """
        Build an event from a replay record.

        Args:
            data: Dictionary with `session`, `ts`, `kind` and optional
                `query`, `cache_hit`, `external` keys

        Returns:
            Event object
        """
        kind = data['kind']
        if not isinstance(kind, EventKind):
            kind = EventKind.from_name(str(kind))

        return cls(
            session_id=_integral(data, 'session'),
            timestamp_ns=_integral(data, 'ts'),
            kind=kind,
            query=data.get('query'),
            cache_hit=_flag(data, 'cache_hit'),
            external=_flag(data, 'external'),
        )

    def to_dict(self) -> Dict:
        """Replay record for this event"""
        data = {
            'session': self.session_id,
            'ts': self.timestamp_ns,
            'kind': self.kind.name,
        }
        if self.query is not None:
            data['query'] = self.query
        if self.cache_hit is not None:
            data['cache_hit'] = self.cache_hit
        if self.external is not None:
            data['external'] = self.external
        return data


class EventHandler:
    """
    Handles incoming perf records and routes decoded events to callbacks.
    """

    def __init__(self):
        """
        Initialize the event handler.
        """
        self.event_callbacks: List[Callable] = []
        self.event_count = 0
        self.error_count = 0

        self.logger = logging.getLogger(__name__)

    def register_callback(self, callback: Callable):
        """
        Register a callback function to be called for each event.

        Args:
            callback: Function that takes an Event as parameter
        """
        self.event_callbacks.append(callback)

    def decode(self, raw_event) -> Event:
        """
        Convert a raw perf record into an Event.

        Args:
            raw_event: Record with pid, kind, timestamp_ns, flag and query fields

        Returns:
            Event object
        """
        kind = EventKind(raw_event.kind)

        query = None
        cache_hit = None
        external = None

        if kind in (EventKind.PARSE_START, EventKind.QUERY_START):
            query = raw_event.query.decode('utf-8', 'replace')
        elif kind == EventKind.BUFFER_READ_DONE:
            cache_hit = bool(raw_event.flag)
        elif kind == EventKind.SORT_DONE:
            external = bool(raw_event.flag)

        return Event(
            session_id=raw_event.pid,
            timestamp_ns=raw_event.timestamp_ns,
            kind=kind,
            query=query,
            cache_hit=cache_hit,
            external=external,
        )

    def handle_raw_event(self, raw_event) -> Optional[Event]:
        """
        Process a raw perf record.

        Args:
            raw_event: Raw event data from BCC

        Returns:
            Processed Event or None if decoding failed
        """
        try:
            event = self.decode(raw_event)
        except (ValueError, AttributeError) as e:
            self.logger.error(f"Error decoding event: {e}")
            self.error_count += 1
            return None

        self.dispatch(event)
        return event

    def dispatch(self, event: Event):
        """
        Pass an already decoded event to every callback.

        Args:
            event: Event object
        """
        self.event_count += 1

        for callback in self.event_callbacks:
            callback(event)

    def get_stats(self) -> Dict:
        """
        Get handler statistics.

        Returns:
            Dictionary with event processing statistics
        """
        return {
            'total_events': self.event_count,
            'errors': self.error_count,
            'callbacks_registered': len(self.event_callbacks)
        }
