# pgslower/errors.py - Error types raised by the engine and event feeds
"""
Typed errors for the tracer.

Recoverable kinds (OutOfOrderEvent, BufferCapacityExceeded) are raised inside
the engine and handled by the session tracker. The rest propagate to the CLI,
which maps them to exit codes.
"""


class PgSlowerError(Exception):
    """Base class for all pgslower errors."""


class ConfigurationError(PgSlowerError):
    """Invalid configuration value, detected before the engine starts."""


class InvalidThreshold(ConfigurationError):
    """Threshold is non-numeric or negative."""

    def __init__(self, value):
        self.value = value
        super().__init__(f"Invalid threshold {value!r}: must be a number >= 0")


class OutOfOrderEvent(PgSlowerError):
    """Timestamp went backwards within one session."""

    def __init__(self, session_id: int, timestamp_ns: int, last_timestamp_ns: int):
        self.session_id = session_id
        self.timestamp_ns = timestamp_ns
        self.last_timestamp_ns = last_timestamp_ns
        super().__init__(
            f"Session {session_id}: event at {timestamp_ns}ns "
            f"precedes previous event at {last_timestamp_ns}ns"
        )


class BufferCapacityExceeded(PgSlowerError):
    """More in-flight transactions than the configured maximum."""

    def __init__(self, session_id: int, max_active: int):
        self.session_id = session_id
        self.max_active = max_active
        super().__init__(
            f"Session {session_id}: {max_active} transactions already buffered"
        )


class EventFeedError(PgSlowerError):
    """Base class for event source failures."""


class FeedDisconnected(EventFeedError):
    """The event source went away (traced process exited, perf buffer closed)."""


class InstrumentationUnavailable(EventFeedError):
    """BCC is missing or the USDT probes could not be attached."""


class ReplayFormatError(EventFeedError):
    """A record in a replay file could not be parsed."""

    def __init__(self, path, line_no: int, reason: str):
        self.path = path
        self.line_no = line_no
        super().__init__(f"{path}:{line_no}: {reason}")
