# tests/test_event_handler.py - Tests for event handler module
"""
Unit tests for the Event model and the EventHandler class.
"""

from types import SimpleNamespace
from unittest.mock import Mock

import pytest
from pgslower.collector.event_handler import Event, EventHandler, EventKind


def raw(kind, pid=4242, ts=1000, flag=0, query=b""):
    return SimpleNamespace(pid=pid, kind=kind.value, timestamp_ns=ts, flag=flag, query=query)


class TestEventKind:
    """Test cases for EventKind"""

    @pytest.mark.parametrize("name,expected", [
        ("PARSE_START", EventKind.PARSE_START),
        ("parse_start", EventKind.PARSE_START),
        ("ParseStart", EventKind.PARSE_START),
        ("TxnAbort", EventKind.TXN_ABORT),
        ("BufferReadDone", EventKind.BUFFER_READ_DONE),
    ])
    def test_from_name(self, name, expected):
        """Test both name spellings are accepted"""
        assert EventKind.from_name(name) is expected

    def test_from_name_unknown(self):
        """Test unknown names are rejected"""
        with pytest.raises(ValueError):
            EventKind.from_name("VacuumStart")


class TestEvent:
    """Test cases for Event"""

    def test_from_dict(self):
        """Test building an event from a replay record"""
        event = Event.from_dict({"session": "12", "ts": 500, "kind": "ParseStart", "query": "SELECT 1"})

        assert event.session_id == 12
        assert event.timestamp_ns == 500
        assert event.kind is EventKind.PARSE_START
        assert event.query == "SELECT 1"
        assert event.is_phase_start
        assert not event.is_phase_done

    def test_to_dict_omits_empty_payload(self):
        """Test only set payload fields are written"""
        event = Event(session_id=1, timestamp_ns=2, kind=EventKind.SORT_DONE, external=True)

        assert event.to_dict() == {"session": 1, "ts": 2, "kind": "SORT_DONE", "external": True}

    def test_events_are_immutable(self):
        """Test events cannot be modified"""
        event = Event(session_id=1, timestamp_ns=2, kind=EventKind.TXN_START)

        with pytest.raises(AttributeError):
            event.session_id = 3


class TestEventHandler:
    """Test cases for EventHandler"""

    def test_decode_parse_start(self):
        """Test query text is decoded for parse starts"""
        handler = EventHandler()
        event = handler.decode(raw(EventKind.PARSE_START, query=b"SELECT 1"))

        assert event.session_id == 4242
        assert event.kind is EventKind.PARSE_START
        assert event.query == "SELECT 1"

    def test_decode_flags(self):
        """Test flag field maps to cache_hit and external"""
        handler = EventHandler()

        read = handler.decode(raw(EventKind.BUFFER_READ_DONE, flag=1))
        sort = handler.decode(raw(EventKind.SORT_DONE, flag=0))

        assert read.cache_hit is True
        assert read.external is None
        assert sort.external is False

    def test_callbacks_receive_events(self):
        """Test every callback gets the decoded event"""
        handler = EventHandler()
        first, second = Mock(), Mock()
        handler.register_callback(first)
        handler.register_callback(second)

        event = handler.handle_raw_event(raw(EventKind.TXN_START))

        first.assert_called_once_with(event)
        second.assert_called_once_with(event)
        assert handler.get_stats() == {'total_events': 1, 'errors': 0, 'callbacks_registered': 2}

    def test_bad_record_counted(self):
        """Test undecodable records are counted and skipped"""
        handler = EventHandler()
        callback = Mock()
        handler.register_callback(callback)

        bad = SimpleNamespace(pid=1, kind=99, timestamp_ns=0, flag=0, query=b"")
        assert handler.handle_raw_event(bad) is None

        callback.assert_not_called()
        assert handler.error_count == 1
        assert handler.event_count == 0
