# pgslower/collector/replay.py - Recorded event feed
"""
Reads lifecycle events from a JSON-lines file so the engine can be run
offline over a recorded trace.

Each non-blank line is one record:
    {"session": 4242, "ts": 1000000, "kind": "PARSE_START", "query": "SELECT 1"}
Lines starting with '#' are comments.
"""

import json
from pathlib import Path
from typing import Iterable, Iterator, Union
import logging

from pgslower.collector.event_handler import Event
from pgslower.errors import ReplayFormatError


logger = logging.getLogger(__name__)


class ReplayFeed:
    """
    Iterates Events from a recorded trace file.
    """

    def __init__(self, path: Union[str, Path]):
        """
        Initialize the replay feed.

        Args:
            path: Path to a JSON-lines event file
        """
        self.path = Path(path)
        self.event_count = 0

    def __iter__(self) -> Iterator[Event]:
        self.event_count = 0
        with open(self.path, 'r', encoding='utf-8') as f:
            for line_no, line in enumerate(f, 1):
                line = line.strip()
                if not line or line.startswith('#'):
                    continue

                try:
                    record = json.loads(line)
                    event = Event.from_dict(record)
                except json.JSONDecodeError as e:
                    raise ReplayFormatError(self.path, line_no, f"invalid JSON: {e.msg}") from e
                except KeyError as e:
                    raise ReplayFormatError(self.path, line_no, f"missing field {e}") from e
                except (TypeError, ValueError) as e:
                    raise ReplayFormatError(self.path, line_no, str(e)) from e

                self.event_count += 1
                yield event

        logger.info(f"Replayed {self.event_count} events from {self.path}")


class EventRecorder:
    """
    Writes events to a JSON-lines file readable by ReplayFeed.

    Usable as an EventHandler callback and as a context manager.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.count = 0
        self._file = open(self.path, 'w', encoding='utf-8')

    def record(self, event: Event):
        self._file.write(json.dumps(event.to_dict()) + '\n')
        self.count += 1

    __call__ = record

    def record_all(self, events: Iterable[Event]) -> int:
        for event in events:
            self.record(event)
        return self.count

    def close(self):
        if not self._file.closed:
            self._file.close()
            logger.info(f"Recorded {self.count} events to {self.path}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
