# pgslower/collector/dispatcher.py - Per-session worker threads
"""
Spreads events over worker threads while keeping every session on a single
worker, so events for one session are applied in arrival order.
"""

from queue import Empty, Queue
from typing import Callable, Dict, List, Optional
import threading
import logging

from pgslower.collector.event_handler import Event


class EventDispatcher:
    """
    Shards events by session id onto bounded per-worker queues.

    A full queue blocks the producer instead of dropping events, since a
    missing event would corrupt that session's transaction state.
    """

    def __init__(self, handler: Callable[[Event], object], workers: int = 4,
                 queue_size: int = 10000):
        """
        Initialize the dispatcher.

        Args:
            handler: Called with each event on its session's worker thread
            workers: Number of worker threads
            queue_size: Capacity of each worker queue
        """
        self.handler = handler
        self.workers = workers
        self.queues: List[Queue] = [Queue(maxsize=queue_size) for _ in range(workers)]
        self.threads: List[threading.Thread] = []
        self.shutdown_event = threading.Event()

        self.stats = {
            'dispatched': 0,
            'handler_errors': 0,
        }
        self._stats_lock = threading.Lock()

        self.logger = logging.getLogger(__name__)

    def start(self):
        """
        Start the worker threads.
        """
        self.shutdown_event.clear()
        for index, q in enumerate(self.queues):
            thread = threading.Thread(
                target=self._worker_loop, args=(q,), daemon=True,
                name=f"pgslower-worker-{index}"
            )
            thread.start()
            self.threads.append(thread)

        self.logger.info(f"Started {self.workers} event workers")

    def shard_for(self, session_id: int) -> int:
        """Worker index handling a session"""
        return session_id % self.workers

    def submit(self, event: Event):
        """
        Queue an event for its session's worker. Blocks while the queue is full.

        Args:
            event: Event to process
        """
        self.queues[self.shard_for(event.session_id)].put(event)

    def _worker_loop(self, q: Queue):
        while not self.shutdown_event.is_set():
            try:
                event = q.get(timeout=0.1)
            except Empty:
                continue

            try:
                self.handler(event)
                with self._stats_lock:
                    self.stats['dispatched'] += 1
            except Exception as e:
                # Keep the worker alive for the other sessions on this shard
                self.logger.exception(f"Error handling {event.kind.name} for session {event.session_id}: {e}")
                with self._stats_lock:
                    self.stats['handler_errors'] += 1
            finally:
                q.task_done()

    def drain(self):
        """
        Block until every queued event has been handled.
        """
        for q in self.queues:
            q.join()

    def stop(self, timeout: Optional[float] = 5.0):
        """
        Stop the workers. Events still queued are dropped.

        Args:
            timeout: Seconds to wait for each worker
        """
        self.shutdown_event.set()
        for thread in self.threads:
            thread.join(timeout=timeout)
        self.threads = []

        pending = sum(q.qsize() for q in self.queues)
        if pending:
            self.logger.info(f"Dropped {pending} queued events on shutdown")

    def get_stats(self) -> Dict:
        with self._stats_lock:
            stats = dict(self.stats)
        stats['queued'] = sum(q.qsize() for q in self.queues)
        return stats
