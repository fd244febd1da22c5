# pgslower/collector/tracer.py - PostgreSQL USDT tracer using BCC
"""
Main tracer class for loading the USDT probe program and feeding its perf
events to the engine.
Uses BCC (BPF Compiler Collection) to compile and load the eBPF program and
attach it to PostgreSQL's static probes.
"""

import os
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional
import logging

from pgslower.errors import FeedDisconnected, InstrumentationUnavailable


class PostgresTracer:
    """
    Event feed backed by PostgreSQL's USDT probes.

    Traces a single backend (pid) or every process started from a server
    binary (fleet mode). Requires a server built with --enable-dtrace.
    """

    # USDT probe name -> handler function in pg_usdt.c
    PROBES = {
        'transaction__start': 'trace_txn_start',
        'transaction__commit': 'trace_txn_commit',
        'transaction__abort': 'trace_txn_abort',
        'query__start': 'trace_query_start',
        'query__done': 'trace_query_done',
        'query__parse__start': 'trace_parse_start',
        'query__parse__done': 'trace_parse_done',
        'query__plan__start': 'trace_plan_start',
        'query__plan__done': 'trace_plan_done',
        'query__rewrite__start': 'trace_rewrite_start',
        'query__rewrite__done': 'trace_rewrite_done',
        'query__execute__start': 'trace_exec_start',
        'query__execute__done': 'trace_exec_done',
        'buffer__read__done': 'trace_buffer_read_done',
        'sort__done': 'trace_sort_done',
    }

    def __init__(self, config: Dict):
        """
        Initialize the PostgresTracer.

        Args:
            config: Configuration dictionary containing:
                - pid: Backend process ID to trace
                - binary: Path to the postgres binary (used when pid is unset)
                - buffer_pages: Perf buffer size in pages
                - poll_timeout_ms: Perf buffer poll timeout
        """
        self.config = config
        self.pid = config.get('pid')
        self.binary = config.get('binary')
        self.buffer_pages = config.get('buffer_pages', 64)
        self.poll_timeout_ms = config.get('poll_timeout_ms', 100)

        self.bpf = None
        self.usdt = None
        self.event_handler: Optional[Callable] = None
        self.running = False
        self.enabled_probes: List[str] = []
        self.lost_events = 0

        self.logger = logging.getLogger(__name__)

        # Path to eBPF C programs
        self.ebpf_dir = Path(__file__).parent.parent / 'ebpf'

    def load_ebpf_program(self, program_path) -> str:
        """
        Load eBPF C program from file.

        Args:
            program_path: Path to the C program file

        Returns:
            Program source code as string
        """
        with open(program_path, 'r') as f:
            return f.read()

    def initialize(self):
        """
        Enable the USDT probes and load the eBPF program.
        """
        if not self.pid and not self.binary:
            raise InstrumentationUnavailable("Either a pid or a postgres binary path is required")

        try:
            from bcc import BPF, USDT
        except ImportError as e:
            raise InstrumentationUnavailable(f"BCC is not installed: {e}") from e

        target = f"PID {self.pid}" if self.pid else self.binary
        self.logger.info(f"Initializing tracer for {target}")

        try:
            if self.pid:
                self.usdt = USDT(pid=self.pid)
            else:
                self.usdt = USDT(path=self.binary)
        except Exception as e:
            raise InstrumentationUnavailable(f"Cannot read USDT probes from {target}: {e}") from e

        self._enable_probes()

        prog = self.load_ebpf_program(self.ebpf_dir / 'pg_usdt.c')
        try:
            self.bpf = BPF(text=prog, usdt_contexts=[self.usdt])
            self.logger.info("eBPF program loaded successfully")
        except Exception as e:
            self.logger.error(f"Failed to load eBPF program: {e}")
            raise InstrumentationUnavailable(f"Failed to load eBPF program: {e}") from e

    def _enable_probes(self):
        """
        Enable every known probe the target provides.
        """
        for probe, fn_name in self.PROBES.items():
            try:
                self.usdt.enable_probe(probe=probe, fn_name=fn_name)
                self.enabled_probes.append(probe)
                self.logger.debug(f"Enabled probe {probe}")
            except Exception as e:
                self.logger.warning(f"Probe {probe} not available: {e}")

        if not self.enabled_probes:
            raise InstrumentationUnavailable(
                "No PostgreSQL USDT probes found. Is the server built with --enable-dtrace?"
            )

        self.logger.info(f"Enabled {len(self.enabled_probes)}/{len(self.PROBES)} probes")

    def register_event_handler(self, handler: Callable):
        """
        Register the callback receiving raw perf records.

        Args:
            handler: Callback function to process records
        """
        self.event_handler = handler

    def start(self, duration: Optional[float] = None):
        """
        Open the perf buffer and poll it until stopped.

        Args:
            duration: Stop after this many seconds (None runs until stopped)
        """
        if self.bpf is None:
            raise RuntimeError("Tracer not initialized. Call initialize() first.")

        self.logger.info("Starting tracing session...")
        self.running = True

        self.bpf["events"].open_perf_buffer(
            self._handle_event,
            page_cnt=self.buffer_pages,
            lost_cb=self._handle_lost
        )

        deadline = time.monotonic() + duration if duration else None
        try:
            while self.running:
                self.bpf.perf_buffer_poll(timeout=self.poll_timeout_ms)

                if self.pid and not self._pid_alive():
                    raise FeedDisconnected(f"Traced process {self.pid} exited")
                if deadline and time.monotonic() >= deadline:
                    break
        finally:
            self.stop()

    def _pid_alive(self) -> bool:
        try:
            os.kill(self.pid, 0)
            return True
        except ProcessLookupError:
            return False
        except PermissionError:
            return True

    def _handle_event(self, cpu, data, size):
        """
        Internal handler for perf buffer events.

        Args:
            cpu: CPU number where event occurred
            data: Raw event data
            size: Size of event data
        """
        event = self.bpf["events"].event(data)

        if self.event_handler:
            self.event_handler(event)

    def _handle_lost(self, count):
        self.lost_events += count
        self.logger.warning(f"Lost {count} perf events ({self.lost_events} total)")

    def stop(self):
        """
        Stop the tracing session and release the BPF program.
        """
        if not self.running and self.bpf is None:
            return

        self.logger.info("Stopping tracing session...")
        self.running = False

        if self.bpf:
            self.bpf.cleanup()
            self.bpf = None

        self.logger.info("Tracer stopped")

    def get_stats(self) -> Dict:
        """
        Get tracer statistics.

        Returns:
            Dictionary containing tracer statistics
        """
        return {
            'enabled_probes': len(self.enabled_probes),
            'lost_events': self.lost_events,
        }
