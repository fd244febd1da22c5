# pgslower/exporters/stdout.py - Console output exporter
"""
Prints emitted transaction reports to stdout in column-aligned form.
"""

from typing import Dict, Optional, TextIO
import sys
from colorama import Fore, Style

from pgslower.collector.transaction import HEADER, TransactionReport
from pgslower.utils.helpers import format_duration


class StdoutExporter:
    """
    Writes each report's lines contiguously, colored by outcome.
    """

    OUTCOME_COLORS = {
        'COMMIT': Fore.GREEN,
        'DONE': Fore.GREEN,
        'ABORT': Fore.RED,
    }

    def __init__(self, use_colors: bool = True, stream: Optional[TextIO] = None):
        """
        Initialize the stdout exporter.

        Args:
            use_colors: Whether to use colored output
            stream: Output stream (default: sys.stdout)
        """
        self.stream = stream or sys.stdout
        self.use_colors = use_colors and self.stream.isatty()
        self.header_printed = False

    def print_header(self):
        """
        Print the column heading once.
        """
        if self.header_printed:
            return
        self._write(self._color(Fore.CYAN, HEADER))
        self.header_printed = True

    def print_report(self, report: TransactionReport):
        """
        Print one report. Usable directly as a decider sink.

        Args:
            report: Emitted transaction report
        """
        self.print_header()

        lines = report.format_lines()
        color = self.OUTCOME_COLORS.get(report.outcome, "")
        for line in lines[:-1]:
            self._write(line)
        if lines:
            self._write(self._color(color, lines[-1]))
        self._write("")
        self.stream.flush()

    __call__ = print_report

    def print_stats(self, stats: Dict):
        """
        Print engine counters.

        Args:
            stats: Counter dictionary from SessionTracker.get_stats()
        """
        self._write(self._color(Fore.CYAN, '=' * 60))
        self._write(self._color(Fore.CYAN, 'Engine counters'))
        self._write(self._color(Fore.CYAN, '=' * 60))

        for key in ('started', 'reported', 'discarded', 'dropped',
                    'out_of_order', 'orphan_events', 'ignored_restarts', 'active'):
            if key in stats:
                self._write(f"  {key.replace('_', ' ').capitalize():<18} {stats[key]}")

        if stats.get('threshold_ns') is not None:
            self._write(f"  {'Threshold':<18} {format_duration(stats['threshold_ns'])}")

        if stats.get('dropped'):
            self._write(self._color(
                Fore.YELLOW,
                f"  {stats['dropped']} transactions were not tracked; raise engine.max_active"
            ))
        self.stream.flush()

    def _color(self, color: str, text: str) -> str:
        if not self.use_colors or not color:
            return text
        return f"{color}{text}{Style.RESET_ALL}"

    def _write(self, text: str):
        self.stream.write(text + "\n")
