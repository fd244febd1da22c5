# pgslower/exporters/json_exporter.py - JSON format exporter
"""
Collects emitted transaction reports and writes them as a JSON document.
"""

import json
import threading
from pathlib import Path
from datetime import datetime
from typing import Dict, List, Optional
import logging

from pgslower.collector.transaction import TransactionReport


class JSONExporter:
    """
    Exports slow transaction reports to JSON format.

    Provides structured JSON output for further processing or visualization.
    """

    def __init__(self, output_dir: Optional[str] = None, threshold_ns: Optional[int] = None):
        """
        Initialize the JSON exporter.

        Args:
            output_dir: Directory to save JSON files (default: current directory)
            threshold_ns: Threshold recorded in the document header
        """
        self.output_dir = Path(output_dir) if output_dir else Path('.')
        self.threshold_ns = threshold_ns
        self.reports: List[TransactionReport] = []
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def add_report(self, report: TransactionReport):
        """
        Collect a report. Usable directly as a decider sink.

        Args:
            report: Emitted transaction report
        """
        with self._lock:
            self.reports.append(report)

    __call__ = add_report

    def build_document(self, stats: Optional[Dict] = None) -> Dict:
        """
        Assemble the JSON document.

        Args:
            stats: Engine counters to include

        Returns:
            Dictionary ready for json.dump
        """
        with self._lock:
            reports = [report.to_dict() for report in self.reports]

        document = {
            'timestamp': datetime.now().isoformat(),
            'report_count': len(reports),
            'threshold_ms': self.threshold_ns / 1_000_000.0 if self.threshold_ns is not None else None,
            'stats': stats or {},
            'reports': reports,
        }
        return document

    def export_reports(self, filename: Optional[str] = None, stats: Optional[Dict] = None) -> str:
        """
        Export collected reports to a JSON file.

        Args:
            filename: Output filename (auto-generated if not provided)
            stats: Engine counters to include

        Returns:
            Path to output file
        """
        if not filename:
            timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
            filename = f'slow_transactions_{timestamp}.json'

        output_path = self.output_dir / filename
        output_path.parent.mkdir(parents=True, exist_ok=True)

        document = self.build_document(stats)
        with open(output_path, 'w') as f:
            json.dump(document, f, indent=2)

        self.logger.info(f"Exported {document['report_count']} reports to {output_path}")
        return str(output_path)
