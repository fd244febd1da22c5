# tests/test_exporters.py - Tests for exporters
"""
Unit tests for the stdout, JSON and Prometheus exporters.
"""

import io
import json

from pgslower.collector.transaction import HEADER, ReportLine, TransactionReport
from pgslower.exporters.json_exporter import JSONExporter
from pgslower.exporters.prometheus import PrometheusExporter
from pgslower.exporters.stdout import StdoutExporter


MS = 1_000_000


def make_report(session=4242, outcome='COMMIT'):
    lines = [
        ReportLine(0, session, 0, 0, 'START'),
        ReportLine(2 * MS, session, 1 * MS, 1 * MS, 'PARSE', 'SELECT 1'),
        ReportLine(151 * MS, session, 1 * MS, 151 * MS, outcome),
    ]
    return TransactionReport(session_id=session, start_ns=0, end_ns=151 * MS,
                             outcome=outcome, lines=lines)


class TestReportLine:
    """Test cases for ReportLine formatting"""

    def test_format_columns(self):
        """Test columns line up under the header"""
        line = ReportLine(2 * MS, 4242, 1 * MS, 1_500_000, 'PARSE', 'SELECT 1')
        text = line.format()

        assert text.split() == ['2.000', '4242', '1.000', '1.500', 'PARSE', 'SELECT', '1']
        assert text.index('4242') + 4 == HEADER.index('PID') + 3

    def test_no_trailing_space_without_detail(self):
        """Test lines without detail are right-trimmed"""
        assert not ReportLine(0, 1, 0, 0, 'START').format().endswith(' ')


class TestStdoutExporter:
    """Test cases for StdoutExporter"""

    def test_header_printed_once(self):
        """Test header precedes the first report only"""
        stream = io.StringIO()
        exporter = StdoutExporter(stream=stream)

        exporter(make_report(1))
        exporter(make_report(2))

        output = stream.getvalue()
        assert output.count('TIME(ms)') == 1
        assert output.splitlines()[0] == HEADER

    def test_report_lines_contiguous(self):
        """Test one report's lines are printed together"""
        stream = io.StringIO()
        exporter = StdoutExporter(use_colors=True, stream=stream)

        exporter.print_report(make_report(outcome='ABORT'))

        lines = stream.getvalue().splitlines()
        assert [l.split()[4] for l in lines[1:4]] == ['START', 'PARSE', 'ABORT']
        # StringIO is not a terminal
        assert '\x1b[' not in stream.getvalue()

    def test_print_stats(self):
        """Test engine counters are printed"""
        stream = io.StringIO()
        StdoutExporter(stream=stream).print_stats(
            {'started': 5, 'reported': 2, 'dropped': 1, 'threshold_ns': 100 * MS}
        )

        output = stream.getvalue()
        assert 'Reported' in output
        assert '100.0ms' in output
        assert 'max_active' in output


class TestJSONExporter:
    """Test cases for JSONExporter"""

    def test_export_reports(self, tmp_path):
        """Test the JSON document holds every report"""
        exporter = JSONExporter(output_dir=str(tmp_path), threshold_ns=100 * MS)
        exporter(make_report(1))
        exporter.add_report(make_report(2, 'ABORT'))

        path = exporter.export_reports('slow.json', stats={'reported': 2})

        with open(path) as f:
            document = json.load(f)

        assert document['report_count'] == 2
        assert document['threshold_ms'] == 100.0
        assert document['stats'] == {'reported': 2}
        assert document['reports'][1]['outcome'] == 'ABORT'
        assert document['reports'][0]['lines'][1]['detail'] == 'SELECT 1'
        assert document['reports'][0]['duration_ms'] == 151.0


class TestPrometheusExporter:
    """Test cases for PrometheusExporter"""

    def test_update_advances_by_difference(self):
        """Test counters follow successive stats snapshots"""
        exporter = PrometheusExporter()
        registry = exporter.registry

        exporter.update({'reported': 2, 'discarded': 5, 'dropped': 0, 'active': 3})
        exporter.update({'reported': 3, 'discarded': 9, 'dropped': 1, 'active': 1})

        assert registry.get_sample_value('pgslower_transactions_total', {'decision': 'reported'}) == 3
        assert registry.get_sample_value('pgslower_transactions_total', {'decision': 'discarded'}) == 9
        assert registry.get_sample_value('pgslower_dropped_transactions_total') == 1
        assert registry.get_sample_value('pgslower_active_transactions') == 1

    def test_record_report(self):
        """Test reported durations are observed"""
        exporter = PrometheusExporter()
        exporter(make_report(outcome='ABORT'))

        count = exporter.registry.get_sample_value(
            'pgslower_slow_transaction_duration_milliseconds_count', {'outcome': 'ABORT'}
        )
        assert count == 1
        assert 'pgslower_active_transactions' in exporter.get_metrics_text()
