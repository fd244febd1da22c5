# pgslower/exporters/__init__.py - Exporters module
"""
Exporters for emitted transaction reports and engine counters.

This module provides:
- stdout.py: Column-aligned console output
- json_exporter.py: JSON format exporter
- prometheus.py: Prometheus metrics exporter
"""
