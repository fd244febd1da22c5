# pgslower/collector/__init__.py - Event collection and correlation
"""
Collector module: event feeds and the transaction latency engine.

This module provides:
- event_handler.py: Event model and perf record decoding
- transaction.py: Per-session transaction state and report records
- phase_tracker.py: Outermost phase timing
- decider.py: Threshold decision and report emission
- session_tracker.py: Session state store, the engine entry point
- dispatcher.py: Per-session worker threads
- tracer.py: BCC/USDT event feed
- replay.py: Recorded event feed
"""
