# pgslower/ebpf/__init__.py - eBPF programs module
"""
eBPF programs for tracing PostgreSQL backends.

This module contains C programs that run in the kernel space:
- pg_usdt.c: USDT probe handlers for transaction, phase, buffer read
  and sort events
"""
