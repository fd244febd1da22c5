# pgslower/__init__.py - Slow PostgreSQL transaction tracer
"""
pgslower reports PostgreSQL transactions (and, in query mode, single
queries) whose latency exceeds a threshold, broken down into parse, plan,
rewrite and execute phases plus the gaps between them.
"""

__version__ = "0.1.0"
