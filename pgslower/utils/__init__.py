# pgslower/utils/__init__.py - Utilities module
"""
Utility functions and helpers.

This module provides:
- config.py: YAML configuration and validated engine settings
- logger.py: Logging setup
- helpers.py: Pre-flight checks, formatting and threshold parsing
"""
