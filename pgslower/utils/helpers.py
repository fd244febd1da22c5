# pgslower/utils/helpers.py - Helper functions
"""
General utility and helper functions.
"""

import math
import os
from typing import Any, Optional
import subprocess
import logging

from pgslower.errors import InvalidThreshold


logger = logging.getLogger(__name__)


def check_root_privileges() -> bool:
    """
    Check if running with root privileges.

    Returns:
        True if running as root, False otherwise
    """
    return os.geteuid() == 0 if hasattr(os, 'geteuid') else False


def check_bcc_installed() -> bool:
    """
    Check if BCC is installed and available.

    Returns:
        True if BCC is available, False otherwise
    """
    try:
        import bcc  # noqa: F401
        return True
    except ImportError:
        return False


def check_kernel_version() -> tuple:
    """
    Get Linux kernel version.

    Returns:
        Tuple of (major, minor, patch) version numbers
    """
    try:
        result = subprocess.run(
            ['uname', '-r'],
            capture_output=True,
            text=True,
            check=True
        )
    except (OSError, subprocess.CalledProcessError) as e:
        logger.error(f"Failed to get kernel version: {e}")
        return (0, 0, 0)

    return parse_kernel_version(result.stdout)


def parse_kernel_version(release: str) -> tuple:
    """
    Parse a `uname -r` string.

    Args:
        release: Kernel release (e.g., "6.1.0-13-amd64")

    Returns:
        Tuple of (major, minor, patch) version numbers
    """
    version_str = release.strip().split('-')[0]
    parts = []
    for part in version_str.split('.')[:3]:
        digits = ''.join(c for c in part if c.isdigit())
        parts.append(int(digits) if digits else 0)

    while len(parts) < 3:
        parts.append(0)

    return tuple(parts)


def check_ebpf_support() -> bool:
    """
    Check if the kernel supports eBPF with user-space probes.

    Returns:
        True if eBPF is supported, False otherwise
    """
    major, minor, _ = check_kernel_version()

    # uprobes/USDT through BCC need 4.1+, 4.9+ recommended
    if major < 4 or (major == 4 and minor < 9):
        logger.warning(f"Kernel version {major}.{minor} may not fully support eBPF (4.9+ recommended)")
        return False

    return True


def validate_pid(pid: int) -> bool:
    """
    Validate that a PID exists and is accessible.

    Args:
        pid: Process ID to validate

    Returns:
        True if PID is valid, False otherwise
    """
    try:
        os.kill(pid, 0)
        return True
    except OSError:
        return False


def get_process_name(pid: int) -> Optional[str]:
    """
    Get process name from PID.

    Args:
        pid: Process ID

    Returns:
        Process name or None if not found
    """
    try:
        with open(f"/proc/{pid}/comm", 'r') as f:
            return f.read().strip()
    except OSError:
        return None


def get_process_binary(pid: int) -> Optional[str]:
    """
    Resolve the executable a process runs.

    Args:
        pid: Process ID

    Returns:
        Path to the binary or None if not readable
    """
    try:
        return os.readlink(f"/proc/{pid}/exe")
    except OSError:
        return None


def has_usdt_probes(binary: str, probe: str = 'transaction__start') -> bool:
    """
    Check whether a binary was built with USDT probes.

    Looks for the probe name in the binary's contents, where the
    .note.stapsdt section stores it.

    Args:
        binary: Path to the executable
        probe: Probe name to look for

    Returns:
        True if the probe name is present
    """
    needle = probe.encode('ascii')
    try:
        with open(binary, 'rb') as f:
            tail = b''
            for chunk in iter(lambda: f.read(1 << 20), b''):
                if needle in tail + chunk:
                    return True
                tail = chunk[-len(needle):]
    except OSError as e:
        logger.warning(f"Cannot read {binary}: {e}")

    return False


def format_ms(duration_ns: int) -> str:
    """
    Format nanoseconds as milliseconds with microsecond precision.

    Args:
        duration_ns: Duration in nanoseconds

    Returns:
        Formatted string (e.g., "1.500")
    """
    return f"{duration_ns / 1_000_000:.3f}"


def format_duration(duration_ns: int) -> str:
    """
    Format duration in nanoseconds to human-readable string.

    Args:
        duration_ns: Duration in nanoseconds

    Returns:
        Formatted string (e.g., "1.5ms")
    """
    if duration_ns < 1000:
        return f"{duration_ns}ns"
    elif duration_ns < 1_000_000:
        return f"{duration_ns/1000:.1f}us"
    elif duration_ns < 1_000_000_000:
        return f"{duration_ns/1_000_000:.1f}ms"
    else:
        return f"{duration_ns/1_000_000_000:.1f}s"


def parse_threshold_ms(value: Any) -> int:
    """
    Validate a threshold given in milliseconds.

    Args:
        value: Threshold as a number or numeric string

    Returns:
        Threshold in nanoseconds

    Raises:
        InvalidThreshold: value is non-numeric, not finite or negative
    """
    if value is None or isinstance(value, bool):
        raise InvalidThreshold(value)

    try:
        threshold_ms = float(str(value).strip())
    except ValueError:
        raise InvalidThreshold(value) from None

    if not math.isfinite(threshold_ms) or threshold_ms < 0:
        raise InvalidThreshold(value)

    return int(round(threshold_ms * 1_000_000))


def check_prerequisites() -> bool:
    """
    Check all prerequisites for running the tracer.

    Returns:
        True if all prerequisites are met, False otherwise
    """
    checks = [
        ("Root privileges", check_root_privileges()),
        ("BCC installed", check_bcc_installed()),
        ("eBPF support", check_ebpf_support()),
    ]

    all_passed = True

    print("Checking prerequisites...")
    for name, passed in checks:
        status = "✓" if passed else "✗"
        print(f"  {status} {name}")

        if not passed:
            all_passed = False

    return all_passed
