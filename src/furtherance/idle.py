"""Operating system probes for how long the user has been away from input."""

from __future__ import annotations

import ctypes
import logging
import re
import subprocess
import sys
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class IdleProbe(Protocol):
    def seconds_since_input(self) -> int:
        """Seconds since the last keyboard or mouse input."""
        ...


class WindowsIdleProbe:
    """Detects idle time using Win32 APIs."""

    class LASTINPUTINFO(ctypes.Structure):
        _fields_ = [("cbSize", ctypes.c_uint), ("dwTime", ctypes.c_ulong)]

    def __init__(self) -> None:
        self._user32 = ctypes.windll.user32  # type: ignore[attr-defined]
        self._kernel32 = ctypes.windll.kernel32  # type: ignore[attr-defined]
        self._kernel32.GetTickCount.restype = ctypes.c_ulong

    def milliseconds_since_input(self) -> int:
        last_input = self.LASTINPUTINFO()
        last_input.cbSize = ctypes.sizeof(last_input)
        if not self._user32.GetLastInputInfo(ctypes.byref(last_input)):
            raise ctypes.WinError()  # type: ignore[attr-defined]
        # Both counters are 32-bit and wrap after ~49.7 days.
        return (self._kernel32.GetTickCount() - last_input.dwTime) & 0xFFFFFFFF

    def seconds_since_input(self) -> int:
        try:
            return self.milliseconds_since_input() // 1000
        except OSError:  # pragma: no cover - platform specific
            logger.exception("Failed to query idle state; assuming not idle.")
            return 0


_HID_IDLE_PATTERN = re.compile(r'"HIDIdleTime"\s*=\s*(\d+)')


def parse_hid_idle_time(ioreg_output: str) -> Optional[int]:
    """Extract idle seconds from ``ioreg -c IOHIDSystem`` output (nanoseconds)."""
    match = _HID_IDLE_PATTERN.search(ioreg_output)
    if match is None:
        return None
    return int(match.group(1)) // 1_000_000_000


class MacIdleProbe:
    """Reads the HID system idle counter through ``ioreg``."""

    def seconds_since_input(self) -> int:
        try:
            result = subprocess.run(
                ["ioreg", "-c", "IOHIDSystem", "-d", "4"],
                capture_output=True,
                text=True,
                check=True,
                timeout=5,
            )
        except (OSError, subprocess.SubprocessError):  # pragma: no cover
            logger.exception("Failed to query idle state; assuming not idle.")
            return 0
        seconds = parse_hid_idle_time(result.stdout)
        if seconds is None:
            logger.warning("HIDIdleTime missing from ioreg output; assuming not idle.")
            return 0
        return seconds


def default_idle_probe() -> Optional[IdleProbe]:
    """Return the idle probe for this platform, or None when unsupported."""
    if sys.platform == "win32":
        return WindowsIdleProbe()
    if sys.platform == "darwin":
        return MacIdleProbe()
    return None
