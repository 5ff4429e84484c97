"""Human-readable renderings of durations and earnings."""

from __future__ import annotations


def _split(total_seconds: int) -> tuple[int, int, int]:
    total_seconds = max(int(total_seconds), 0)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return hours, minutes, secs


def format_time_short(total_seconds: int) -> str:
    """Format as ``M:SS`` style, only showing (unpadded) hours when present."""
    hours, minutes, secs = _split(total_seconds)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def format_time_long(total_seconds: int) -> str:
    """Format as ``HH:MM:SS`` with padded hours."""
    hours, minutes, secs = _split(total_seconds)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_time_long_without_seconds(total_seconds: int) -> str:
    hours, minutes, _ = _split(total_seconds)
    if hours == 0 and minutes < 1:
        return "< 0:01"
    return f"{hours}:{minutes:02d}"


def format_idle_length(total_seconds: int) -> str:
    """Short unit string used in idle prompts, e.g. ``1 hr, 5 min, 3 sec``."""
    hours, minutes, secs = _split(total_seconds)
    parts: list[str] = []
    if hours:
        parts.append(f"{hours} hr")
    if minutes:
        parts.append(f"{minutes} min")
    if secs or not parts:
        parts.append(f"{secs} sec")
    return ", ".join(parts)


def format_earnings(amount: float, currency: str = "$") -> str:
    return f"{currency}{amount:,.2f}"
