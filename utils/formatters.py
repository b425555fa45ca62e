"""Formatting utilities for display."""
from datetime import datetime, timezone


def format_number(value):
    """Format a rule value: integral floats lose the '.0', others keep their digits."""
    if value is None:
        return "N/A"
    if isinstance(value, bool):
        raise TypeError("boolean is not a rule value")
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return repr(value)


def format_hours(value):
    """Format a timeout in hours: 24 -> '24h', None -> 'N/A'."""
    if value is None:
        return "N/A"
    return f"{format_number(value)}h"


def format_rule(threshold, timeout_hours=None):
    """One-line rule summary as shown in analysis output."""
    return f"Threshold={format_number(threshold)}, Timeout={format_hours(timeout_hours)}"


def format_timestamp(ts):
    """Format a datetime to human-readable string."""
    if ts is None:
        return "N/A"
    if isinstance(ts, str):
        return ts
    return ts.strftime("%Y-%m-%d %H:%M UTC")


def time_ago(dt):
    """Return human-readable time since dt. E.g., '3h ago', '2d ago'."""
    if dt is None:
        return "N/A"
    now = datetime.now(timezone.utc)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    delta = now - dt
    seconds = int(delta.total_seconds())

    if seconds < 60:
        return f"{seconds}s ago"
    elif seconds < 3600:
        return f"{seconds // 60}m ago"
    elif seconds < 86400:
        return f"{seconds // 3600}h ago"
    else:
        return f"{seconds // 86400}d ago"
