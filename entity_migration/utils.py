"""
Utility functions and classes for the entity migration CLI.
"""

from typing import Mapping


class Colors:
    """ANSI color codes for terminal output."""

    HEADER = "\033[95m"
    OKBLUE = "\033[94m"
    OKCYAN = "\033[96m"
    OKGREEN = "\033[92m"
    WARNING = "\033[93m"
    FAIL = "\033[91m"
    ENDC = "\033[0m"
    BOLD = "\033[1m"
    UNDERLINE = "\033[4m"


def format_count(count: int) -> str:
    """
    Format a row count with appropriate units.

    Args:
        count: Number of rows.

    Returns:
        Formatted string (e.g., "999", "1.2K" or "3.4M").
    """
    if count < 1000:
        return str(count)
    elif count < 1_000_000:
        return f"{count / 1000:.1f}K"
    else:
        return f"{count / 1_000_000:.1f}M"


def format_counts(counts: Mapping[str, int], width: int = 20) -> str:
    """
    Render a label -> count mapping as aligned lines.

    Args:
        counts: Mapping of label to count.
        width: Column width for the labels.

    Returns:
        One "label: count" line per entry, in mapping order.
    """
    return "\n".join(f"  {label:{width}s}: {format_count(count):>8s}" for label, count in counts.items())
