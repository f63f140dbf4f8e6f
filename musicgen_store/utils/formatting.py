"""
Helper functions for formatting data into human-readable strings.
"""

import re
from datetime import datetime


def format_size(bytes_size: int) -> str:
    """Formats bytes into a human-readable size string (e.g., '145.3 MB')."""
    if bytes_size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    while bytes_size >= 1024 and i < len(units) - 1:
        bytes_size /= 1024
        i += 1
    return f"{bytes_size:.1f} {units[i]}"


def format_track_date(moment: datetime | None = None) -> str:
    """Formats a timestamp the way the history list shows it (e.g., 'Oct 19, 02:15 PM')."""
    moment = moment or datetime.now()
    return moment.strftime("%b %d, %I:%M %p")


def format_track_duration(seconds: float) -> str:
    """Formats a generation length as a display string (e.g., '20s')."""
    return f"{int(round(seconds))}s"


def parse_track_duration(duration: str) -> int:
    """
    Extracts whole seconds from a display duration such as '20s' or '20'.

    Returns 0 when no number can be found.
    """
    match = re.match(r"\s*(\d+)", duration or "")
    return int(match.group(1)) if match else 0


def truncate_prompt(prompt: str, width: int = 60) -> str:
    """Shortens a prompt for single-line display."""
    prompt = " ".join(prompt.split())
    if len(prompt) <= width:
        return prompt
    return prompt[: width - 1].rstrip() + "…"
