"""
Utility Functions for the proxy speed test.

Display formatting for names, bandwidth and latency, and logging
setup used across the application.
"""

import re
import logging
from typing import Optional

from models import BandwidthLevel

KB = 1024
MB = KB * 1024
GB = MB * 1024

EMOJI_PATTERN = re.compile(
    "[\U0001F600-\U0001F64F\U0001F300-\U0001F5FF\U0001F680-\U0001F6FF"
    "\u2600-\u26FF\U0001F1E0-\U0001F1FF]"
)
SPACE_PATTERN = re.compile(r"\s{2,}")

BANDWIDTH_UNITS = ("B/s", "KB/s", "MB/s", "GB/s", "TB/s")


def format_name(name: str) -> str:
    """Strip emoji and collapse runs of whitespace for table display."""
    no_emoji = EMOJI_PATTERN.sub("", name)
    return SPACE_PATTERN.sub(" ", no_emoji).strip()


def format_bandwidth(value: float) -> str:
    """
    Render bytes/s in the largest fitting 1024-based unit.

    Returns:
        e.g. "12.50MB/s", or "N/A" for zero or negative values.
    """
    if value <= 0:
        return "N/A"
    for unit in BANDWIDTH_UNITS[:-1]:
        if value < 1024:
            return f"{value:.2f}{unit}"
        value /= 1024
    return f"{value:.2f}{BANDWIDTH_UNITS[-1]}"


def format_milliseconds(seconds: float) -> str:
    """Render a duration in seconds as milliseconds, or "N/A"."""
    if seconds <= 0:
        return "N/A"
    return f"{seconds * 1000:.2f}ms"


def format_bandwidth_suffix(bandwidth: float) -> str:
    """Name tag for filtered YAML output, e.g. "-12MBPS" or "-1GBPS"."""
    if bandwidth >= GB:
        return f"-{int(bandwidth / GB)}GBPS"
    if bandwidth >= MB:
        return f"-{int(bandwidth / MB)}MBPS"
    return "-0MBPS"


def bandwidth_level(bandwidth: float) -> BandwidthLevel:
    """Colour hint: below 1 MB/s is low, above 10 MB/s is high."""
    if bandwidth < MB:
        return BandwidthLevel.LOW
    if bandwidth > 10 * MB:
        return BandwidthLevel.HIGH
    return BandwidthLevel.NORMAL


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure application logging."""
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
    )
