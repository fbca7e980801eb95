"""Utility functions for segscribe."""

import math
import os
import logging
from typing import Optional
from .exceptions import FileSystemError

logger = logging.getLogger(__name__)

DURATION_MARKER = "Duration"

def ensure_dir_exists(dir_path: str) -> None:
    """
    Ensures that a directory exists. Creates it if it doesn't.

    Args:
        dir_path: The path to the directory.

    Raises:
        FileSystemError: If the directory cannot be created due to permissions
                         or if the path exists but is not a directory.
    """
    if not dir_path:
        raise ValueError("Directory path cannot be empty.")
    try:
        if not os.path.exists(dir_path):
            os.makedirs(dir_path, exist_ok=True)
            logger.info(f"Created directory: {dir_path}")
        elif not os.path.isdir(dir_path):
            raise FileSystemError(f"Path exists but is not a directory: {dir_path}")
    except OSError as e:
        logger.error(f"Error creating or accessing directory {dir_path}: {e}", exc_info=True)
        raise FileSystemError(f"Could not create or access directory {dir_path}: {e}") from e

def find_duration_line(diagnostic_output: str) -> Optional[str]:
    """Returns the first line of ffmpeg diagnostic output mentioning the duration."""
    for line in diagnostic_output.splitlines():
        if DURATION_MARKER in line:
            return line
    return None

def parse_duration_line(line: str) -> int:
    """
    Parses an ffmpeg ``Duration: HH:MM:SS.ff, start: ...`` line into whole seconds.

    The fractional part of the seconds field is truncated.

    Args:
        line: A diagnostic line containing the duration marker.

    Returns:
        The duration in whole seconds.

    Raises:
        ValueError: If the timestamp is missing or not a three part HH:MM:SS value.
    """
    fields = line.split()
    try:
        marker_pos = next(i for i, field in enumerate(fields) if field.startswith(DURATION_MARKER))
        timestamp = fields[marker_pos + 1]
    except (StopIteration, IndexError):
        raise ValueError(f"No timestamp after duration marker in: {line!r}")

    parts = timestamp.rstrip(',').split(':')
    if len(parts) != 3:
        raise ValueError(f"Malformed duration timestamp: {timestamp!r}")

    hours, minutes, seconds = (float(part) for part in parts)
    if not all(math.isfinite(value) for value in (hours, minutes, seconds)):
        raise ValueError(f"Non-finite component in duration timestamp: {timestamp!r}")
    if hours < 0 or minutes < 0 or seconds < 0:
        raise ValueError(f"Negative component in duration timestamp: {timestamp!r}")
    return int(hours * 3600 + minutes * 60 + seconds)

def format_clock(seconds: int) -> str:
    """Formats whole seconds as HH:MM:SS for log messages."""
    seconds = max(0, int(seconds))
    hrs, rem = divmod(seconds, 3600)
    mins, secs = divmod(rem, 60)
    return f"{hrs:02d}:{mins:02d}:{secs:02d}"
