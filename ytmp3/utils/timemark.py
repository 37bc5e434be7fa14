import math
import re
from pathlib import Path
from typing import Optional, Union

_TIMEMARK_RE = re.compile(r"^(\d+):(\d{1,2}):(\d{1,2})(?:\.\d+)?$")


def timemark_seconds(timemark: str) -> int:
    """Converts an ffmpeg time mark (HH:MM:SS[.fraction]) to whole seconds.

    The fraction is dropped.
    """
    match = _TIMEMARK_RE.match(timemark.strip())
    if not match:
        raise ValueError(f"Invalid time mark: {timemark!r}")
    hours, minutes, seconds = (int(g) for g in match.groups())
    return hours * 3600 + minutes * 60 + seconds


def progress_percent(elapsed_seconds: float, length_seconds: Optional[float]) -> Optional[int]:
    """floor(elapsed * 100 / length), or None when the length is unknown or zero."""
    if not length_seconds or length_seconds <= 0:
        return None
    return math.floor(elapsed_seconds * 100 / length_seconds)


def path_exists(path: Union[str, Path]) -> bool:
    return Path(path).exists()
