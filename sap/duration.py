"""
Duration parsing for intervals and timeouts given on the command line.
"""


def parse_duration(duration_str: str) -> float:
    """
    Parse duration string to seconds.

    Formats:
    - "300" -> 300.0 s
    - "500ms" -> 0.5 s
    - "90s" -> 90.0 s
    - "5m" -> 300.0 s
    - "1h" -> 3600.0 s
    - "1:30" -> 90.0 s (MM:SS)
    - "1:05:30" -> 3930.0 s (HH:MM:SS)

    Args:
        duration_str: Duration string

    Returns:
        Duration in seconds

    Raises:
        ValueError: unparsable or negative duration
    """
    duration_str = duration_str.strip().lower()

    if ":" in duration_str:
        parts = [int(part) for part in duration_str.split(":")]
        if len(parts) == 2:
            minutes, seconds = parts
            result = float(minutes * 60 + seconds)
        elif len(parts) == 3:
            hours, minutes, seconds = parts
            result = float(hours * 3600 + minutes * 60 + seconds)
        else:
            raise ValueError(f"invalid duration: {duration_str!r}")
    elif duration_str.endswith("ms"):
        result = float(duration_str[:-2]) / 1000.0
    elif duration_str.endswith("s"):
        result = float(duration_str[:-1])
    elif duration_str.endswith("m"):
        result = float(duration_str[:-1]) * 60.0
    elif duration_str.endswith("h"):
        result = float(duration_str[:-1]) * 3600.0
    else:
        # No unit means seconds
        result = float(duration_str)

    if result < 0:
        raise ValueError(f"duration must not be negative: {duration_str!r}")

    return result
