import re


def convert_to_seconds(hours=0, minutes=0, seconds=0):
    """
    Converts hours, minutes, and seconds into a total duration in seconds.

    Raises:
        ValueError: If any input is negative.
    """
    if any(val < 0 for val in [hours, minutes, seconds]):
        raise ValueError("Time components cannot be negative.")
    return (hours * 3600) + (minutes * 60) + seconds


def format_seconds_to_mm_ss(total_seconds) -> str:
    """
    Converts a number of seconds into the MM:SS string shown on the timer face.
    Negative values are shown as 00:00.
    """
    total_seconds = max(0, int(total_seconds))
    minutes = total_seconds // 60
    seconds = total_seconds % 60
    return f"{minutes:02}:{seconds:02}"


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'s' if count > 1 else ''}"


def format_announcement(total_seconds: int) -> str:
    """
    Spoken phrase for a specific-time announcement.

    Examples:
        >>> format_announcement(60)
        '1 minute'
        >>> format_announcement(65)
        '1 minute and 5 seconds'
        >>> format_announcement(1)
        '1 second'
    """
    total_seconds = int(total_seconds)
    if total_seconds == 60:
        return "1 minute"
    if total_seconds > 60:
        minutes, seconds = divmod(total_seconds, 60)
        if seconds == 0:
            return _plural(minutes, "minute")
        return f"{_plural(minutes, 'minute')} and {_plural(seconds, 'second')}"
    return _plural(total_seconds, "second")


def format_seconds_to_words(total_seconds) -> str:
    """Human readable duration used in practice history ("2 minutes 5 seconds")."""
    total_seconds = max(0, int(total_seconds))
    minutes, seconds = divmod(total_seconds, 60)
    if minutes == 0:
        return f"{seconds} seconds"
    if seconds == 0:
        return _plural(minutes, "minute")
    return f"{_plural(minutes, 'minute')} {_plural(seconds, 'second')}"


_DURATION_RE = re.compile(r"(?:(?P<hours>\d+)h)?(?:(?P<minutes>\d+)m)?(?:(?P<seconds>\d+)s?)?")


def parse_time_string(time_str: str) -> int:
    """
    Parses a duration such as '1m30s', '2m', '45s' or a bare '90' into seconds.
    A trailing number without a unit counts as seconds ('1m30' is 90).
    """
    if not time_str:
        return 0
    compact = time_str.lower().replace(" ", "")
    match = _DURATION_RE.fullmatch(compact)
    if match is None or not compact:
        raise ValueError(f"Unrecognised time string: {time_str!r}")
    parts = {unit: int(value) for unit, value in match.groupdict().items() if value}
    return convert_to_seconds(**parts)
