import math
import re

from ..core.errors import ConfigError

_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}
_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")


def parse_duration(value: str | int | float) -> float:
    """Parse a Go-style duration ("60s", "1m30s", "500ms") into seconds.

    A bare number is taken as seconds. Zero is allowed and means "disabled".
    """
    if isinstance(value, bool):
        raise ConfigError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = value.strip().lower()
        if not text:
            raise ConfigError("Invalid duration: empty value")
        try:
            seconds = float(text)
        except ValueError:
            pos = 0
            seconds = 0.0
            for match in _PART.finditer(text):
                if match.start() != pos:
                    break
                seconds += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
                pos = match.end()
            if pos != len(text):
                raise ConfigError(
                    f"Invalid duration {value!r}: expected e.g. '60s', '1m30s', '500ms' or '0'"
                )
    if not math.isfinite(seconds):
        raise ConfigError(f"Invalid duration: {value!r}")
    if seconds < 0:
        raise ConfigError(f"Duration must not be negative: {value!r}")
    return seconds
