"""
Timestamps are stored as naive UTC and rendered with a trailing Z.
"""
import re
from datetime import datetime, timezone
from typing import Optional

_FRACTION = re.compile(r"\.(\d+)")


def to_utc_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat() + "Z"


def parse_utc_timestamp(raw: str) -> datetime:
    """Parse a GoTrue timestamp ("2024-01-31T12:00:00.12345Z") into naive UTC."""
    text = raw.strip().replace("Z", "+00:00")
    # fromisoformat before 3.11 only accepts 3 or 6 fractional digits
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
