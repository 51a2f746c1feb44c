from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo


def next_daily_run(hour: int, tz_name: str, after: datetime | None = None) -> datetime:
    """Next `hour`:00 local time in `tz_name` strictly after `after` (aware)."""
    tz = ZoneInfo(tz_name)
    current = (after or datetime.now(timezone.utc)).astimezone(tz)
    target = current.replace(hour=hour, minute=0, second=0, microsecond=0)
    if target <= current:
        target = target + timedelta(days=1)
    return target


def seconds_until(target: datetime, now: datetime | None = None) -> float:
    # Same-tzinfo subtraction ignores DST offset changes, so go through UTC.
    current = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    delta = target.astimezone(timezone.utc) - current
    return max(delta.total_seconds(), 0.0)


def seconds_until_daily(hour: int, tz_name: str, now: datetime | None = None) -> float:
    """Seconds from `now` until the next `hour`:00 local time in `tz_name`."""
    return seconds_until(next_daily_run(hour, tz_name, now), now)
