from datetime import datetime, timedelta, timezone

from moonbot.schedule import next_daily_run, seconds_until, seconds_until_daily


def test_seconds_until_next_local_midnight():
    # 23:00 in New York (EST, UTC-5)
    now = datetime(2025, 1, 15, 4, 0, tzinfo=timezone.utc)
    assert seconds_until_daily(0, "America/New_York", now) == 3600


def test_seconds_until_rolls_over_after_target_hour():
    # 00:30 in New York, so the next run is the following midnight
    now = datetime(2025, 1, 15, 5, 30, tzinfo=timezone.utc)
    assert seconds_until_daily(0, "America/New_York", now) == 23.5 * 3600


def test_seconds_until_handles_dst_change():
    # 2025-03-09 is a 23 hour day in New York
    now = datetime(2025, 3, 9, 5, 0, tzinfo=timezone.utc)
    assert seconds_until_daily(0, "America/New_York", now) == 23 * 3600


def test_next_run_after_previous_target_is_a_day_later():
    target = next_daily_run(
        0, "America/New_York", datetime(2025, 1, 15, 4, 0, tzinfo=timezone.utc)
    )
    assert target.astimezone(timezone.utc) == datetime(2025, 1, 15, 5, 0, tzinfo=timezone.utc)

    following = next_daily_run(0, "America/New_York", after=target)

    assert following.astimezone(timezone.utc) == datetime(
        2025, 1, 16, 5, 0, tzinfo=timezone.utc
    )


def test_seconds_until_does_not_go_negative():
    target = datetime(2025, 1, 15, 5, 0, tzinfo=timezone.utc)
    assert seconds_until(target, target + timedelta(seconds=3)) == 0.0
    assert seconds_until(target, target - timedelta(seconds=0.5)) == 0.5
