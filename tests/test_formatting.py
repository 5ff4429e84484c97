from furtherance.formatting import (
    format_earnings,
    format_idle_length,
    format_time_long,
    format_time_long_without_seconds,
    format_time_short,
)


def test_format_time_short_hides_zero_hours():
    assert format_time_short(800) == "13:20"
    assert format_time_short(5) == "00:05"
    assert format_time_short(3725) == "1:02:05"


def test_format_time_long_pads_hours():
    assert format_time_long(36082) == "10:01:22"
    assert format_time_long(0) == "00:00:00"
    assert format_time_long(-5) == "00:00:00"


def test_format_time_long_without_seconds():
    assert format_time_long_without_seconds(165) == "0:02"
    assert format_time_long_without_seconds(59) == "< 0:01"
    assert format_time_long_without_seconds(3600) == "1:00"
    assert format_time_long_without_seconds(3661) == "1:01"


def test_format_idle_length():
    assert format_idle_length(3903) == "1 hr, 5 min, 3 sec"
    assert format_idle_length(600) == "10 min"
    assert format_idle_length(0) == "0 sec"


def test_format_earnings():
    assert format_earnings(1234.5) == "$1,234.50"
    assert format_earnings(3, "€") == "€3.00"
