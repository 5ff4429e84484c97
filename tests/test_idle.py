import sys

from furtherance import idle
from furtherance.idle import MacIdleProbe, default_idle_probe, parse_hid_idle_time

IOREG_SAMPLE = """
    | |   "HIDIdleTime" = 4215000000
    | |   "HIDPointerAcceleration" = 45056
"""


def test_parse_hid_idle_time():
    assert parse_hid_idle_time(IOREG_SAMPLE) == 4
    assert parse_hid_idle_time("nothing here") is None


def test_default_probe_matches_platform(monkeypatch):
    monkeypatch.setattr(sys, "platform", "linux")
    assert default_idle_probe() is None
    monkeypatch.setattr(sys, "platform", "darwin")
    assert isinstance(default_idle_probe(), MacIdleProbe)


def test_mac_probe_reads_ioreg(monkeypatch):
    class Result:
        stdout = IOREG_SAMPLE

    monkeypatch.setattr(idle.subprocess, "run", lambda *args, **kwargs: Result())
    assert MacIdleProbe().seconds_since_input() == 4
