import pytest

from config import _flag, _seconds


@pytest.mark.parametrize("raw,expected", [("2.5", 2.5), ("abc", 10.0), ("", 10.0)])
def test_seconds_falls_back_on_bad_values(monkeypatch, raw, expected):
    monkeypatch.setenv("RIDE_TEST_TIMEOUT", raw)

    assert _seconds("RIDE_TEST_TIMEOUT", 10.0) == expected


def test_seconds_default_when_unset(monkeypatch):
    monkeypatch.delenv("RIDE_TEST_TIMEOUT", raising=False)

    assert _seconds("RIDE_TEST_TIMEOUT", 10.0) == 10.0


def test_flag_parsing(monkeypatch):
    monkeypatch.setenv("RIDE_TEST_FLAG", "off")
    assert _flag("RIDE_TEST_FLAG", True) is False

    monkeypatch.setenv("RIDE_TEST_FLAG", "Yes")
    assert _flag("RIDE_TEST_FLAG", False) is True
