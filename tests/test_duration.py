import pytest

from dictation.utils.duration import format_retry_delay, parse_retry_delay, retry_after_header


@pytest.mark.parametrize("value, expected", [
    (20, 20.0),
    (20.75, 20.75),
    ("20", 20.0),
    ("20s", 20.0),
    ("20.755467853s", 20.755467853),
    ("2m", 120.0),
    ("1m30s", 90.0),
    ("1h5m", 3900.0),
    ("Please retry in 20.7s.", 20.7),
    ('"retryDelay": "45s"', 45.0),
])
def test_parse_retry_delay(value, expected):
    assert parse_retry_delay(value) == pytest.approx(expected)


@pytest.mark.parametrize("value", [None, "", "soon", "0", "0s", 0, -5, "-5", True, float("nan")])
def test_unknown_delay_is_none(value):
    assert parse_retry_delay(value) is None


@pytest.mark.parametrize("seconds, expected", [
    (20.2, "21秒"),
    (45, "45秒"),
    (60, "1分鐘"),
    (90, "1分30秒"),
    (120, "2分鐘"),
    (None, None),
    (0, None),
])
def test_format_retry_delay(seconds, expected):
    assert format_retry_delay(seconds) == expected


def test_retry_after_header_rounds_up():
    assert retry_after_header(20.1) == "21"
    assert retry_after_header(90) == "90"
    assert retry_after_header(None) is None
