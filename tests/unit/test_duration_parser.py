import pytest

from stampede.utils.duration_parser import format_duration, parse_duration


class TestParseDuration:
    @pytest.mark.parametrize("value,expected", [
        ("30s", 30.0),
        ("1m", 60.0),
        ("1m30s", 90.0),
        ("500ms", 0.5),
        ("2h", 7200.0),
        ("1.5", 1.5),
        (" 10s ", 10.0),
        (5, 5.0),
        (0.25, 0.25),
    ])
    def test_valid_values(self, value, expected):
        assert parse_duration(value) == pytest.approx(expected)

    def test_negative_values_are_parsed(self):
        # 음수 거부는 호출하는 쪽(StageConfig)의 책임
        assert parse_duration("-1") == -1.0
        assert parse_duration("-5s") == -5.0

    @pytest.mark.parametrize("value", ["", "abc", "1x", "1m30", "s30", True])
    def test_invalid_values(self, value):
        with pytest.raises(ValueError):
            parse_duration(value)


class TestFormatDuration:
    def test_formats(self):
        assert format_duration(0.5) == "500ms"
        assert format_duration(30) == "30s"
        assert format_duration(90) == "1m30s"
        assert format_duration(120) == "2m"
