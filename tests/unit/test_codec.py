"""
Unit tests for the GotoStar angle/time codec.

Tests the fixed-width DMS and HMS parsers, the DMS formatter, UTC offset
helpers and the guide rate discretization.
"""

import pytest

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

import gotostar_codec
from gotostar_codec import (
    SIDEREAL_RATE,
    code_to_guide_rate,
    format_signed_dms,
    format_utc_offset,
    guide_rate_to_code,
    parse_clock_time,
    parse_signed_dms,
    parse_time_hms,
    parse_utc_offset,
)


class TestParseSignedDMS:
    """Test parsing of s[D]DD*MM:SS# replies."""

    @pytest.mark.unit
    def test_positive_value(self):
        """Standard positive latitude should parse exactly."""
        assert parse_signed_dms('+45*30:00#') == 45.5

    @pytest.mark.unit
    def test_negative_value(self):
        """Minus sign applies to the whole value."""
        assert parse_signed_dms('-12*34:48#') == pytest.approx(-12.58)

    @pytest.mark.unit
    def test_three_digit_degrees(self):
        """Longitude and azimuth use a 3-digit degree field."""
        assert parse_signed_dms('-073*30:00#') == -73.5
        assert parse_signed_dms(' 180*00:00#') == 180.0

    @pytest.mark.unit
    def test_space_sign_is_positive(self):
        """A space in the sign position means positive."""
        assert parse_signed_dms(' 45*30:00#') == 45.5

    @pytest.mark.unit
    def test_unsigned_three_digit(self):
        """Replies without a sign character are positive."""
        assert parse_signed_dms('123*45:00#') == 123.75

    @pytest.mark.unit
    @pytest.mark.parametrize('reply', [
        '+5*30:00#',       # too short
        '+45*30:00',       # no terminator
        '+45 30:00#',      # no degree separator
        '+45*30 00#',      # no minute separator
        '+4a*30:00#',      # non-numeric degrees
        '',
    ])
    def test_malformed_reply_raises(self, reply):
        """Malformed replies should raise ValueError."""
        with pytest.raises(ValueError):
            parse_signed_dms(reply)

    @pytest.mark.unit
    def test_non_string_raises_type_error(self):
        """Non-string input should raise TypeError."""
        with pytest.raises(TypeError):
            parse_signed_dms(45.5)


class TestParseTimeHMS:
    """Test parsing of HH:MM:SS.S# replies."""

    @pytest.mark.unit
    def test_right_ascension(self):
        """Fractional seconds are included."""
        assert parse_time_hms('12:30:15.5#') == pytest.approx(12.504305, abs=1e-6)

    @pytest.mark.unit
    def test_zero(self):
        assert parse_time_hms('00:00:00.0#') == 0.0

    @pytest.mark.unit
    @pytest.mark.parametrize('reply', [
        '12:30:15#',        # wrong length
        '12:30:15.55#',     # wrong length
        '12-30:15.5#',      # bad separator
        '12:30:15.5X',      # no terminator
        '12:30:15,5#',      # decimal comma
    ])
    def test_malformed_reply_raises(self, reply):
        """Anything but the exact 11-character layout is rejected."""
        with pytest.raises(ValueError):
            parse_time_hms(reply)


class TestParseClockTime:
    """Test sidereal/local time replies."""

    @pytest.mark.unit
    def test_whole_seconds(self):
        assert parse_clock_time('06:15:30#') == pytest.approx(6.258333, abs=1e-6)

    @pytest.mark.unit
    def test_fractional_seconds(self):
        assert parse_clock_time('12:30:15.5#') == pytest.approx(12.504305, abs=1e-6)

    @pytest.mark.unit
    def test_garbage_raises(self):
        with pytest.raises(ValueError):
            parse_clock_time('noon#')


class TestFormatSignedDMS:
    """Test conversion of degrees to the outgoing DMS field."""

    @pytest.mark.unit
    def test_positive_gets_space_sign(self):
        assert format_signed_dms(45.5) == ' 45*30:00'

    @pytest.mark.unit
    def test_negative_wide(self):
        """Longitude uses the 3-digit degree field."""
        assert format_signed_dms(-73.5, wide=True) == '-073*30:00'

    @pytest.mark.unit
    def test_seconds_rounding_carries(self):
        """Seconds rounding to 60 carry into minutes and degrees."""
        assert format_signed_dms(29.999999) == ' 30*00:00'

    @pytest.mark.unit
    def test_nan_raises(self):
        with pytest.raises(ValueError):
            format_signed_dms(float('nan'))

    @pytest.mark.unit
    def test_round_trip_within_one_arcsecond(self):
        """Formatting then parsing stays within one arc-second over [-90, 90]."""
        value = -90.0
        while value <= 90.0:
            parsed = parse_signed_dms(format_signed_dms(value) + '#')
            assert abs(parsed - value) <= 1.0 / 3600.0
            value += 0.7373


class TestUTCOffset:
    """Test UTC offset parsing and formatting."""

    @pytest.mark.unit
    def test_east_is_positive(self):
        assert parse_utc_offset('E01#') == 1

    @pytest.mark.unit
    def test_west_is_negative(self):
        assert parse_utc_offset('W05#') == -5

    @pytest.mark.unit
    def test_bad_side_raises(self):
        with pytest.raises(ValueError):
            parse_utc_offset('N01#')

    @pytest.mark.unit
    def test_format(self):
        assert format_utc_offset(5) == '+05'
        assert format_utc_offset(-3) == '-03'

    @pytest.mark.unit
    def test_format_zero_uses_minus(self):
        """Only strictly positive offsets get a plus sign."""
        assert format_utc_offset(0) == '-00'


class TestGuideRate:
    """Test guide rate discretization."""

    @pytest.mark.unit
    @pytest.mark.parametrize('factor, code', [
        (1.0, '0'),
        (0.91, '0'),
        (0.89, '1'),
        (0.75, '1'),
        (0.69, '2'),
        (0.55, '2'),
        (0.49, '3'),
        (0.1, '3'),
    ])
    def test_thresholds(self, factor, code):
        """Thresholds apply to the factor, not the raw rate."""
        assert guide_rate_to_code(factor * SIDEREAL_RATE) == code

    @pytest.mark.unit
    @pytest.mark.parametrize('factor, code', [
        (0.9, '1'),
        (0.7, '2'),
        (0.5, '3'),
    ])
    def test_threshold_edges_round_down(self, monkeypatch, factor, code):
        """A factor exactly on a threshold takes the slower code."""
        monkeypatch.setattr(gotostar_codec, 'SIDEREAL_RATE', 1.0)
        assert guide_rate_to_code(factor) == code

    @pytest.mark.unit
    @pytest.mark.parametrize('code', ['0', '1', '2', '3'])
    def test_decode_then_encode_is_stable(self, code):
        """Re-encoding a decoded rate gives back the same code."""
        assert guide_rate_to_code(code_to_guide_rate(code)) == code

    @pytest.mark.unit
    def test_decode_value(self):
        assert code_to_guide_rate('1#') == pytest.approx(0.8 * 360.0 / 86400.0)

    @pytest.mark.unit
    def test_unknown_code_raises(self):
        with pytest.raises(ValueError):
            code_to_guide_rate('7')

    @pytest.mark.unit
    def test_negative_rate_raises(self):
        with pytest.raises(ValueError):
            guide_rate_to_code(-0.001)
