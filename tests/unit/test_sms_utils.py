import pytest

from academy.utils.sms import (
    calculate_sms_segments,
    extract_template_variables,
    format_phone_for_display,
    is_valid_georgian_phone,
    normalize_phone_number,
    render_sms_template,
    sms_character_info,
    truncate_for_sms,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("+995 555 12 34 56", "995555123456"),
        ("995555123456", "995555123456"),
        ("555123456", "995555123456"),
        ("0555123456", "995555123456"),
        ("555-12-34-56", "995555123456"),
        ("12345", None),
        ("", None),
        (None, None),
    ],
)
def test_normalize_phone_number(raw, expected):
    assert normalize_phone_number(raw) == expected


def test_georgian_mobile_must_start_with_five():
    assert is_valid_georgian_phone("555123456") is True
    assert is_valid_georgian_phone("995322123456") is False
    assert is_valid_georgian_phone("abc") is False


def test_format_phone_for_display():
    assert format_phone_for_display("555123456") == "+995 555 123 456"
    assert format_phone_for_display("12") == "12"


@pytest.mark.parametrize(
    "text,segments,encoding",
    [
        ("a" * 160, 1, "gsm7"),
        ("a" * 161, 2, "gsm7"),
        ("a" * 306, 2, "gsm7"),
        ("a" * 307, 3, "gsm7"),
        ("გ" * 70, 1, "unicode"),
        ("გ" * 71, 2, "unicode"),
        ("Price €5", 1, "unicode"),
        ("Café è", 1, "gsm7"),
    ],
)
def test_calculate_sms_segments(text, segments, encoding):
    assert calculate_sms_segments(text) == {"segments": segments, "encoding": encoding}


def test_sms_character_info_remaining():
    info = sms_character_info("a" * 161)
    assert info["segments"] == 2
    assert info["max_chars_per_segment"] == 160
    assert info["remaining_in_current_segment"] == 145
    assert sms_character_info("hi")["remaining_in_current_segment"] == 158


def test_render_sms_template_blanks_missing_values():
    text = render_sms_template("Hi {{name}}, join at {{time}}{{missing}}", {"name": "Nino", "time": "19:00", "missing": None})
    assert text == "Hi Nino, join at 19:00"


def test_extract_template_variables_dedupes_in_order():
    assert extract_template_variables("{{a}} {{b}} {{a}}") == ["a", "b"]


def test_truncate_for_sms():
    text, truncated = truncate_for_sms("a" * 500, max_segments=2)
    assert truncated is True
    assert len(text) == 306
    assert text.endswith("...")
    assert truncate_for_sms("short") == ("short", False)
