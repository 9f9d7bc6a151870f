import pytest

from academy.services.duplicate_detection import normalize_email, normalize_phone


@pytest.mark.parametrize(
    "email,expected",
    [
        ("John.Doe+news@Gmail.com", "johndoe@gmail.com"),
        ("j.o.h.n@googlemail.com", "john@gmail.com"),
        ("first.last+tag@example.ge", "first.last@example.ge"),
        ("  plain@example.com ", "plain@example.com"),
        ("no-at-sign", "no-at-sign"),
        ("", ""),
    ],
)
def test_normalize_email(email, expected):
    assert normalize_email(email) == expected


def test_normalize_phone_keeps_digits():
    assert normalize_phone("+995 (555) 12-34-56") == "995555123456"
    assert normalize_phone(None) == ""
