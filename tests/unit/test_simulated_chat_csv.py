from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from academy.errors import ValidationError
from academy.services.chat_service import parse_simulated_chat_csv, parse_time_offset, preview_schedule


@pytest.mark.parametrize(
    "raw,expected",
    [("0", 0), ("95", 95), ("01:30", 90), ("1:02:03", 3723), (" 12 ", 12)],
)
def test_parse_time_offset(raw, expected):
    assert parse_time_offset(raw) == expected


@pytest.mark.parametrize("raw", ["", "abc", "1:2:3:4", "-5"])
def test_parse_time_offset_rejects_garbage(raw):
    with pytest.raises(ValueError):
        parse_time_offset(raw)


def test_parse_csv_with_moderator_column():
    csv_text = (
        "time,senderName,message,isFromModerator\n"
        "10,Nino,Hello everyone,false\n"
        "01:05,Host,Welcome!,TRUE\n"
    )
    rows = parse_simulated_chat_csv(csv_text)
    assert rows == [
        {"appears_at": 10, "sender_name": "Nino", "message": "Hello everyone", "is_from_moderator": False},
        {"appears_at": 65, "sender_name": "Host", "message": "Welcome!", "is_from_moderator": True},
    ]


def test_parse_csv_header_is_case_insensitive_and_moderator_optional():
    rows = parse_simulated_chat_csv("Message,SENDERNAME,Time\nhi there,Giorgi,30\n")
    assert rows == [{"appears_at": 30, "sender_name": "Giorgi", "message": "hi there", "is_from_moderator": False}]


def test_parse_csv_keeps_quoted_commas():
    rows = parse_simulated_chat_csv('time,senderName,message\n5,Ana,"Great, thanks"\n')
    assert rows[0]["message"] == "Great, thanks"


def test_parse_csv_requires_data_rows():
    with pytest.raises(ValidationError):
        parse_simulated_chat_csv("time,senderName,message\n")


def test_parse_csv_requires_columns():
    with pytest.raises(ValidationError) as exc:
        parse_simulated_chat_csv("time,name,text\n1,a,b\n")
    assert "senderName" in exc.value.message


def test_parse_csv_reports_bad_row_number():
    with pytest.raises(ValidationError) as exc:
        parse_simulated_chat_csv("time,senderName,message\n1,Ana,ok\nsoon,Ana,bad\n")
    assert "row 3" in exc.value.message


def test_preview_schedule_orders_by_offset():
    start = datetime(2026, 1, 5, 18, 0, tzinfo=timezone.utc)
    messages = [
        SimpleNamespace(id=2, sender_name="B", message="later", appears_at=120),
        SimpleNamespace(id=1, sender_name="A", message="first", appears_at=30),
    ]
    schedule = preview_schedule(messages, start)
    assert [entry["id"] for entry in schedule] == [1, 2]
    assert schedule[0]["send_at"] == datetime(2026, 1, 5, 18, 0, 30, tzinfo=timezone.utc)
    assert schedule[1]["send_at"] == datetime(2026, 1, 5, 18, 2, tzinfo=timezone.utc)
