import pytest

from academy.utils.numbers import percent, round_half_up
from academy.utils.pagination import MAX_LIMIT, parse_pagination


@pytest.mark.parametrize(
    "page,limit,expected",
    [
        (None, None, (1, 20)),
        ("3", "10", (3, 10)),
        ("0", "-5", (1, 20)),
        ("abc", "xyz", (1, 20)),
        (2, 1000, (2, MAX_LIMIT)),
    ],
)
def test_parse_pagination(page, limit, expected):
    pagination = parse_pagination(page, limit)
    assert (pagination.page, pagination.limit) == expected


def test_pagination_skip_and_meta():
    pagination = parse_pagination(3, 10)
    assert pagination.skip == 20
    assert pagination.meta(45) == {"page": 3, "limit": 10, "total": 45, "total_pages": 5}
    assert pagination.meta(0)["total_pages"] == 0


def test_round_half_up():
    assert round_half_up(12.5) == 13
    assert round_half_up(2.5) == 3
    assert round_half_up(33.333, 1) == 33.3
    assert isinstance(round_half_up(4.4), int)


def test_percent():
    assert percent(1, 8) == 13
    assert percent(2, 3) == 67
    assert percent(5, 0) == 0
