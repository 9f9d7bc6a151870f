import pytest

from academy.services.engagement_service import (
    EngagementFactors,
    WEIGHTS,
    _bracket_label,
    calculate_engagement_score,
    engagement_label,
)


def test_weights_sum_to_one_hundred():
    assert sum(WEIGHTS.values()) == 100


def test_fully_engaged_viewer_scores_one_hundred():
    factors = EngagementFactors(
        watch_percentage=100,
        polls_answered=2,
        total_polls=2,
        cta_clicks=1,
        total_ctas=1,
        chat_messages=5,
        completed=True,
        joined_on_time=True,
    )
    assert calculate_engagement_score(factors) == 100


def test_no_activity_scores_zero():
    assert calculate_engagement_score(EngagementFactors()) == 0


def test_partial_engagement_is_weighted():
    factors = EngagementFactors(
        watch_percentage=50,
        polls_answered=1,
        total_polls=2,
        chat_messages=1,
    )
    # 20 (watch) + 10 (polls) + 3.33 (chat) = 33.3
    assert calculate_engagement_score(factors) == pytest.approx(33.3)


def test_watch_percentage_and_cta_ratio_are_capped():
    factors = EngagementFactors(watch_percentage=150, cta_clicks=5, total_ctas=1)
    assert calculate_engagement_score(factors) == 55


def test_missing_polls_or_ctas_contribute_nothing():
    factors = EngagementFactors(watch_percentage=100, polls_answered=3, total_polls=0, cta_clicks=2, total_ctas=0)
    assert calculate_engagement_score(factors) == 40


@pytest.mark.parametrize(
    "score,label,color",
    [
        (95, "Highly Engaged", "green"),
        (80, "Highly Engaged", "green"),
        (79.9, "Engaged", "blue"),
        (40, "Moderate", "yellow"),
        (20, "Low", "orange"),
        (19.9, "Minimal", "red"),
    ],
)
def test_engagement_label(score, label, color):
    assert engagement_label(score) == {"label": label, "color": color}


def test_bracket_boundaries_use_thresholds():
    assert _bracket_label(79.5) == "Engaged (60-79)"
    assert _bracket_label(80) == "Highly Engaged (80-100)"
    assert _bracket_label(0) == "Minimal (0-19)"
