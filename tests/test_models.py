"""Tests for data model classes."""
from datetime import datetime

import pytest

from secplus_tutor.models import (
    Attempt, ConfidenceInterval, Domain, Flashcard, InvalidInputError, Question, QuizSession,
)


def test_domain_creation():
    d = Domain(id=1, name="Security Operations", section_number=4, exam_weight=0.28, description="Ops")
    assert d.name == "Security Operations"
    assert d.exam_weight == 0.28
    assert d.section_number == 4


def test_domain_default_description():
    d = Domain(id=2, name="Security Architecture", section_number=3, exam_weight=0.18)
    assert d.description == ""


def test_flashcard_defaults():
    f = Flashcard(id=1, domain_id=1, term="CIA triad", definition="Confidentiality, integrity, availability")
    assert f.image_url is None
    assert f.source == "seeded"


def test_question_normalizes_options():
    q = Question(
        id=1, domain_id=1, stem="Pick two", options=["a", "b", "c"],
        correct_options=[0, 2], difficulty="hard", item_type="multiple",
    )
    assert q.options == ("a", "b", "c")
    assert q.correct_options == frozenset({0, 2})
    assert q.max_points == 1.0
    assert q.source == "seeded"


def test_quiz_session_aggregates():
    attempts = (
        Attempt(1, "easy", "single", {0}, {0}, 1.0, 1.0, True),
        Attempt(2, "hard", "multiple", {0, 1}, {0}, 0.5, 1.0, False),
    )
    session = QuizSession(id="s", started_at=datetime(2024, 1, 1), attempts=attempts)
    assert session.score == 1
    assert session.total_points == 1.5
    assert session.max_points == 2.0
    assert session.completed is False


def test_confidence_interval_margin():
    ci = ConfidenceInterval(0.2, 0.6)
    assert ci.margin == pytest.approx(0.2)
    assert ci.contains(0.4)
    assert not ci.contains(0.7)


# --- Edge case tests ---


def test_question_unknown_difficulty():
    with pytest.raises(InvalidInputError):
        Question(id=1, domain_id=1, stem="?", options=["a", "b"], correct_options=[0], difficulty="expert")


def test_single_select_needs_one_correct_option():
    with pytest.raises(InvalidInputError):
        Question(id=1, domain_id=1, stem="?", options=["a", "b"], correct_options=[0, 1], difficulty="easy")


def test_question_correct_option_out_of_range():
    with pytest.raises(InvalidInputError):
        Question(id=1, domain_id=1, stem="?", options=["a", "b"], correct_options=[2], difficulty="easy")


def test_question_without_correct_option():
    with pytest.raises(InvalidInputError):
        Question(
            id=1, domain_id=1, stem="?", options=["a", "b"], correct_options=[],
            difficulty="easy", item_type="multiple",
        )


def test_attempt_points_cannot_exceed_max():
    with pytest.raises(InvalidInputError):
        Attempt(1, "easy", "single", {0}, {0}, 2.0, 1.0, True)


def test_attempt_max_points_positive():
    with pytest.raises(InvalidInputError):
        Attempt(1, "easy", "single", {0}, {0}, 0.0, 0.0, False)
