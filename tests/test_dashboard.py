# tests/test_dashboard.py
from datetime import datetime, timedelta

import pytest

from secplus_tutor.dashboard import (
    accuracy_by_difficulty, build_ability_report, get_ability_over_time, get_ability_report,
    get_average_recall,
    get_readiness_color, get_readiness_label, get_study_stats,
)
from secplus_tutor.db import init_db
from secplus_tutor.flashcards import get_due_cards, record_review
from secplus_tutor.models import Attempt, ConfidenceInterval
from secplus_tutor.quiz import finish_quiz, get_questions_by_difficulty, start_quiz, submit_answer
from secplus_tutor.seed import seed_all

NOW = datetime(2024, 6, 1, 12, 0)


def _attempt(difficulty, correct):
    return Attempt(
        item_id=1, difficulty=difficulty, item_type="single", correct_options={0},
        selected_options={0 if correct else 1}, points_earned=float(correct),
        max_points=1.0, is_correct=correct,
    )


def _take_quiz(db_path, questions, correct, started):
    session_id = start_quiz(db_path, started)
    for q, right in zip(questions, correct):
        selected = q.correct_options if right else {min(set(range(len(q.options))) - q.correct_options)}
        submit_answer(db_path, session_id, q.id, selected, now=started)
    return finish_quiz(db_path, session_id, started + timedelta(minutes=15))


def test_readiness_label():
    assert get_readiness_label(800) == "READY"
    assert get_readiness_label(750) == "READY"
    assert get_readiness_label(700) == "LIKELY"
    assert get_readiness_label(600) == "NEEDS WORK"
    assert get_readiness_label(400) == "NOT READY"


def test_readiness_color():
    assert get_readiness_color(900) == "green"
    assert get_readiness_color(100) == "red"


def test_ability_report_with_no_data(tmp_db):
    init_db(tmp_db)
    seed_all(tmp_db)
    report = get_ability_report(tmp_db)
    assert report["theta"] == 0.0
    assert report["standard_error"] == 10.0
    assert report["score"] == 550
    assert report["theta_interval"] == ConfidenceInterval(-3.0, 3.0)
    assert report["score_interval"] == ConfidenceInterval(160, 900)
    assert report["attempts"] == 0
    assert report["sufficient_data"] is False
    assert report["reliability"] == "Very uncertain"


def test_ability_report_bounds():
    attempts = [_attempt("easy", True), _attempt("medium", False), _attempt("hard", True),
                _attempt("medium", True), _attempt("easy", False)]
    report = build_ability_report(attempts)
    lower, upper = report["theta_interval"].lower, report["theta_interval"].upper
    assert -3.0 <= lower <= report["theta"] <= upper <= 3.0
    s_lower, s_upper = report["score_interval"].lower, report["score_interval"].upper
    assert 100 <= s_lower <= report["score"] <= s_upper <= 900


def test_ability_report_all_correct_reaches_top_score():
    report = build_ability_report([_attempt("hard", True)] * 15)
    assert report["theta"] == pytest.approx(3.0)
    assert report["score"] == 900
    assert report["score_interval"].upper == 900
    assert report["sufficient_data"] is True


def test_accuracy_by_difficulty():
    attempts = [_attempt("easy", True), _attempt("easy", True), _attempt("hard", False)]
    rows = {r["difficulty"]: r for r in accuracy_by_difficulty(attempts)}
    assert rows["easy"]["correct"] == 2
    assert rows["easy"]["accuracy"] == 100.0
    assert rows["easy"]["interval"].upper == 1.0
    assert rows["hard"]["accuracy"] == 0.0
    assert rows["medium"]["total"] == 0
    assert rows["medium"]["interval"] == ConfidenceInterval(0.0, 1.0)


def test_ability_over_time(tmp_db):
    init_db(tmp_db)
    seed_all(tmp_db)
    easy = get_questions_by_difficulty(tmp_db, "easy")
    hard = get_questions_by_difficulty(tmp_db, "hard")
    _take_quiz(tmp_db, easy[:4], [True, False, True, False], NOW)
    _take_quiz(tmp_db, hard[:4], [True, True, True, False], NOW + timedelta(days=1))
    timeline = get_ability_over_time(tmp_db)
    assert [p["quiz"] for p in timeline] == [1, 2]
    assert timeline[0]["date"] == "2024-06-01"
    assert timeline[1]["date"] == "2024-06-02"
    assert timeline[1]["theta"] > timeline[0]["theta"]
    assert timeline[1]["score"] > timeline[0]["score"]


def test_get_study_stats(tmp_db):
    init_db(tmp_db)
    seed_all(tmp_db)
    questions = get_questions_by_difficulty(tmp_db, "medium")[:4]
    _take_quiz(tmp_db, questions, [True, True, False, True], NOW)
    for card in get_due_cards(tmp_db, limit=5, now=NOW):
        record_review(tmp_db, card.id, "good", now=NOW)
    stats = get_study_stats(tmp_db)
    assert stats["quizzes_taken"] == 1
    assert stats["questions_answered"] == 4
    assert stats["avg_quiz_score"] == 75.0
    assert stats["flashcards_reviewed"] == 5
    assert stats["deck"].review == 5
    assert stats["deck"].new == 15


def test_average_recall(tmp_db):
    init_db(tmp_db)
    seed_all(tmp_db)
    assert get_average_recall(tmp_db, now=NOW) == 0.0
    card = get_due_cards(tmp_db, limit=1, now=NOW)[0]
    record_review(tmp_db, card.id, "good", now=NOW)
    assert get_average_recall(tmp_db, now=NOW) == 100.0
    assert get_average_recall(tmp_db, now=NOW + timedelta(days=2.5)) == pytest.approx(90.0)
