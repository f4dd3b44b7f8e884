# tests/test_integration.py
"""End-to-end test of the core workflow."""
from collections import Counter
from datetime import datetime, timedelta

from secplus_tutor.dashboard import get_ability_over_time, get_ability_report, get_study_stats
from secplus_tutor.db import init_db
from secplus_tutor.flashcards import get_cards_for_domain, get_due_cards, record_review
from secplus_tutor.quiz import (
    finish_quiz, get_attempts, get_questions_for_domain, load_cached_quiz, pregenerate_quiz,
    start_quiz, submit_answer,
)
from secplus_tutor.irt import estimate_ability
from secplus_tutor.review import get_weak_domains
from secplus_tutor.seed import seed_all

MIX = {"easy": 3, "medium": 4, "hard": 3}
NOW = datetime(2024, 7, 1, 18, 0)


def _take(db_path, questions, answer_correctly, started):
    session_id = start_quiz(db_path, started)
    for q in questions:
        if answer_correctly(q):
            selected = q.correct_options
        else:
            selected = {min(set(range(len(q.options))) - q.correct_options)}
        submit_answer(db_path, session_id, q.id, selected, now=started)
    return finish_quiz(db_path, session_id, started + timedelta(minutes=20))


def test_full_study_workflow(tmp_db):
    """Simulate two adaptive quizzes and a flashcard session end to end."""
    init_db(tmp_db)
    seed_all(tmp_db)

    # Flashcards
    cards = get_cards_for_domain(tmp_db, 4, limit=5)
    for c in cards:
        record_review(tmp_db, c.id, "good", now=NOW)
    assert len(get_due_cards(tmp_db, limit=50, now=NOW)) == 20 - len(cards)

    # First quiz at neutral ability; the learner misses the domain 3 items
    assert pregenerate_quiz(tmp_db, 0.0, now=NOW).usable
    first = load_cached_quiz(tmp_db)
    assert Counter(q.difficulty for q in first) == MIX
    session = _take(tmp_db, first, lambda q: q.domain_id != 3 and q.difficulty != "hard", NOW)
    assert session.completed

    # Next quiz is prepared at the updated ability and is still current
    theta = estimate_ability(get_attempts(tmp_db)).theta
    assert pregenerate_quiz(tmp_db, theta, now=NOW).usable
    second = load_cached_quiz(tmp_db)
    assert second is not None
    assert Counter(q.difficulty for q in second) == MIX
    _take(tmp_db, second, lambda q: q.domain_id != 3, NOW + timedelta(days=1))

    # Dashboard
    report = get_ability_report(tmp_db)
    assert report["attempts"] == 20
    assert report["sufficient_data"] is True
    assert 100 <= report["score_interval"].lower <= report["score"] <= report["score_interval"].upper <= 900
    timeline = get_ability_over_time(tmp_db)
    assert len(timeline) == 2
    stats = get_study_stats(tmp_db)
    assert stats["quizzes_taken"] == 2
    assert stats["flashcards_reviewed"] == len(cards)
    assert stats["deck"].review == len(cards)

    # A drill on domain 3, which the learner always misses
    drill = get_questions_for_domain(tmp_db, 3, count=10)
    _take(tmp_db, drill, lambda q: False, NOW + timedelta(days=2))
    weak = get_weak_domains(tmp_db)
    assert any(w["domain_id"] == 3 for w in weak)
    assert all(w["interval"].upper < 0.7 for w in weak)
