"""Readiness dashboard scoring and statistics."""
from datetime import datetime
from typing import Iterable, Optional

from secplus_tutor.config import DEFAULT_CONFIG, EngineConfig
from secplus_tutor.db import get_connection
from secplus_tutor.flashcards import get_deck_stats, get_review_states
from secplus_tutor.intervals import ability_interval, clamp_interval, reliability_label, wilson_interval
from secplus_tutor.irt import ability_timeline, estimate_ability, has_sufficient_data, scaled_score, score_interval
from secplus_tutor.models import DIFFICULTIES
from secplus_tutor.quiz import get_attempts, get_quiz_score, get_sessions
from secplus_tutor.srs import retrievability

PASSING_SCORE = 750


def get_readiness_label(score: float) -> str:
    if score >= PASSING_SCORE:
        return "READY"
    elif score >= 680:
        return "LIKELY"
    elif score >= 550:
        return "NEEDS WORK"
    return "NOT READY"


def get_readiness_color(score: float) -> str:
    if score >= PASSING_SCORE:
        return "green"
    elif score >= 680:
        return "yellow"
    elif score >= 550:
        return "dark_orange"
    return "red"


def build_ability_report(attempts: Iterable, config: EngineConfig = DEFAULT_CONFIG) -> dict:
    """Ability, predicted score and their intervals for a history of attempts.

    The theta interval is clamped to the ability range here, and the score
    interval is the clamped theta interval carried through the same score
    transform as the point estimate.
    """
    attempts = list(attempts)
    irt = config.irt
    estimate = estimate_ability(attempts, config)
    raw = ability_interval(estimate.theta, estimate.standard_error, config.confidence)
    theta_interval = clamp_interval(raw, irt.theta_min, irt.theta_max)
    return {
        "theta": estimate.theta,
        "standard_error": estimate.standard_error,
        "theta_interval": theta_interval,
        "margin": raw.margin,
        "score": scaled_score(estimate.theta, config),
        "score_interval": score_interval(theta_interval, config),
        "attempts": len(attempts),
        "sufficient_data": has_sufficient_data(len(attempts), config),
        "reliability": reliability_label(raw.margin, "ability"),
    }


def accuracy_by_difficulty(attempts: Iterable, config: EngineConfig = DEFAULT_CONFIG) -> list[dict]:
    totals = {tier: [0, 0] for tier in DIFFICULTIES}
    for attempt in attempts:
        totals[attempt.difficulty][1] += 1
        if attempt.is_correct:
            totals[attempt.difficulty][0] += 1
    results = []
    for tier, (correct, total) in totals.items():
        results.append({
            "difficulty": tier,
            "correct": correct,
            "total": total,
            "accuracy": round(correct / total * 100, 1) if total else 0.0,
            "interval": wilson_interval(correct, total, config.confidence),
        })
    return results


def get_ability_report(db_path: str, config: EngineConfig = DEFAULT_CONFIG) -> dict:
    return build_ability_report(get_attempts(db_path), config)


def get_ability_over_time(db_path: str, config: EngineConfig = DEFAULT_CONFIG) -> list[dict]:
    """Ability and predicted score after each completed quiz."""
    sessions = get_sessions(db_path)
    return [
        {
            "quiz": i,
            "theta": round(estimate.theta, 2),
            "score": scaled_score(estimate.theta, config),
            "date": (session.ended_at or session.started_at).date().isoformat(),
        }
        for i, (session, estimate) in enumerate(zip(sessions, ability_timeline(sessions, config)), 1)
    ]


def get_average_recall(db_path: str, config: EngineConfig = DEFAULT_CONFIG, now: Optional[datetime] = None) -> float:
    """Mean estimated recall probability over reviewed cards, as a percentage."""
    now = now or datetime.now()
    states = [s for s in get_review_states(db_path) if s.last_reviewed <= now]
    if not states:
        return 0.0
    return round(sum(retrievability(s, now, config) for s in states) / len(states) * 100, 1)


def get_study_stats(db_path: str, config: EngineConfig = DEFAULT_CONFIG) -> dict:
    conn = get_connection(db_path)
    quizzes = conn.execute("SELECT COUNT(*) FROM quiz_sessions WHERE completed = 1").fetchone()[0]
    answered = conn.execute("SELECT COUNT(*) FROM quiz_attempts").fetchone()[0]
    flashcards = conn.execute("SELECT COUNT(*) FROM flashcard_results").fetchone()[0]
    conn.close()
    return {
        "quizzes_taken": quizzes,
        "questions_answered": answered,
        "avg_quiz_score": get_quiz_score(db_path),
        "flashcards_reviewed": flashcards,
        "deck": get_deck_stats(db_path, config),
        "average_recall": get_average_recall(db_path, config),
    }
