"""Answer scoring with partial credit, and quiz session bookkeeping."""
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Optional

from secplus_tutor.config import DEFAULT_CONFIG, EngineConfig
from secplus_tutor.models import Attempt, InvalidInputError, Question, QuizSession, ScoreResult


def _selection(question: Question, selected: Iterable[int]) -> frozenset:
    picks = list(selected)
    chosen = frozenset(picks)
    if len(chosen) != len(picks):
        raise InvalidInputError(f"Selection for question {question.id} repeats an option: {picks}")
    for index in chosen:
        if isinstance(index, bool) or not isinstance(index, int):
            raise InvalidInputError(f"Option index must be an integer, got {index!r}")
        if not 0 <= index < len(question.options):
            raise InvalidInputError(
                f"Option {index} is outside question {question.id}'s {len(question.options)} options"
            )
    if question.item_type == "single" and len(chosen) > 1:
        raise InvalidInputError(f"Single-select question {question.id} accepts one option, got {len(chosen)}")
    return chosen


def score(question: Question, selected: Iterable[int], config: EngineConfig = DEFAULT_CONFIG) -> ScoreResult:
    """Score one answer.

    Single-select items earn all or nothing; an empty selection counts as
    unanswered. Multi-select items are correct only on an exact match; short
    of that they earn ``(hits - penalty * wrong) / len(correct)`` of the
    points, floored at zero.
    """
    chosen = _selection(question, selected)
    max_points = question.max_points
    correct = question.correct_options
    is_correct = chosen == correct

    if is_correct:
        return ScoreResult(max_points, max_points, True)
    if question.item_type == "single":
        return ScoreResult(0.0, max_points, False)

    hits = len(chosen & correct)
    wrong = len(chosen - correct)
    ratio = max(0.0, (hits - config.scoring.wrong_selection_penalty * wrong) / len(correct))
    # With a positive penalty, anything short of an exact match stays below full credit
    return ScoreResult(ratio * max_points, max_points, False)


def build_attempt(
    question: Question,
    selected: Iterable[int],
    answered_at: Optional[datetime] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Attempt:
    chosen = _selection(question, selected)
    result = score(question, chosen, config)
    return Attempt(
        item_id=question.id,
        difficulty=question.difficulty,
        item_type=question.item_type,
        correct_options=question.correct_options,
        selected_options=chosen,
        points_earned=result.points_earned,
        max_points=result.max_points,
        is_correct=result.is_correct,
        answered_at=answered_at,
    )


def points_based_score(total_points: float, max_points: float) -> int:
    """Fallback 100-900 score from the raw points ratio; 0 when nothing was attempted."""
    if total_points < 0 or max_points < 0 or total_points > max_points:
        raise InvalidInputError(f"Invalid points total {total_points}/{max_points}")
    if max_points == 0:
        return 0
    return max(100, min(900, round(total_points / max_points * 900)))


def start_session(session_id: str, started_at: datetime) -> QuizSession:
    return QuizSession(id=session_id, started_at=started_at)


def ensure_open(session: QuizSession) -> None:
    if session.completed:
        raise InvalidInputError(f"Quiz session {session.id} is already closed")


def record_attempt(session: QuizSession, attempt: Attempt) -> QuizSession:
    ensure_open(session)
    return replace(session, attempts=session.attempts + (attempt,))


def close_session(session: QuizSession, ended_at: datetime) -> Optional[QuizSession]:
    """Close a finished or abandoned session.

    A session with no answered items is discarded and ``None`` is returned.
    """
    ensure_open(session)
    if ended_at < session.started_at:
        raise InvalidInputError("A session cannot end before it started")
    if not session.attempts:
        return None
    return replace(session, ended_at=ended_at, completed=True)
