"""Stability-based spaced repetition scheduling for flashcards.

Each card carries a memory stability S (days until recall probability decays
to the target retention) and a difficulty D in [1, 10]. A successful review
multiplies S by a growth factor that is never below 1 and shrinks as S grows;
a failed review ("again") collapses S toward a floor and brings the card back
within minutes.

Card states move new -> learning -> review -> mastered on consecutive
successes and fall back to learning on any failure.
"""
from datetime import datetime, timedelta
from typing import Iterable, Optional

from secplus_tutor.config import DEFAULT_CONFIG, EngineConfig
from secplus_tutor.models import OUTCOMES, DeckStats, FlashcardReviewState, InvalidInputError

GRADES = {"again": 1, "hard": 2, "good": 3, "easy": 4}


def new_card(card_id, now: datetime) -> FlashcardReviewState:
    """State for a card that has never been reviewed; due immediately."""
    return FlashcardReviewState(
        card_id=card_id,
        state="new",
        stability=0.0,
        difficulty=0.0,
        repetitions=0,
        lapses=0,
        last_reviewed=now,
        next_due=now,
    )


def _next_difficulty(state: FlashcardReviewState, grade: int, config: EngineConfig) -> float:
    srs = config.srs
    base = srs.initial_difficulty if state.state == "new" else state.difficulty
    difficulty = base - srs.difficulty_step * (grade - GRADES["good"])
    return min(max(difficulty, srs.min_difficulty), srs.max_difficulty)


def _grown_stability(stability: float, difficulty: float, outcome: str, config: EngineConfig) -> float:
    srs = config.srs
    if stability <= 0:
        return srs.initial_stability[outcome]
    growth = 1 + (
        srs.growth_rate
        * srs.outcome_bonus[outcome]
        * (11 - difficulty) / 10
        * stability ** -srs.stability_decay
    )
    return max(stability * growth, srs.initial_stability[outcome])


def _state_for(repetitions: int, config: EngineConfig) -> str:
    if repetitions >= config.srs.mastered_after:
        return "mastered"
    if repetitions >= config.srs.review_after:
        return "review"
    return "learning"


def review_card(
    state: Optional[FlashcardReviewState],
    outcome: str,
    now: datetime,
    config: EngineConfig = DEFAULT_CONFIG,
    card_id=None,
) -> FlashcardReviewState:
    """Apply one review outcome and return the card's next state.

    ``state`` may be ``None`` for a first review, in which case ``card_id``
    identifies the card.
    """
    if outcome not in OUTCOMES:
        raise InvalidInputError(f"Unknown review outcome {outcome!r}; expected one of {OUTCOMES}")
    if state is None:
        if card_id is None:
            raise InvalidInputError("A first review needs a card_id")
        state = new_card(card_id, now)
    if now < state.last_reviewed:
        raise InvalidInputError(
            f"Review time {now.isoformat()} precedes last review {state.last_reviewed.isoformat()}"
        )

    srs = config.srs
    difficulty = _next_difficulty(state, GRADES[outcome], config)

    if outcome == "again":
        return FlashcardReviewState(
            card_id=state.card_id,
            state="learning",
            stability=max(srs.stability_floor, state.stability * srs.lapse_retention),
            difficulty=difficulty,
            repetitions=0,
            lapses=state.lapses + (0 if state.state == "new" else 1),
            last_reviewed=now,
            next_due=now + timedelta(minutes=srs.relearn_minutes),
            last_outcome=outcome,
        )

    stability = _grown_stability(state.stability, difficulty, outcome, config)
    repetitions = state.repetitions + 1
    return FlashcardReviewState(
        card_id=state.card_id,
        state=_state_for(repetitions, config),
        stability=stability,
        difficulty=difficulty,
        repetitions=repetitions,
        lapses=state.lapses,
        last_reviewed=now,
        next_due=now + timedelta(days=stability),
        last_outcome=outcome,
    )


def retrievability(state: FlashcardReviewState, now: datetime, config: EngineConfig = DEFAULT_CONFIG) -> float:
    """Estimated recall probability; equals the target retention once S days have passed."""
    if state.state == "new" or state.stability <= 0:
        return 0.0
    elapsed_days = max(0.0, (now - state.last_reviewed).total_seconds() / 86400)
    return config.srs.target_retention ** (elapsed_days / state.stability)


def _index_states(review_states: Iterable[FlashcardReviewState]) -> dict:
    by_card = {}
    for review in review_states:
        if review.card_id in by_card:
            raise InvalidInputError(f"Duplicate review state for card {review.card_id}")
        by_card[review.card_id] = review
    return by_card


def _unique(card_ids: Iterable) -> list:
    return list(dict.fromkeys(card_ids))


def due_cards(review_states: Iterable[FlashcardReviewState], all_card_ids: Iterable, now: datetime) -> list:
    """Card ids due at ``now``.

    Never-reviewed cards come first in deck order, followed by reviewed cards
    whose due time has passed, most overdue first. States for cards not in
    the deck are ignored.
    """
    by_card = _index_states(review_states)
    fresh = []
    overdue = []
    for position, card_id in enumerate(_unique(all_card_ids)):
        review = by_card.get(card_id)
        if review is None or review.state == "new":
            fresh.append(card_id)
        elif review.next_due <= now:
            overdue.append((review.next_due, position, card_id))
    return fresh + [card_id for _, _, card_id in sorted(overdue)]


def deck_stats(
    review_states: Iterable[FlashcardReviewState],
    all_card_ids: Iterable,
    config: EngineConfig = DEFAULT_CONFIG,
) -> DeckStats:
    """Partition the deck by consecutive successful reviews.

    ``learning`` holds cards with none (never-reviewed cards included, and
    also counted in ``new``), ``review`` cards below the mastery threshold and
    ``mastered`` the rest.
    """
    by_card = _index_states(review_states)
    new = learning = review = mastered = 0
    card_ids = _unique(all_card_ids)
    for card_id in card_ids:
        state = by_card.get(card_id)
        if state is None or state.state == "new":
            new += 1
            learning += 1
        elif state.repetitions == 0:
            learning += 1
        elif state.repetitions < config.srs.mastered_after:
            review += 1
        else:
            mastered += 1
    return DeckStats(new=new, learning=learning, review=review, mastered=mastered, total=len(card_ids))
