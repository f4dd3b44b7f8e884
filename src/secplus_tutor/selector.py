"""Difficulty selection for upcoming quiz items and pre-generated batch policy.

Every quiz serves a fixed difficulty mix (3 easy / 4 medium / 3 hard by
default) so coverage stays exam-representative whatever the learner's
ability. Selection is two-stage: the mix decides which tier the next slot
should hold, then ability may nudge that slot one tier up or down, but only
into a tier the remaining mix still has room for.
"""
import math
from collections import Counter
from typing import Optional, Sequence

from secplus_tutor.config import DEFAULT_CONFIG, EngineConfig
from secplus_tutor.models import DIFFICULTIES, BatchCheck, InvalidInputError


def target_mix(config: EngineConfig = DEFAULT_CONFIG) -> dict:
    return {tier: config.selection.difficulty_mix[tier] for tier in DIFFICULTIES}


def quiz_length(config: EngineConfig = DEFAULT_CONFIG) -> int:
    return sum(target_mix(config).values())


def baseline_schedule(config: EngineConfig = DEFAULT_CONFIG) -> tuple:
    """Spread each tier's slots evenly over the quiz.

    With the default mix this is medium, easy, hard repeated, ending on medium.
    """
    slots = []
    for rank, tier in enumerate(DIFFICULTIES):
        count = config.selection.difficulty_mix[tier]
        slots.extend(((k + 0.5) / count, rank, tier) for k in range(count))
    return tuple(tier for _, _, tier in sorted(slots))


def _remaining(served: Sequence[str], config: EngineConfig) -> dict:
    counts = Counter(served)
    unknown = set(counts) - set(DIFFICULTIES)
    if unknown:
        raise InvalidInputError(f"Unknown difficulties in history: {sorted(unknown)}")
    remaining = {tier: n - counts[tier] for tier, n in target_mix(config).items()}
    over = [tier for tier, n in remaining.items() if n < 0]
    if over:
        raise InvalidInputError(f"History already exceeds the quiz mix for: {', '.join(over)}")
    return remaining


def select_next_difficulty(
    theta: float,
    item_index: int,
    served: Optional[Sequence[str]] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> str:
    """Pick the tier for quiz slot ``item_index``.

    ``served`` lists the tiers already given in this quiz. When omitted the
    earlier slots are replayed through the same policy at this theta, so
    calling this for every index of a quiz yields ``plan_quiz(theta)``.
    """
    if not math.isfinite(theta):
        raise InvalidInputError(f"theta must be finite, got {theta}")
    schedule = baseline_schedule(config)
    if not 0 <= item_index < len(schedule):
        raise InvalidInputError(f"item_index {item_index} outside a {len(schedule)}-item quiz")
    if served is None:
        served = plan_quiz(theta, config)[:item_index]
    elif len(served) != item_index:
        raise InvalidInputError(
            f"item_index {item_index} does not match {len(served)} served items"
        )
    remaining = _remaining(served, config)

    scheduled = schedule[item_index]
    tier = scheduled
    if remaining[tier] == 0:
        open_tiers = [t for t in DIFFICULTIES if remaining[t] > 0]
        anchor = DIFFICULTIES.index(scheduled)
        tier = min(
            open_tiers,
            key=lambda t: (abs(DIFFICULTIES.index(t) - anchor), -remaining[t], DIFFICULTIES.index(t)),
        )

    threshold = config.selection.nudge_threshold
    step = 1 if theta > threshold else -1 if theta < -threshold else 0
    if step:
        nudged = DIFFICULTIES.index(tier) + step
        if 0 <= nudged < len(DIFFICULTIES) and remaining[DIFFICULTIES[nudged]] > 0:
            tier = DIFFICULTIES[nudged]
    return tier


def plan_quiz(theta: float, config: EngineConfig = DEFAULT_CONFIG) -> tuple:
    """Difficulty for every slot of a quiz generated at ability ``theta``."""
    served = []
    for index in range(quiz_length(config)):
        served.append(select_next_difficulty(theta, index, served, config))
    return tuple(served)


def is_cache_sufficient(cached_count: int, required_count: int) -> bool:
    """A pre-generated batch is only usable when it covers the whole quiz."""
    if cached_count < 0:
        raise InvalidInputError(f"cached_count cannot be negative, got {cached_count}")
    if required_count <= 0:
        raise InvalidInputError(f"required_count must be positive, got {required_count}")
    return cached_count >= required_count


def check_batch(
    difficulties: Sequence[str],
    quizzes_completed: Optional[int] = None,
    generated_after_quiz: Optional[int] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> BatchCheck:
    """Decide whether a pre-generated batch can be served as the next quiz.

    Short batches are reported, never topped up: items generated against an
    older ability estimate cannot be mixed with fresh ones without breaking
    the difficulty mix. Asking for a new batch is left to the caller.
    """
    required = quiz_length(config)
    counts = Counter(difficulties)
    gaps = {
        tier: n - counts[tier]
        for tier, n in target_mix(config).items()
        if counts[tier] < n
    }
    if not is_cache_sufficient(len(difficulties), required):
        return BatchCheck(False, "incomplete", shortfall=required - len(difficulties), mix_gaps=gaps)
    if (
        quizzes_completed is not None
        and generated_after_quiz is not None
        and generated_after_quiz != quizzes_completed
    ):
        return BatchCheck(False, "stale")
    if gaps:
        return BatchCheck(False, "mix", mix_gaps=gaps)
    return BatchCheck(True, "ok")
