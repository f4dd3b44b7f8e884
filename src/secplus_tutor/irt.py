"""Item Response Theory ability estimation.

Each item follows a two-parameter logistic curve

    P(correct | theta) = 1 / (1 + exp(-a * (theta - b)))

where the difficulty ``b`` and discrimination ``a`` come from the item's
declared tier (easy/medium/hard) via ``IRTConfig``. They are fixed
calibration constants, not learned online.

Ability is the maximum-likelihood theta over the learner's whole attempt
history, found by Newton-Raphson. Responses are binary and taken from the
fully-correct flag; partial credit only affects points. Histories that are
all right or all wrong have no finite maximum, so theta is clamped to
``[theta_min, theta_max]`` and the standard error is read off the Fisher
information at the clamped value.
"""
import math
from typing import Iterable, Sequence

from secplus_tutor.config import DEFAULT_CONFIG, EngineConfig
from secplus_tutor.models import AbilityEstimate, ConfidenceInterval, InvalidInputError


def _sigmoid(x: float) -> float:
    # Split on sign so exp() never overflows
    if x >= 0:
        return 1.0 / (1.0 + math.exp(-x))
    z = math.exp(x)
    return z / (1.0 + z)


def probability(theta: float, difficulty: float, discrimination: float = 1.0) -> float:
    """Probability of a correct response under the 2PL model."""
    return _sigmoid(discrimination * (theta - difficulty))


def item_information(theta: float, difficulty: float, discrimination: float = 1.0) -> float:
    """Fisher information a^2 * P * (1 - P) contributed by one item."""
    p = probability(theta, difficulty, discrimination)
    return discrimination * discrimination * p * (1.0 - p)


def item_parameters(tier: str, config: EngineConfig = DEFAULT_CONFIG) -> tuple[float, float]:
    """Return ``(difficulty, discrimination)`` for a difficulty tier."""
    irt = config.irt
    if tier not in irt.difficulty_params:
        raise InvalidInputError(f"No IRT calibration for difficulty {tier!r}")
    return irt.difficulty_params[tier], irt.discrimination_params[tier]


def _responses(attempts: Iterable, config: EngineConfig) -> list[tuple[float, float, int]]:
    responses = []
    for attempt in attempts:
        b, a = item_parameters(attempt.difficulty, config)
        responses.append((b, a, 1 if attempt.is_correct else 0))
    return responses


def _clamp(theta: float, config: EngineConfig) -> float:
    return min(max(theta, config.irt.theta_min), config.irt.theta_max)


def _information(theta: float, responses: Sequence[tuple[float, float, int]]) -> float:
    return sum(item_information(theta, b, a) for b, a, _ in responses)


def _standard_error(theta: float, responses, config: EngineConfig) -> float:
    # The ceiling enters as a floor on information, so SE reaches it only at
    # zero information and falls strictly as information grows
    floor = config.irt.max_standard_error ** -2
    return 1.0 / math.sqrt(_information(theta, responses) + floor)


def standard_error(theta: float, attempts: Iterable, config: EngineConfig = DEFAULT_CONFIG) -> float:
    """Standard error of ``theta``: 1 / sqrt(total information + 1 / max_se**2).

    Zero attempts yield exactly ``max_standard_error``; every answered item
    lowers it.
    """
    return _standard_error(theta, _responses(attempts, config), config)


def estimate_ability(attempts: Iterable, config: EngineConfig = DEFAULT_CONFIG) -> AbilityEstimate:
    """Maximum-likelihood ability estimate with its standard error.

    With no attempts this returns theta 0 and the maximal standard error.
    The result depends only on the attempts passed in, so an ordered prefix
    of a history reconstructs the estimate as it stood at that point.
    """
    irt = config.irt
    responses = _responses(attempts, config)
    if not responses:
        return AbilityEstimate(theta=_clamp(0.0, config), standard_error=irt.max_standard_error)

    theta = _clamp(0.0, config)
    for _ in range(irt.max_iterations):
        gradient = 0.0
        information = 0.0
        for b, a, y in responses:
            p = probability(theta, b, a)
            gradient += a * (y - p)
            information += a * a * p * (1.0 - p)
        if information <= 0:
            break
        step = max(-irt.max_step, min(irt.max_step, gradient / information))
        updated = _clamp(theta + step, config)
        moved = abs(updated - theta)
        theta = updated
        if moved < irt.tolerance:
            break

    return AbilityEstimate(theta=theta, standard_error=_standard_error(theta, responses, config))


def scaled_score(theta: float, config: EngineConfig = DEFAULT_CONFIG) -> int:
    """Map theta onto the 100-900 exam scale with a fixed affine transform."""
    if not math.isfinite(theta):
        raise InvalidInputError(f"theta must be finite, got {theta}")
    irt = config.irt
    raw = irt.base_score + theta * irt.scale_factor
    # Half-up rounding, matching how the exam reports scores
    return int(max(irt.score_min, min(irt.score_max, math.floor(raw + 0.5))))


def score_interval(theta_interval: ConfidenceInterval, config: EngineConfig = DEFAULT_CONFIG) -> ConfidenceInterval:
    """Carry a theta interval onto the score scale through ``scaled_score``."""
    return ConfidenceInterval(
        scaled_score(theta_interval.lower, config),
        scaled_score(theta_interval.upper, config),
    )


def has_sufficient_data(attempt_count: int, config: EngineConfig = DEFAULT_CONFIG) -> bool:
    """Whether enough items were answered for the estimate to be presented as final."""
    if attempt_count < 0:
        raise InvalidInputError(f"attempt_count cannot be negative, got {attempt_count}")
    return attempt_count >= config.irt.sufficient_data_threshold


def ability_timeline(sessions: Iterable, config: EngineConfig = DEFAULT_CONFIG) -> list[AbilityEstimate]:
    """Ability after each session, re-estimated from the cumulative history."""
    history = []
    timeline = []
    for session in sessions:
        history.extend(session.attempts)
        timeline.append(estimate_ability(history, config))
    return timeline
