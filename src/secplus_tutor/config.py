"""Calibration constants for the assessment and scheduling engine.

Every engine entry point takes an ``EngineConfig`` so alternate calibrations
can be exercised without patching module globals. Only the CLI reads a
config file; the engine itself never does.
"""
import json
from dataclasses import dataclass, field, fields, replace
from pathlib import Path

from secplus_tutor.models import DIFFICULTIES, InvalidInputError

DEFAULT_CONFIG_PATH = str(Path.home() / ".secplus_tutor" / "config.json")


@dataclass(frozen=True)
class IRTConfig:
    # Logit-scale difficulty (b) and discrimination (a) per tier
    difficulty_params: dict = field(
        default_factory=lambda: {"easy": -1.0, "medium": 0.0, "hard": 1.0}
    )
    discrimination_params: dict = field(
        default_factory=lambda: {"easy": 1.0, "medium": 1.5, "hard": 2.0}
    )
    theta_min: float = -3.0
    theta_max: float = 3.0
    max_iterations: int = 50
    tolerance: float = 1e-4
    max_step: float = 1.0
    max_standard_error: float = 10.0
    sufficient_data_threshold: int = 15
    base_score: float = 550.0
    scale_factor: float = 130.0
    score_min: int = 100
    score_max: int = 900


@dataclass(frozen=True)
class ScoringConfig:
    points_per_item: float = 1.0
    # Points deducted per wrong selection, in units of one correct selection
    wrong_selection_penalty: float = 1.0


@dataclass(frozen=True)
class SelectionConfig:
    difficulty_mix: dict = field(
        default_factory=lambda: {"easy": 3, "medium": 4, "hard": 3}
    )
    nudge_threshold: float = 1.0


@dataclass(frozen=True)
class SRSConfig:
    initial_stability: dict = field(
        default_factory=lambda: {"hard": 1.0, "good": 2.5, "easy": 4.0}
    )
    outcome_bonus: dict = field(
        default_factory=lambda: {"hard": 0.5, "good": 1.0, "easy": 1.5}
    )
    growth_rate: float = 1.5
    stability_decay: float = 0.3
    stability_floor: float = 0.1
    lapse_retention: float = 0.2
    initial_difficulty: float = 5.0
    difficulty_step: float = 1.0
    min_difficulty: float = 1.0
    max_difficulty: float = 10.0
    relearn_minutes: int = 10
    review_after: int = 2
    mastered_after: int = 3
    target_retention: float = 0.9


@dataclass(frozen=True)
class TopicConfig:
    # Domains a quiz concentrates on
    focus_count: int = 3
    quizzes_per_week: float = 3.5
    struggling_accuracy: float = 60.0
    struggling_min_answers: int = 2
    mastered_accuracy: float = 80.0
    mastered_min_answers: int = 3
    maintenance_mastered_share: float = 0.7
    maintenance_after_quizzes: int = 50
    # Quizzes before a question is due to be asked again
    question_cooldown: int = 3


@dataclass(frozen=True)
class EngineConfig:
    irt: IRTConfig = field(default_factory=IRTConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    selection: SelectionConfig = field(default_factory=SelectionConfig)
    srs: SRSConfig = field(default_factory=SRSConfig)
    topics: TopicConfig = field(default_factory=TopicConfig)
    confidence: float = 0.95


DEFAULT_CONFIG = EngineConfig()

_SECTIONS = ("irt", "scoring", "selection", "srs", "topics")


def _override(section, values: dict):
    known = {f.name for f in fields(section)}
    unknown = set(values) - known
    if unknown:
        raise InvalidInputError(
            f"Unknown {type(section).__name__} keys: {', '.join(sorted(unknown))}"
        )
    # Per-tier tables merge so a file can override a single tier
    merged = {}
    for key, value in values.items():
        current = getattr(section, key)
        merged[key] = {**current, **value} if isinstance(current, dict) else value
    return replace(section, **merged)


def config_from_dict(data: dict, base: EngineConfig = DEFAULT_CONFIG) -> EngineConfig:
    """Build an EngineConfig from nested override dicts.

    Sections are ``irt``, ``scoring``, ``selection``, ``srs`` and ``topics``; a top-level
    ``confidence`` key overrides the default interval confidence.
    """
    unknown = set(data) - set(_SECTIONS) - {"confidence"}
    if unknown:
        raise InvalidInputError(f"Unknown config sections: {', '.join(sorted(unknown))}")
    updates = {}
    for name in _SECTIONS:
        if name in data:
            updates[name] = _override(getattr(base, name), data[name])
    if "confidence" in data:
        updates["confidence"] = float(data["confidence"])
    config = replace(base, **updates)
    validate_config(config)
    return config


def load_config(path: str = DEFAULT_CONFIG_PATH) -> EngineConfig:
    """Read overrides from a JSON file; a missing file yields the defaults."""
    config_file = Path(path)
    if not config_file.exists():
        return DEFAULT_CONFIG
    return config_from_dict(json.loads(config_file.read_text()))


def validate_config(config: EngineConfig) -> None:
    irt = config.irt
    for name in ("difficulty_params", "discrimination_params"):
        table = getattr(irt, name)
        if set(table) != set(DIFFICULTIES):
            raise InvalidInputError(f"irt.{name} must define exactly {DIFFICULTIES}")
    if any(a <= 0 for a in irt.discrimination_params.values()):
        raise InvalidInputError("irt.discrimination_params must be positive")
    if irt.theta_min >= irt.theta_max:
        raise InvalidInputError("irt.theta_min must be below irt.theta_max")
    if irt.max_standard_error <= 0:
        raise InvalidInputError("irt.max_standard_error must be positive")
    if irt.score_min >= irt.score_max:
        raise InvalidInputError("irt.score_min must be below irt.score_max")
    if config.scoring.points_per_item <= 0:
        raise InvalidInputError("scoring.points_per_item must be positive")
    if config.scoring.wrong_selection_penalty <= 0:
        # Zero would pay full points for a superset of the correct options
        raise InvalidInputError("scoring.wrong_selection_penalty must be positive")
    mix = config.selection.difficulty_mix
    if set(mix) != set(DIFFICULTIES) or any(n < 0 for n in mix.values()) or sum(mix.values()) == 0:
        raise InvalidInputError("selection.difficulty_mix must give a non-negative count per tier")
    srs = config.srs
    for name in ("initial_stability", "outcome_bonus"):
        table = getattr(srs, name)
        if set(table) != {"hard", "good", "easy"} or any(v <= 0 for v in table.values()):
            raise InvalidInputError(f"srs.{name} must give a positive value for hard, good and easy")
    if srs.stability_floor <= 0:
        raise InvalidInputError("srs.stability_floor must be positive")
    if not 0 < srs.lapse_retention < 1:
        raise InvalidInputError("srs.lapse_retention must lie in (0, 1)")
    if not 0 < srs.review_after <= srs.mastered_after:
        raise InvalidInputError("srs.review_after must be positive and at most srs.mastered_after")
    topics = config.topics
    if topics.focus_count <= 0:
        raise InvalidInputError("topics.focus_count must be positive")
    if topics.quizzes_per_week <= 0:
        raise InvalidInputError("topics.quizzes_per_week must be positive")
    if topics.struggling_accuracy >= topics.mastered_accuracy:
        raise InvalidInputError("topics.struggling_accuracy must be below topics.mastered_accuracy")
    if not 0 < topics.maintenance_mastered_share <= 1:
        raise InvalidInputError("topics.maintenance_mastered_share must lie in (0, 1]")
    if topics.question_cooldown < 0:
        raise InvalidInputError("topics.question_cooldown cannot be negative")
    if not 0 < config.confidence < 1:
        raise InvalidInputError("confidence must lie in (0, 1)")
