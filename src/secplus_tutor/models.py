"""Data classes for the tutor domain model."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

DIFFICULTIES = ("easy", "medium", "hard")
ITEM_TYPES = ("single", "multiple")
OUTCOMES = ("again", "hard", "good", "easy")
CARD_STATES = ("new", "learning", "review", "mastered")


class InvalidInputError(ValueError):
    """Raised when a caller hands the engine data that breaks its invariants."""


def _check_tier(difficulty: str) -> None:
    if difficulty not in DIFFICULTIES:
        raise InvalidInputError(f"Unknown difficulty {difficulty!r}; expected one of {DIFFICULTIES}")


@dataclass
class Domain:
    id: int
    name: str
    section_number: int
    exam_weight: float
    description: str = ""


@dataclass
class Flashcard:
    id: int
    domain_id: int
    term: str
    definition: str
    image_url: Optional[str] = None
    source: str = "seeded"


@dataclass(frozen=True)
class Question:
    id: int
    domain_id: int
    stem: str
    options: tuple
    correct_options: frozenset
    difficulty: str
    item_type: str = "single"
    explanation: str = ""
    max_points: float = 1.0
    source: str = "seeded"

    def __post_init__(self):
        object.__setattr__(self, "options", tuple(self.options))
        object.__setattr__(self, "correct_options", frozenset(self.correct_options))
        _check_tier(self.difficulty)
        if self.item_type not in ITEM_TYPES:
            raise InvalidInputError(f"Unknown item type {self.item_type!r}")
        if self.max_points <= 0:
            raise InvalidInputError("max_points must be positive")
        if not self.correct_options:
            raise InvalidInputError(f"Question {self.id} has no correct option")
        if self.item_type == "single" and len(self.correct_options) != 1:
            raise InvalidInputError(f"Single-select question {self.id} needs exactly one correct option")
        if any(i < 0 or i >= len(self.options) for i in self.correct_options):
            raise InvalidInputError(f"Question {self.id} marks a correct option outside its options")


@dataclass(frozen=True)
class ScoreResult:
    points_earned: float
    max_points: float
    is_correct: bool


@dataclass(frozen=True)
class Attempt:
    """One answered item. Never mutated once recorded."""
    item_id: int
    difficulty: str
    item_type: str
    correct_options: frozenset
    selected_options: frozenset
    points_earned: float
    max_points: float
    is_correct: bool
    answered_at: Optional[datetime] = None

    def __post_init__(self):
        object.__setattr__(self, "correct_options", frozenset(self.correct_options))
        object.__setattr__(self, "selected_options", frozenset(self.selected_options))
        _check_tier(self.difficulty)
        if self.item_type not in ITEM_TYPES:
            raise InvalidInputError(f"Unknown item type {self.item_type!r}")
        if self.max_points <= 0:
            raise InvalidInputError("max_points must be positive")
        if not 0 <= self.points_earned <= self.max_points:
            raise InvalidInputError(
                f"points_earned {self.points_earned} outside [0, {self.max_points}]"
            )


@dataclass(frozen=True)
class QuizSession:
    id: str
    started_at: datetime
    attempts: tuple = ()
    ended_at: Optional[datetime] = None
    completed: bool = False

    @property
    def score(self) -> int:
        return sum(1 for a in self.attempts if a.is_correct)

    @property
    def total_points(self) -> float:
        return sum(a.points_earned for a in self.attempts)

    @property
    def max_points(self) -> float:
        return sum(a.max_points for a in self.attempts)


@dataclass(frozen=True)
class AbilityEstimate:
    theta: float
    standard_error: float


@dataclass(frozen=True)
class ConfidenceInterval:
    lower: float
    upper: float

    @property
    def margin(self) -> float:
        return (self.upper - self.lower) / 2

    def contains(self, value: float) -> bool:
        return self.lower <= value <= self.upper


@dataclass(frozen=True)
class FlashcardReviewState:
    card_id: int
    state: str
    stability: float
    difficulty: float
    repetitions: int
    lapses: int
    last_reviewed: datetime
    next_due: datetime
    last_outcome: Optional[str] = None


@dataclass(frozen=True)
class DeckStats:
    new: int
    learning: int
    review: int
    mastered: int
    total: int


@dataclass(frozen=True)
class BatchCheck:
    usable: bool
    reason: str = ""
    shortfall: int = 0
    mix_gaps: dict = field(default_factory=dict)


@dataclass(frozen=True)
class TopicPerformance:
    """Quiz results and review schedule for one exam domain.

    ``memory`` uses the same stability model as flashcards, keyed by the
    domain id; review due dates are counted in quizzes, not days.
    """
    domain_id: int
    questions_answered: int = 0
    correct_answers: int = 0
    memory: Optional[FlashcardReviewState] = None
    next_review_quiz: Optional[int] = None
    last_review_quiz: Optional[int] = None

    @property
    def accuracy(self) -> float:
        if not self.questions_answered:
            return 0.0
        return self.correct_answers / self.questions_answered * 100


@dataclass(frozen=True)
class QuestionHistory:
    question_id: int
    times_asked: int
    times_wrong: int
    last_asked_quiz: int
