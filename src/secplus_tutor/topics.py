"""Review scheduling and coverage phases for exam domains and questions.

Every answered question reviews its domain through the flashcard memory
model, with the resulting due date converted from days into a number of
quizzes. Upcoming quizzes concentrate on a few focus domains picked by
learning phase:

1. coverage: domains that were never quizzed come first
2. focus: due domains, struggling ones ahead of learning and mastered ones
3. maintenance: mostly variety, plus any struggling or due mastered domains

Questions rest for a few quizzes after being asked. Once due again, the
ones missed before come back ahead of the rest.
"""
import math
import random
from collections import Counter
from datetime import datetime
from typing import Iterable, Mapping, Optional, Sequence

from secplus_tutor.config import DEFAULT_CONFIG, EngineConfig
from secplus_tutor.models import InvalidInputError, Question, QuestionHistory, TopicPerformance
from secplus_tutor.srs import review_card

COVERAGE = 1
FOCUS = 2
MAINTENANCE = 3

PHASE_NAMES = {COVERAGE: "Coverage", FOCUS: "Focus", MAINTENANCE: "Maintenance"}


def quiz_outcome(is_correct: bool) -> str:
    return "good" if is_correct else "again"


def is_struggling(topic: TopicPerformance, config: EngineConfig = DEFAULT_CONFIG) -> bool:
    limits = config.topics
    return (
        topic.questions_answered >= limits.struggling_min_answers
        and topic.accuracy < limits.struggling_accuracy
    )


def is_mastered(topic: TopicPerformance, config: EngineConfig = DEFAULT_CONFIG) -> bool:
    limits = config.topics
    return (
        topic.questions_answered >= limits.mastered_min_answers
        and topic.accuracy >= limits.mastered_accuracy
    )


def topic_status(topic: TopicPerformance, config: EngineConfig = DEFAULT_CONFIG) -> str:
    if topic.questions_answered == 0:
        return "uncovered"
    if is_struggling(topic, config):
        return "struggling"
    if is_mastered(topic, config):
        return "mastered"
    return "learning"


def days_to_quiz_offset(days: float, config: EngineConfig = DEFAULT_CONFIG) -> int:
    """How many quizzes from now a review ``days`` away falls; at least one."""
    if days < 0:
        raise InvalidInputError(f"days cannot be negative, got {days}")
    days_per_quiz = 7 / config.topics.quizzes_per_week
    return max(1, round(days / days_per_quiz))


def review_topic(
    topic: TopicPerformance,
    is_correct: bool,
    quiz_number: int,
    now: datetime,
    config: EngineConfig = DEFAULT_CONFIG,
) -> TopicPerformance:
    """Fold one answer from quiz ``quiz_number`` into the domain's record."""
    if quiz_number < 1:
        raise InvalidInputError(f"quiz_number must be positive, got {quiz_number}")
    memory = review_card(topic.memory, quiz_outcome(is_correct), now, config, card_id=topic.domain_id)
    days = (memory.next_due - now).total_seconds() / 86400
    return TopicPerformance(
        domain_id=topic.domain_id,
        questions_answered=topic.questions_answered + 1,
        correct_answers=topic.correct_answers + (1 if is_correct else 0),
        memory=memory,
        next_review_quiz=quiz_number + days_to_quiz_offset(days, config),
        last_review_quiz=quiz_number,
    )


def topics_due_for_review(
    topics: Iterable[TopicPerformance],
    quiz_number: int,
    config: EngineConfig = DEFAULT_CONFIG,
) -> list[TopicPerformance]:
    """Quizzed domains whose review falls on or before ``quiz_number``.

    Struggling domains come first, then learning ones, then the most overdue,
    then those the memory model rates hardest.
    """
    due = [
        t for t in topics
        if t.questions_answered > 0
        and (t.next_review_quiz is None or t.next_review_quiz <= quiz_number)
    ]

    def priority(topic):
        struggling = is_struggling(topic, config)
        learning = not struggling and not is_mastered(topic, config)
        difficulty = topic.memory.difficulty if topic.memory else 0.0
        return (not struggling, not learning, topic.next_review_quiz or 0, -difficulty, topic.domain_id)

    return sorted(due, key=priority)


def _uncovered(topics: Mapping[int, TopicPerformance], domain_ids: Sequence[int]) -> list[int]:
    return [d for d in domain_ids if d not in topics or topics[d].questions_answered == 0]


def determine_phase(
    topics: Mapping[int, TopicPerformance],
    domain_ids: Sequence[int],
    quizzes_completed: int,
    config: EngineConfig = DEFAULT_CONFIG,
) -> int:
    if not domain_ids:
        raise InvalidInputError("Cannot pick a learning phase without domains")
    if _uncovered(topics, domain_ids):
        return COVERAGE
    limits = config.topics
    mastered = sum(1 for d in domain_ids if is_mastered(topics[d], config))
    if (
        mastered / len(domain_ids) > limits.maintenance_mastered_share
        or quizzes_completed >= limits.maintenance_after_quizzes
    ):
        return MAINTENANCE
    return FOCUS


def _take(selected: list, pool: Iterable[int], limit: int) -> None:
    for domain_id in pool:
        if len(selected) >= limit:
            return
        if domain_id not in selected:
            selected.append(domain_id)


def select_focus_domains(
    topics: Mapping[int, TopicPerformance],
    domain_ids: Sequence[int],
    quizzes_completed: int,
    config: EngineConfig = DEFAULT_CONFIG,
    rng: Optional[random.Random] = None,
) -> list[int]:
    """Domains the next quiz should concentrate on, most urgent first."""
    rng = rng or random.Random()
    domain_ids = list(dict.fromkeys(domain_ids))
    count = min(config.topics.focus_count, len(domain_ids))
    phase = determine_phase(topics, domain_ids, quizzes_completed, config)

    if phase == COVERAGE:
        uncovered = _uncovered(topics, domain_ids)
        rng.shuffle(uncovered)
        return uncovered[:count]

    due = topics_due_for_review([topics[d] for d in domain_ids], quizzes_completed + 1, config)
    struggling = [t.domain_id for t in due if is_struggling(t, config)]
    mastered = [t.domain_id for t in due if is_mastered(t, config)]
    learning = [t.domain_id for t in due if t.domain_id not in struggling and t.domain_id not in mastered]

    selected = []
    if phase == FOCUS:
        # Half struggling, under a third learning, the rest mastered
        first = math.ceil(count * 5 / 10)
        second = first + math.ceil(count * 3 / 10)
        _take(selected, struggling + learning, first)
        _take(selected, learning, second)
        _take(selected, mastered, count)
    else:
        first = math.ceil(count * 2 / 10)
        second = first + math.ceil(count * 3 / 10)
        _take(selected, struggling, first)
        _take(selected, mastered, second)

    rest = [d for d in domain_ids if d not in selected]
    rng.shuffle(rest)
    _take(selected, rest, count)
    return selected


def record_question(
    history: Optional[QuestionHistory],
    question_id: int,
    is_correct: bool,
    quiz_number: int,
) -> QuestionHistory:
    if history is None:
        history = QuestionHistory(question_id=question_id, times_asked=0, times_wrong=0, last_asked_quiz=0)
    if quiz_number < history.last_asked_quiz:
        raise InvalidInputError(
            f"Question {question_id} was last asked in quiz {history.last_asked_quiz}, not before {quiz_number}"
        )
    return QuestionHistory(
        question_id=question_id,
        times_asked=history.times_asked + 1,
        times_wrong=history.times_wrong + (0 if is_correct else 1),
        last_asked_quiz=quiz_number,
    )


def is_question_due(history: QuestionHistory, quiz_number: int, config: EngineConfig = DEFAULT_CONFIG) -> bool:
    return quiz_number - history.last_asked_quiz >= config.topics.question_cooldown


def questions_due_for_review(
    histories: Iterable[QuestionHistory],
    quiz_number: int,
    config: EngineConfig = DEFAULT_CONFIG,
) -> list[QuestionHistory]:
    """Asked questions out of their cooldown, missed ones first, then the longest resting."""
    due = [h for h in histories if is_question_due(h, quiz_number, config)]
    return sorted(due, key=lambda h: (h.times_wrong == 0, h.last_asked_quiz, h.question_id))


def question_priority(
    history: Optional[QuestionHistory],
    quiz_number: int,
    config: EngineConfig = DEFAULT_CONFIG,
) -> int:
    """0 for a due question missed before, 1 for a new one, 2 for another due one, 3 while resting."""
    if history is None:
        return 1
    if not is_question_due(history, quiz_number, config):
        return 3
    return 0 if history.times_wrong else 2


def pick_question(
    candidates: Sequence[Question],
    focus: Sequence[int],
    used: Counter,
    histories: Mapping[int, QuestionHistory],
    quiz_number: int,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Question:
    """Best candidate for the next slot of a quiz being assembled.

    Focus domains win, spread evenly by how often each is already ``used``;
    within a domain, question priority decides. Remaining ties go to the
    earlier candidate, so shuffling ``candidates`` randomizes them.
    """
    if not candidates:
        raise InvalidInputError("No candidate questions to pick from")
    rank = {domain_id: i for i, domain_id in enumerate(focus)}

    def key(question):
        return (
            question.domain_id not in rank,
            used[question.domain_id],
            question_priority(histories.get(question.id), quiz_number, config),
            rank.get(question.domain_id, len(rank)),
        )

    return min(candidates, key=key)
