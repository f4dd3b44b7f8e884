"""Weak area identification and domain review scheduling."""
import logging
from datetime import datetime
from typing import Iterable, Optional

from secplus_tutor.config import DEFAULT_CONFIG, EngineConfig
from secplus_tutor.db import get_connection
from secplus_tutor.intervals import wilson_interval
from secplus_tutor.models import Attempt, FlashcardReviewState, QuestionHistory, TopicPerformance
from secplus_tutor.topics import determine_phase, record_question, review_topic, topic_status

logger = logging.getLogger(__name__)


def get_domain_accuracy(db_path: str, confidence: float = 0.95) -> list[dict]:
    """Quiz accuracy per domain with a Wilson interval, in section order."""
    conn = get_connection(db_path)
    rows = conn.execute(
        """SELECT d.id, d.name, d.section_number,
            COUNT(a.id) as total,
            COALESCE(SUM(a.is_correct), 0) as correct
        FROM domains d
        LEFT JOIN quiz_questions q ON q.domain_id = d.id
        LEFT JOIN quiz_attempts a ON a.question_id = q.id
        GROUP BY d.id
        ORDER BY d.section_number"""
    ).fetchall()
    conn.close()
    return [
        {
            "domain_id": r["id"],
            "domain_name": r["name"],
            "section_number": r["section_number"],
            "total": r["total"],
            "correct": r["correct"],
            "score": round(r["correct"] / r["total"] * 100, 1) if r["total"] else 0.0,
            "interval": wilson_interval(r["correct"], r["total"], confidence),
        }
        for r in rows
    ]


def get_weak_domains(db_path: str, threshold: float = 70.0, confidence: float = 0.95) -> list[dict]:
    """Domains whose accuracy is confidently below ``threshold`` percent.

    A domain only counts as weak when even the upper Wilson bound falls short,
    so one unlucky answer does not flag it. Weakest first.
    """
    weak = [
        d for d in get_domain_accuracy(db_path, confidence)
        if d["total"] and d["interval"].upper * 100 < threshold
    ]
    return sorted(weak, key=lambda d: (d["interval"].upper, d["score"]))


def _row_to_topic(row) -> TopicPerformance:
    return TopicPerformance(
        domain_id=row["domain_id"],
        questions_answered=row["questions_answered"],
        correct_answers=row["correct_answers"],
        memory=FlashcardReviewState(
            card_id=row["domain_id"],
            state=row["state"],
            stability=row["stability"],
            difficulty=row["difficulty"],
            repetitions=row["repetitions"],
            lapses=row["lapses"],
            last_reviewed=datetime.fromisoformat(row["last_reviewed"]),
            next_due=datetime.fromisoformat(row["next_due"]),
            last_outcome=row["last_outcome"],
        ),
        next_review_quiz=row["next_review_quiz"],
        last_review_quiz=row["last_review_quiz"],
    )


def get_topic_performance(db_path: str) -> dict[int, TopicPerformance]:
    """Review record for every domain; never-quizzed domains get an empty one."""
    conn = get_connection(db_path)
    domain_ids = [r["id"] for r in conn.execute("SELECT id FROM domains ORDER BY section_number")]
    rows = conn.execute("SELECT * FROM topic_reviews").fetchall()
    conn.close()
    stored = {r["domain_id"]: _row_to_topic(r) for r in rows}
    return {d: stored.get(d, TopicPerformance(domain_id=d)) for d in domain_ids}


def get_question_history(db_path: str) -> dict[int, QuestionHistory]:
    conn = get_connection(db_path)
    rows = conn.execute("SELECT * FROM question_history").fetchall()
    conn.close()
    return {
        r["question_id"]: QuestionHistory(
            question_id=r["question_id"],
            times_asked=r["times_asked"],
            times_wrong=r["times_wrong"],
            last_asked_quiz=r["last_asked_quiz"],
        )
        for r in rows
    }


def record_quiz_reviews(
    db_path: str,
    attempts: Iterable[Attempt],
    quiz_number: int,
    now: Optional[datetime] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> dict[int, TopicPerformance]:
    """Schedule the domains and questions a finished quiz touched.

    Returns the updated records of the domains involved.
    """
    now = now or datetime.now()
    attempts = list(attempts)
    conn = get_connection(db_path)
    domain_of = {
        r["id"]: r["domain_id"]
        for r in conn.execute("SELECT id, domain_id FROM quiz_questions").fetchall()
    }
    conn.close()
    topics = get_topic_performance(db_path)
    histories = get_question_history(db_path)

    touched = {}
    for attempt in attempts:
        topic = touched.get(domain_of[attempt.item_id], topics[domain_of[attempt.item_id]])
        # Imported history can carry review times after this quiz
        reviewed_at = max(now, topic.memory.last_reviewed) if topic.memory else now
        touched[topic.domain_id] = review_topic(topic, attempt.is_correct, quiz_number, reviewed_at, config)
        histories[attempt.item_id] = record_question(
            histories.get(attempt.item_id), attempt.item_id, attempt.is_correct, quiz_number,
        )

    conn = get_connection(db_path)
    for topic in touched.values():
        memory = topic.memory
        conn.execute(
            """INSERT OR REPLACE INTO topic_reviews
            (domain_id, questions_answered, correct_answers, state, stability, difficulty, repetitions,
             lapses, last_outcome, last_reviewed, next_due, next_review_quiz, last_review_quiz)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                topic.domain_id, topic.questions_answered, topic.correct_answers, memory.state,
                memory.stability, memory.difficulty, memory.repetitions, memory.lapses,
                memory.last_outcome, memory.last_reviewed.isoformat(), memory.next_due.isoformat(),
                topic.next_review_quiz, topic.last_review_quiz,
            ),
        )
    for attempt in attempts:
        history = histories[attempt.item_id]
        conn.execute(
            """INSERT OR REPLACE INTO question_history
            (question_id, times_asked, times_wrong, last_asked_quiz) VALUES (?, ?, ?, ?)""",
            (history.question_id, history.times_asked, history.times_wrong, history.last_asked_quiz),
        )
    conn.commit()
    conn.close()
    for topic in touched.values():
        logger.debug(
            "Domain %s after quiz %d: %.0f%% over %d, next review at quiz %s",
            topic.domain_id, quiz_number, topic.accuracy, topic.questions_answered, topic.next_review_quiz,
        )
    return touched


def get_learning_phase(db_path: str, quizzes_completed: int, config: EngineConfig = DEFAULT_CONFIG) -> int:
    topics = get_topic_performance(db_path)
    return determine_phase(topics, list(topics), quizzes_completed, config)


def get_topic_schedule(db_path: str, config: EngineConfig = DEFAULT_CONFIG) -> list[dict]:
    """Per-domain status and next review quiz, in section order."""
    topics = get_topic_performance(db_path)
    conn = get_connection(db_path)
    names = {r["id"]: r["name"] for r in conn.execute("SELECT id, name FROM domains")}
    conn.close()
    return [
        {
            "domain_id": domain_id,
            "domain_name": names[domain_id],
            "questions_answered": topic.questions_answered,
            "accuracy": round(topic.accuracy, 1),
            "status": topic_status(topic, config),
            "next_review_quiz": topic.next_review_quiz,
        }
        for domain_id, topic in topics.items()
    ]
