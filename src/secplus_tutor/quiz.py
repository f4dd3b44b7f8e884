"""Quiz engine: question bank access, quiz sessions and the pre-generated quiz cache."""
import json
import logging
import random
import uuid
from collections import Counter
from datetime import datetime
from typing import Iterable, Optional

from secplus_tutor.config import DEFAULT_CONFIG, EngineConfig
from secplus_tutor.db import get_connection
from secplus_tutor.models import Attempt, BatchCheck, InvalidInputError, Question, QuizSession
from secplus_tutor.review import get_question_history, get_topic_performance, record_quiz_reviews
from secplus_tutor.scoring import build_attempt, close_session, ensure_open, start_session
from secplus_tutor.selector import check_batch, plan_quiz
from secplus_tutor.topics import pick_question, questions_due_for_review, select_focus_domains

logger = logging.getLogger(__name__)


def _row_to_question(row) -> Question:
    return Question(
        id=row["id"],
        domain_id=row["domain_id"],
        stem=row["stem"],
        options=json.loads(row["options"]),
        correct_options=json.loads(row["correct_options"]),
        difficulty=row["difficulty"],
        item_type=row["item_type"],
        explanation=row["explanation"] or "",
        max_points=row["max_points"],
        source=row["source"],
    )


def _row_to_attempt(row) -> Attempt:
    return Attempt(
        item_id=row["question_id"],
        difficulty=row["difficulty"],
        item_type=row["item_type"],
        correct_options=json.loads(row["correct_options"]),
        selected_options=json.loads(row["selected_options"]),
        points_earned=row["points_earned"],
        max_points=row["max_points"],
        is_correct=bool(row["is_correct"]),
        answered_at=datetime.fromisoformat(row["answered_at"]) if row["answered_at"] else None,
    )


def get_question(db_path: str, question_id: int) -> Question:
    conn = get_connection(db_path)
    row = conn.execute("SELECT * FROM quiz_questions WHERE id = ?", (question_id,)).fetchone()
    conn.close()
    if row is None:
        raise LookupError(f"No question with id {question_id}")
    return _row_to_question(row)


def get_quiz_questions(db_path: str, count: int = 10) -> list[Question]:
    conn = get_connection(db_path)
    rows = conn.execute(
        "SELECT * FROM quiz_questions ORDER BY RANDOM() LIMIT ?", (count,)
    ).fetchall()
    conn.close()
    return [_row_to_question(r) for r in rows]


def get_questions_for_domain(db_path: str, domain_id: int, count: int = 10) -> list[Question]:
    conn = get_connection(db_path)
    rows = conn.execute(
        "SELECT * FROM quiz_questions WHERE domain_id = ? ORDER BY RANDOM() LIMIT ?",
        (domain_id, count),
    ).fetchall()
    conn.close()
    return [_row_to_question(r) for r in rows]


def get_questions_by_difficulty(db_path: str, difficulty: str) -> list[Question]:
    conn = get_connection(db_path)
    rows = conn.execute(
        "SELECT * FROM quiz_questions WHERE difficulty = ? ORDER BY id", (difficulty,)
    ).fetchall()
    conn.close()
    return [_row_to_question(r) for r in rows]


def start_quiz(db_path: str, now: Optional[datetime] = None) -> str:
    session = start_session(uuid.uuid4().hex, now or datetime.now())
    conn = get_connection(db_path)
    conn.execute(
        "INSERT INTO quiz_sessions (id, started_at) VALUES (?, ?)",
        (session.id, session.started_at.isoformat()),
    )
    conn.commit()
    conn.close()
    logger.info("Started quiz session %s", session.id)
    return session.id


def get_session(db_path: str, session_id: str) -> QuizSession:
    conn = get_connection(db_path)
    row = conn.execute("SELECT * FROM quiz_sessions WHERE id = ?", (session_id,)).fetchone()
    if row is None:
        conn.close()
        raise LookupError(f"No quiz session {session_id}")
    attempts = conn.execute(
        "SELECT * FROM quiz_attempts WHERE session_id = ? ORDER BY id", (session_id,)
    ).fetchall()
    conn.close()
    return QuizSession(
        id=row["id"],
        started_at=datetime.fromisoformat(row["started_at"]),
        attempts=tuple(_row_to_attempt(a) for a in attempts),
        ended_at=datetime.fromisoformat(row["ended_at"]) if row["ended_at"] else None,
        completed=bool(row["completed"]),
    )


def submit_answer(
    db_path: str,
    session_id: str,
    question_id: int,
    selected: Iterable[int],
    config: EngineConfig = DEFAULT_CONFIG,
    now: Optional[datetime] = None,
) -> Attempt:
    """Score an answer and append it to the session.

    Each question can be answered once per session.
    """
    session = get_session(db_path, session_id)
    ensure_open(session)
    if any(a.item_id == question_id for a in session.attempts):
        raise InvalidInputError(f"Question {question_id} was already answered in session {session_id}")
    question = get_question(db_path, question_id)
    attempt = build_attempt(question, selected, now or datetime.now(), config)

    conn = get_connection(db_path)
    conn.execute(
        """INSERT INTO quiz_attempts
        (session_id, question_id, difficulty, item_type, correct_options, selected_options,
         points_earned, max_points, is_correct, answered_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            session_id, question_id, attempt.difficulty, attempt.item_type,
            json.dumps(sorted(attempt.correct_options)), json.dumps(sorted(attempt.selected_options)),
            attempt.points_earned, attempt.max_points, int(attempt.is_correct),
            attempt.answered_at.isoformat(),
        ),
    )
    conn.commit()
    conn.close()
    logger.debug(
        "Session %s question %s: correct=%s points=%s/%s",
        session_id, question_id, attempt.is_correct, attempt.points_earned, attempt.max_points,
    )
    return attempt


def finish_quiz(
    db_path: str,
    session_id: str,
    now: Optional[datetime] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> QuizSession | None:
    """Close a session; one with no answers is deleted and ``None`` returned.

    A closed session counts as the next quiz and reschedules the domains and
    questions it covered.
    """
    now = now or datetime.now()
    session = get_session(db_path, session_id)
    closed = close_session(session, now)
    conn = get_connection(db_path)
    if closed is None:
        conn.execute("DELETE FROM quiz_sessions WHERE id = ?", (session_id,))
        logger.info("Discarded empty quiz session %s", session_id)
    else:
        conn.execute(
            "UPDATE quiz_sessions SET ended_at = ?, completed = 1 WHERE id = ?",
            (closed.ended_at.isoformat(), session_id),
        )
        logger.info(
            "Closed quiz session %s: %d/%d correct", session_id, closed.score, len(closed.attempts)
        )
    conn.commit()
    conn.close()
    if closed is not None:
        record_quiz_reviews(db_path, closed.attempts, get_quizzes_completed(db_path), now, config)
    return closed


def get_sessions(db_path: str, completed_only: bool = True) -> list[QuizSession]:
    conn = get_connection(db_path)
    query = "SELECT id FROM quiz_sessions"
    if completed_only:
        query += " WHERE completed = 1"
    ids = [r["id"] for r in conn.execute(query + " ORDER BY started_at, rowid").fetchall()]
    conn.close()
    return [get_session(db_path, session_id) for session_id in ids]


def get_attempts(db_path: str) -> list[Attempt]:
    """Every recorded attempt, oldest first."""
    conn = get_connection(db_path)
    rows = conn.execute("SELECT * FROM quiz_attempts ORDER BY id").fetchall()
    conn.close()
    return [_row_to_attempt(r) for r in rows]


def get_quizzes_completed(db_path: str) -> int:
    conn = get_connection(db_path)
    count = conn.execute("SELECT COUNT(*) FROM quiz_sessions WHERE completed = 1").fetchone()[0]
    conn.close()
    return count


def get_quiz_score(db_path: str) -> float:
    """Overall quiz score as percentage."""
    conn = get_connection(db_path)
    row = conn.execute(
        "SELECT COUNT(*) as total, SUM(is_correct) as correct FROM quiz_attempts"
    ).fetchone()
    conn.close()
    if row["total"] == 0:
        return 0.0
    return round((row["correct"] / row["total"]) * 100, 1)


def clear_cached_quiz(db_path: str) -> None:
    conn = get_connection(db_path)
    conn.execute("DELETE FROM cached_quiz")
    conn.commit()
    conn.close()


def pregenerate_quiz(
    db_path: str,
    theta: float,
    config: EngineConfig = DEFAULT_CONFIG,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> BatchCheck:
    """Build the next quiz ahead of time from the question bank.

    Slots follow ``plan_quiz`` for the given ability. Each slot takes a
    question from the domains the learning phase puts in focus, preferring
    missed questions that are due again over new ones and resting ones
    last. When the bank cannot fill every slot the batch is not stored and
    the returned check says why.
    """
    rng = rng or random.Random()
    completed = get_quizzes_completed(db_path)
    topics = get_topic_performance(db_path)
    focus = select_focus_domains(topics, list(topics), completed, config, rng) if topics else []
    histories = get_question_history(db_path)
    pools = {}
    used = Counter()
    chosen = []
    for tier in plan_quiz(theta, config):
        if tier not in pools:
            pools[tier] = get_questions_by_difficulty(db_path, tier)
            rng.shuffle(pools[tier])
        if pools[tier]:
            question = pick_question(pools[tier], focus, used, histories, completed + 1, config)
            pools[tier].remove(question)
            used[question.domain_id] += 1
            chosen.append(question)

    check = check_batch([q.difficulty for q in chosen], config=config)
    clear_cached_quiz(db_path)
    if not check.usable:
        logger.warning(
            "Pre-generated quiz rejected (%s): %d items short, gaps %s",
            check.reason, check.shortfall, check.mix_gaps,
        )
        return check

    generated_after = completed
    generated_at = (now or datetime.now()).isoformat()
    conn = get_connection(db_path)
    conn.executemany(
        """INSERT INTO cached_quiz
        (position, question_id, generated_for_ability, generated_after_quiz, generated_at)
        VALUES (?, ?, ?, ?, ?)""",
        [(i, q.id, theta, generated_after, generated_at) for i, q in enumerate(chosen)],
    )
    conn.commit()
    conn.close()
    logger.info("Cached %d questions generated at theta %.2f, focus domains %s", len(chosen), theta, focus)
    return check


def load_cached_quiz(db_path: str, config: EngineConfig = DEFAULT_CONFIG) -> list[Question] | None:
    """Take the cached quiz if it is complete and current; otherwise discard it.

    Returns ``None`` when there is no usable batch so the caller can ask for
    a fresh one.
    """
    conn = get_connection(db_path)
    rows = conn.execute(
        """SELECT q.*, c.generated_after_quiz FROM cached_quiz c
        JOIN quiz_questions q ON c.question_id = q.id
        ORDER BY c.position"""
    ).fetchall()
    conn.close()
    if not rows:
        return None

    questions = [_row_to_question(r) for r in rows]
    generated_after = {r["generated_after_quiz"] for r in rows}
    check = check_batch(
        [q.difficulty for q in questions],
        quizzes_completed=get_quizzes_completed(db_path),
        generated_after_quiz=generated_after.pop() if len(generated_after) == 1 else -1,
        config=config,
    )
    clear_cached_quiz(db_path)
    if not check.usable:
        logger.warning("Discarded cached quiz (%s)", check.reason)
        return None
    return questions


def get_questions_due_for_review(
    db_path: str,
    config: EngineConfig = DEFAULT_CONFIG,
    limit: int = 10,
    missed_only: bool = False,
) -> list[Question]:
    """Previously asked questions that are due again, missed ones first."""
    due = questions_due_for_review(
        get_question_history(db_path).values(), get_quizzes_completed(db_path) + 1, config,
    )
    if missed_only:
        due = [h for h in due if h.times_wrong]
    return [get_question(db_path, h.question_id) for h in due[:limit]]
