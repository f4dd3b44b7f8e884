"""Flashcard session logic with stability-based scheduling."""
import logging
from datetime import datetime
from typing import Optional

from secplus_tutor.config import DEFAULT_CONFIG, EngineConfig
from secplus_tutor.db import get_connection
from secplus_tutor.models import DeckStats, Flashcard, FlashcardReviewState
from secplus_tutor.srs import deck_stats, due_cards, review_card

logger = logging.getLogger(__name__)


def _row_to_card(row) -> Flashcard:
    return Flashcard(
        id=row["id"],
        domain_id=row["domain_id"],
        term=row["term"],
        definition=row["definition"],
        image_url=row["image_url"],
        source=row["source"],
    )


def _row_to_state(row) -> FlashcardReviewState:
    return FlashcardReviewState(
        card_id=row["flashcard_id"],
        state=row["state"],
        stability=row["stability"],
        difficulty=row["difficulty"],
        repetitions=row["repetitions"],
        lapses=row["lapses"],
        last_reviewed=datetime.fromisoformat(row["last_reviewed"]),
        next_due=datetime.fromisoformat(row["next_due"]),
        last_outcome=row["last_outcome"],
    )


def add_flashcard(
    db_path: str, domain_id: int, term: str, definition: str,
    image_url: Optional[str] = None, source: str = "user",
) -> int:
    conn = get_connection(db_path)
    cursor = conn.execute(
        "INSERT INTO flashcards (domain_id, term, definition, image_url, source) VALUES (?, ?, ?, ?, ?)",
        (domain_id, term, definition, image_url, source),
    )
    conn.commit()
    conn.close()
    return cursor.lastrowid


def get_all_cards(db_path: str, domain_id: Optional[int] = None) -> list[Flashcard]:
    conn = get_connection(db_path)
    if domain_id is None:
        rows = conn.execute("SELECT * FROM flashcards ORDER BY id").fetchall()
    else:
        rows = conn.execute(
            "SELECT * FROM flashcards WHERE domain_id = ? ORDER BY id", (domain_id,)
        ).fetchall()
    conn.close()
    return [_row_to_card(r) for r in rows]


def get_review_states(db_path: str) -> list[FlashcardReviewState]:
    conn = get_connection(db_path)
    rows = conn.execute("SELECT * FROM flashcard_reviews").fetchall()
    conn.close()
    return [_row_to_state(r) for r in rows]


def get_review_state(db_path: str, card_id: int) -> FlashcardReviewState | None:
    conn = get_connection(db_path)
    row = conn.execute(
        "SELECT * FROM flashcard_reviews WHERE flashcard_id = ?", (card_id,)
    ).fetchone()
    conn.close()
    return _row_to_state(row) if row else None


def get_due_cards(
    db_path: str, limit: int = 15, now: Optional[datetime] = None, domain_id: Optional[int] = None,
) -> list[Flashcard]:
    """Due cards, never-reviewed first, then the most overdue."""
    cards = {c.id: c for c in get_all_cards(db_path, domain_id)}
    due = due_cards(get_review_states(db_path), list(cards), now or datetime.now())
    return [cards[card_id] for card_id in due[:limit]]


def get_cards_for_domain(db_path: str, domain_id: int, limit: int = 15) -> list[Flashcard]:
    return get_due_cards(db_path, limit=limit, domain_id=domain_id)


def record_review(
    db_path: str,
    card_id: int,
    outcome: str,
    config: EngineConfig = DEFAULT_CONFIG,
    now: Optional[datetime] = None,
) -> FlashcardReviewState:
    now = now or datetime.now()
    conn = get_connection(db_path)
    card = conn.execute("SELECT id FROM flashcards WHERE id = ?", (card_id,)).fetchone()
    conn.close()
    if card is None:
        raise LookupError(f"No flashcard with id {card_id}")

    updated = review_card(get_review_state(db_path, card_id), outcome, now, config, card_id=card_id)
    conn = get_connection(db_path)
    conn.execute(
        """INSERT INTO flashcard_reviews
        (flashcard_id, state, stability, difficulty, repetitions, lapses, last_outcome, last_reviewed, next_due)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(flashcard_id) DO UPDATE SET
            state=excluded.state, stability=excluded.stability, difficulty=excluded.difficulty,
            repetitions=excluded.repetitions, lapses=excluded.lapses, last_outcome=excluded.last_outcome,
            last_reviewed=excluded.last_reviewed, next_due=excluded.next_due""",
        (
            card_id, updated.state, updated.stability, updated.difficulty, updated.repetitions,
            updated.lapses, updated.last_outcome, updated.last_reviewed.isoformat(),
            updated.next_due.isoformat(),
        ),
    )
    conn.execute(
        "INSERT INTO flashcard_results (flashcard_id, outcome, reviewed_at) VALUES (?, ?, ?)",
        (card_id, outcome, now.isoformat()),
    )
    conn.commit()
    conn.close()
    logger.debug(
        "Card %s rated %s: %s, stability %.2f, due %s",
        card_id, outcome, updated.state, updated.stability, updated.next_due.isoformat(),
    )
    return updated


def get_deck_stats(db_path: str, config: EngineConfig = DEFAULT_CONFIG) -> DeckStats:
    card_ids = [c.id for c in get_all_cards(db_path)]
    return deck_stats(get_review_states(db_path), card_ids, config)


def reset_progress(db_path: str) -> int:
    """Forget all review history while keeping the cards themselves."""
    conn = get_connection(db_path)
    removed = conn.execute("DELETE FROM flashcard_reviews").rowcount
    conn.execute("DELETE FROM flashcard_results")
    conn.commit()
    conn.close()
    logger.info("Reset flashcard progress for %d cards", removed)
    return removed
