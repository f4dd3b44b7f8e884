"""Seed the database with exam domains, flashcards, and the question bank."""
import json
import logging
from pathlib import Path

from secplus_tutor.config import DEFAULT_CONFIG, EngineConfig
from secplus_tutor.db import get_connection
from secplus_tutor.models import Domain, Question

logger = logging.getLogger(__name__)

CONTENT_DIR = Path(__file__).parent / "content"


def _load(name: str) -> dict:
    return json.loads((CONTENT_DIR / name).read_text())


def is_seeded(db_path: str) -> bool:
    """Check whether the database has already been seeded with domains."""
    conn = get_connection(db_path)
    count = conn.execute("SELECT COUNT(*) FROM domains").fetchone()[0]
    conn.close()
    return count > 0


def seed_domains(db_path: str) -> None:
    """Insert all exam domains from domains.json."""
    data = _load("domains.json")
    conn = get_connection(db_path)
    for domain in (Domain(**d) for d in data["domains"]):
        conn.execute(
            "INSERT OR IGNORE INTO domains (id, name, section_number, exam_weight, description) VALUES (?, ?, ?, ?, ?)",
            (domain.id, domain.name, domain.section_number, domain.exam_weight, domain.description),
        )
    conn.commit()
    conn.close()


def seed_flashcards(db_path: str) -> None:
    """Insert flashcards from flashcards.json."""
    data = _load("flashcards.json")
    conn = get_connection(db_path)
    for card in data["flashcards"]:
        conn.execute(
            "INSERT INTO flashcards (domain_id, term, definition, image_url, source) VALUES (?, ?, ?, ?, 'seeded')",
            (card["domain_id"], card["term"], card["definition"], card.get("image_url")),
        )
    conn.commit()
    conn.close()


def seed_questions(db_path: str, config: EngineConfig = DEFAULT_CONFIG) -> None:
    """Insert quiz questions from questions.json.

    Each entry is checked against the ``Question`` rules first, so a broken
    bank fails at seed time instead of mid-quiz.
    """
    data = _load("questions.json")
    conn = get_connection(db_path)
    for i, q in enumerate(data["questions"], 1):
        question = Question(
            id=i,
            domain_id=q["domain_id"],
            stem=q["stem"],
            options=q["options"],
            correct_options=q["correct_options"],
            difficulty=q["difficulty"],
            item_type=q.get("item_type", "single"),
            explanation=q.get("explanation", ""),
            max_points=q.get("max_points", config.scoring.points_per_item),
        )
        conn.execute(
            """INSERT INTO quiz_questions
            (domain_id, stem, options, correct_options, difficulty, item_type, max_points, explanation, source)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, 'seeded')""",
            (
                question.domain_id, question.stem, json.dumps(list(question.options)),
                json.dumps(sorted(question.correct_options)), question.difficulty,
                question.item_type, question.max_points, question.explanation,
            ),
        )
    conn.commit()
    conn.close()


def seed_all(db_path: str, config: EngineConfig = DEFAULT_CONFIG) -> None:
    """Run all seed functions in order."""
    if is_seeded(db_path):
        return
    seed_domains(db_path)
    seed_flashcards(db_path)
    seed_questions(db_path, config)
    logger.info("Seeded content from %s", CONTENT_DIR)
