"""Database initialization and connection management."""
import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = str(Path.home() / ".secplus_tutor" / "tutor.db")

SCHEMA = """
CREATE TABLE IF NOT EXISTS domains (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    section_number INTEGER NOT NULL,
    exam_weight REAL NOT NULL,
    description TEXT
);

CREATE TABLE IF NOT EXISTS flashcards (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    domain_id INTEGER NOT NULL REFERENCES domains(id),
    term TEXT NOT NULL,
    definition TEXT NOT NULL,
    image_url TEXT,
    source TEXT DEFAULT 'seeded'
);

CREATE TABLE IF NOT EXISTS flashcard_reviews (
    flashcard_id INTEGER PRIMARY KEY REFERENCES flashcards(id) ON DELETE CASCADE,
    state TEXT NOT NULL,
    stability REAL NOT NULL,
    difficulty REAL NOT NULL,
    repetitions INTEGER NOT NULL,
    lapses INTEGER NOT NULL,
    last_outcome TEXT,
    last_reviewed TEXT NOT NULL,
    next_due TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS flashcard_results (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    flashcard_id INTEGER NOT NULL REFERENCES flashcards(id) ON DELETE CASCADE,
    outcome TEXT NOT NULL,
    reviewed_at TEXT
);

CREATE TABLE IF NOT EXISTS quiz_questions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    domain_id INTEGER NOT NULL REFERENCES domains(id),
    stem TEXT NOT NULL,
    options TEXT NOT NULL,
    correct_options TEXT NOT NULL,
    difficulty TEXT NOT NULL,
    item_type TEXT NOT NULL DEFAULT 'single',
    max_points REAL NOT NULL DEFAULT 1.0,
    explanation TEXT,
    source TEXT DEFAULT 'seeded'
);

CREATE TABLE IF NOT EXISTS quiz_sessions (
    id TEXT PRIMARY KEY,
    started_at TEXT NOT NULL,
    ended_at TEXT,
    completed INTEGER DEFAULT 0
);

CREATE TABLE IF NOT EXISTS quiz_attempts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL REFERENCES quiz_sessions(id) ON DELETE CASCADE,
    question_id INTEGER NOT NULL REFERENCES quiz_questions(id),
    difficulty TEXT NOT NULL,
    item_type TEXT NOT NULL,
    correct_options TEXT NOT NULL,
    selected_options TEXT NOT NULL,
    points_earned REAL NOT NULL,
    max_points REAL NOT NULL,
    is_correct INTEGER NOT NULL,
    answered_at TEXT,
    UNIQUE(session_id, question_id)
);

CREATE TABLE IF NOT EXISTS topic_reviews (
    domain_id INTEGER PRIMARY KEY REFERENCES domains(id),
    questions_answered INTEGER NOT NULL,
    correct_answers INTEGER NOT NULL,
    state TEXT NOT NULL,
    stability REAL NOT NULL,
    difficulty REAL NOT NULL,
    repetitions INTEGER NOT NULL,
    lapses INTEGER NOT NULL,
    last_outcome TEXT,
    last_reviewed TEXT NOT NULL,
    next_due TEXT NOT NULL,
    next_review_quiz INTEGER,
    last_review_quiz INTEGER
);

CREATE TABLE IF NOT EXISTS question_history (
    question_id INTEGER PRIMARY KEY REFERENCES quiz_questions(id),
    times_asked INTEGER NOT NULL,
    times_wrong INTEGER NOT NULL,
    last_asked_quiz INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS cached_quiz (
    position INTEGER PRIMARY KEY,
    question_id INTEGER NOT NULL REFERENCES quiz_questions(id),
    generated_for_ability REAL NOT NULL,
    generated_after_quiz INTEGER NOT NULL,
    generated_at TEXT
);
"""


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Return a SQLite connection with row factory and foreign keys enabled."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db(db_path: str = DEFAULT_DB_PATH) -> None:
    """Initialize the database, creating all tables if they don't exist."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(db_path)
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()
    logger.debug("Initialized database at %s", db_path)
