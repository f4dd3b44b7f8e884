"""Export and import of learning progress as JSON.

An export holds the learner's history (quiz sessions and attempts, flashcard
reviews and domain and question schedules), not the bundled content, so it
can be imported into any install seeded with the same content.
"""
import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Optional

from secplus_tutor.db import get_connection
from secplus_tutor.models import InvalidInputError

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1

DEFAULT_EXPORT_PATH = str(Path.home() / "secplus_progress.json")

# Parents before children so foreign keys hold while importing
PROGRESS_TABLES = (
    "quiz_sessions",
    "quiz_attempts",
    "flashcard_reviews",
    "flashcard_results",
    "topic_reviews",
    "question_history",
)


def export_progress(db_path: str, now: Optional[datetime] = None) -> dict:
    conn = get_connection(db_path)
    tables = {
        table: [dict(row) for row in conn.execute(f"SELECT * FROM {table} ORDER BY rowid")]
        for table in PROGRESS_TABLES
    }
    conn.close()
    return {
        "format_version": FORMAT_VERSION,
        "exported_at": (now or datetime.now()).isoformat(),
        "tables": tables,
    }


def save_progress(db_path: str, path: str = DEFAULT_EXPORT_PATH, now: Optional[datetime] = None) -> int:
    """Write an export to ``path``; returns the number of rows saved."""
    data = export_progress(db_path, now)
    Path(path).write_text(json.dumps(data, indent=2))
    total = sum(len(rows) for rows in data["tables"].values())
    logger.info("Exported %d progress rows to %s", total, path)
    return total


def load_progress_file(path: str) -> dict:
    try:
        return json.loads(Path(path).read_text())
    except json.JSONDecodeError as e:
        raise InvalidInputError(f"{path} is not a progress export: {e}") from e


def _check_export(data) -> dict:
    if not isinstance(data, dict) or data.get("format_version") != FORMAT_VERSION:
        raise InvalidInputError(f"Expected a progress export with format_version {FORMAT_VERSION}")
    tables = data.get("tables")
    if not isinstance(tables, dict):
        raise InvalidInputError("Progress export has no tables")
    unknown = set(tables) - set(PROGRESS_TABLES)
    if unknown:
        raise InvalidInputError(f"Unknown tables in progress export: {', '.join(sorted(unknown))}")
    return tables


def import_progress(db_path: str, data: dict) -> dict[str, int]:
    """Replace all progress with an export's; returns rows imported per table.

    Nothing changes unless every row imports. Any cached quiz is dropped
    since it was generated for the old history.
    """
    tables = _check_export(data)
    conn = get_connection(db_path)
    try:
        for table in reversed(PROGRESS_TABLES):
            conn.execute(f"DELETE FROM {table}")
        conn.execute("DELETE FROM cached_quiz")
        counts = {}
        for table in PROGRESS_TABLES:
            rows = tables.get(table, [])
            columns = {r["name"] for r in conn.execute(f"PRAGMA table_info({table})")}
            for row in rows:
                if not isinstance(row, dict) or not row or set(row) - columns:
                    raise InvalidInputError(f"Unexpected row in {table}: {row!r}")
                names = list(row)
                conn.execute(
                    f"INSERT INTO {table} ({', '.join(names)}) VALUES ({', '.join('?' * len(names))})",
                    [row[name] for name in names],
                )
            counts[table] = len(rows)
        conn.commit()
    except sqlite3.IntegrityError as e:
        conn.rollback()
        raise InvalidInputError(f"Progress export does not match this install's content: {e}") from e
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
    logger.info("Imported progress: %s", counts)
    return counts
