import json
from datetime import datetime

import pytest

from secplus_tutor.db import get_connection, init_db
from secplus_tutor.flashcards import get_all_cards, get_review_state, record_review
from secplus_tutor.models import InvalidInputError
from secplus_tutor.progress import (
    FORMAT_VERSION, export_progress, import_progress, load_progress_file, save_progress,
)
from secplus_tutor.quiz import finish_quiz, get_attempts, get_question, get_quizzes_completed, start_quiz, submit_answer
from secplus_tutor.review import get_question_history, get_topic_performance
from secplus_tutor.seed import seed_all

NOW = datetime(2024, 7, 1, 18, 30)


def _seeded(db_path):
    init_db(db_path)
    seed_all(db_path)
    return db_path


def _study(db_path):
    session_id = start_quiz(db_path, now=NOW)
    for question_id in (1, 7, 13):
        q = get_question(db_path, question_id)
        submit_answer(db_path, session_id, q.id, q.correct_options, now=NOW)
    finish_quiz(db_path, session_id, now=NOW)
    card_id = get_all_cards(db_path)[0].id
    record_review(db_path, card_id, "good", now=NOW)
    return card_id


def test_export_lists_progress_tables(tmp_db):
    _seeded(tmp_db)
    _study(tmp_db)
    data = export_progress(tmp_db, now=NOW)
    assert data["format_version"] == FORMAT_VERSION
    assert data["exported_at"] == NOW.isoformat()
    assert len(data["tables"]["quiz_sessions"]) == 1
    assert len(data["tables"]["quiz_attempts"]) == 3
    assert len(data["tables"]["flashcard_reviews"]) == 1
    assert len(data["tables"]["topic_reviews"]) == 1


def test_saved_progress_imports_into_fresh_install(tmp_path):
    source = _seeded(str(tmp_path / "source.db"))
    target = _seeded(str(tmp_path / "target.db"))
    card_id = _study(source)
    path = tmp_path / "progress.json"

    saved = save_progress(source, str(path), now=NOW)
    counts = import_progress(target, load_progress_file(str(path)))

    assert sum(counts.values()) == saved
    assert counts["quiz_attempts"] == 3
    assert get_quizzes_completed(target) == 1
    assert get_attempts(target) == get_attempts(source)
    assert get_review_state(target, card_id) == get_review_state(source, card_id)
    assert get_topic_performance(target) == get_topic_performance(source)
    assert get_question_history(target) == get_question_history(source)


def test_import_replaces_existing_progress(tmp_path):
    source = _seeded(str(tmp_path / "source.db"))
    target = _seeded(str(tmp_path / "target.db"))
    _study(target)
    import_progress(target, export_progress(source))
    assert get_quizzes_completed(target) == 0
    assert get_attempts(target) == []
    assert get_question_history(target) == {}


# --- Edge case tests ---


def test_wrong_format_version_rejected(tmp_db):
    _seeded(tmp_db)
    _study(tmp_db)
    data = export_progress(tmp_db)
    data["format_version"] = FORMAT_VERSION + 1
    with pytest.raises(InvalidInputError):
        import_progress(tmp_db, data)
    assert get_quizzes_completed(tmp_db) == 1


def test_unknown_table_rejected(tmp_db):
    _seeded(tmp_db)
    data = {"format_version": FORMAT_VERSION, "tables": {"domains": []}}
    with pytest.raises(InvalidInputError):
        import_progress(tmp_db, data)


def test_unknown_column_rolls_back(tmp_db):
    _seeded(tmp_db)
    _study(tmp_db)
    data = export_progress(tmp_db)
    data["tables"]["question_history"][0]["hint"] = "remember me"
    with pytest.raises(InvalidInputError):
        import_progress(tmp_db, data)
    assert get_quizzes_completed(tmp_db) == 1
    assert len(get_attempts(tmp_db)) == 3


def test_progress_for_missing_question_rejected(tmp_db):
    _seeded(tmp_db)
    _study(tmp_db)
    data = export_progress(tmp_db)
    data["tables"]["quiz_attempts"][0]["question_id"] = 999
    with pytest.raises(InvalidInputError):
        import_progress(tmp_db, data)
    conn = get_connection(tmp_db)
    assert conn.execute("SELECT COUNT(*) FROM quiz_attempts").fetchone()[0] == 3
    conn.close()


def test_load_progress_file_rejects_bad_json(tmp_path):
    path = tmp_path / "progress.json"
    path.write_text("{not json")
    with pytest.raises(InvalidInputError):
        load_progress_file(str(path))


def test_load_progress_file_reads_export(tmp_path, tmp_db):
    _seeded(tmp_db)
    path = tmp_path / "progress.json"
    save_progress(tmp_db, str(path), now=NOW)
    assert load_progress_file(str(path)) == json.loads(path.read_text())
