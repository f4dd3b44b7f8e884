import pytest
from unittest.mock import patch

from secplus_tutor.app import (
    SessionExitRequested, cmd_dashboard, cmd_export, cmd_import, cmd_quiz, cmd_review, console, parse_selection,
    run_flashcard_session, run_quiz_session, session_int_prompt, session_prompt,
)
from secplus_tutor.config import DEFAULT_CONFIG
from secplus_tutor.db import init_db, get_connection
from secplus_tutor.flashcards import get_all_cards, get_review_state
from secplus_tutor.models import InvalidInputError
from secplus_tutor.quiz import get_questions_by_difficulty, get_quizzes_completed, get_sessions
from secplus_tutor.seed import seed_all


def test_session_exit_requested_is_exception():
    with pytest.raises(SessionExitRequested):
        raise SessionExitRequested()


def test_session_prompt_raises_on_q():
    with patch("secplus_tutor.app.Prompt.ask", return_value="q"):
        with pytest.raises(SessionExitRequested):
            session_prompt("test prompt")


def test_session_prompt_raises_on_menu():
    with patch("secplus_tutor.app.Prompt.ask", return_value="menu"):
        with pytest.raises(SessionExitRequested):
            session_prompt("test prompt")


def test_session_prompt_returns_normal_input():
    with patch("secplus_tutor.app.Prompt.ask", return_value="hello"):
        result = session_prompt("test prompt")
        assert result == "hello"


def test_session_int_prompt_raises_on_q():
    with patch("secplus_tutor.app.Prompt.ask", return_value="q"):
        with pytest.raises(SessionExitRequested):
            session_int_prompt("rate", choices=["1", "2", "3", "4"])


def test_session_int_prompt_returns_normal_input():
    with patch("secplus_tutor.app.Prompt.ask", return_value="3"):
        result = session_int_prompt("rate", choices=["1", "2", "3", "4"])
        assert result == 3


def test_parse_selection():
    assert parse_selection("a", 4) == {0}
    assert parse_selection("A, c", 4) == {0, 2}
    assert parse_selection("b d", 4) == {1, 3}


def test_parse_selection_rejects_bad_letters():
    with pytest.raises(InvalidInputError):
        parse_selection("e", 4)
    with pytest.raises(InvalidInputError):
        parse_selection("", 4)
    with pytest.raises(InvalidInputError):
        parse_selection("ab", 4)


def test_run_flashcard_session_records_ratings(tmp_db):
    init_db(tmp_db)
    seed_all(tmp_db)
    cards = get_all_cards(tmp_db)[:2]

    # Card 1: reveal, rate good. Card 2: reveal, rate again.
    with patch("secplus_tutor.app.Prompt.ask", side_effect=["", "3", "", "1"]):
        assert run_flashcard_session(tmp_db, cards) == 2

    assert get_review_state(tmp_db, cards[0].id).last_outcome == "good"
    assert get_review_state(tmp_db, cards[1].id).last_outcome == "again"


def test_run_flashcard_session_exits_on_q(tmp_db):
    """User types 'q' on the second card's reveal prompt; first card saved, exit raised."""
    init_db(tmp_db)
    seed_all(tmp_db)
    cards = get_all_cards(tmp_db)[:2]

    with patch("secplus_tutor.app.Prompt.ask", side_effect=["", "4", "q"]):
        with pytest.raises(SessionExitRequested):
            run_flashcard_session(tmp_db, cards)

    assert get_review_state(tmp_db, cards[0].id) is not None
    assert get_review_state(tmp_db, cards[1].id) is None


def test_run_flashcard_session_no_cards(tmp_db):
    init_db(tmp_db)
    assert run_flashcard_session(tmp_db, []) == 0


def test_run_quiz_session_exits_on_q(tmp_db):
    """User answers the first question then types 'q'; the answered part is kept."""
    init_db(tmp_db)
    seed_all(tmp_db)
    questions = get_questions_by_difficulty(tmp_db, "easy")[:2]

    with patch("secplus_tutor.app.Prompt.ask", side_effect=["a", "q"]):
        with pytest.raises(SessionExitRequested):
            run_quiz_session(tmp_db, questions)

    sessions = get_sessions(tmp_db)
    assert len(sessions) == 1
    assert [a.item_id for a in sessions[0].attempts] == [questions[0].id]


def test_run_quiz_session_quit_before_answering_discards_session(tmp_db):
    init_db(tmp_db)
    seed_all(tmp_db)
    questions = get_questions_by_difficulty(tmp_db, "easy")[:2]

    with patch("secplus_tutor.app.Prompt.ask", side_effect=["menu"]):
        with pytest.raises(SessionExitRequested):
            run_quiz_session(tmp_db, questions)

    assert get_sessions(tmp_db, completed_only=False) == []


def test_run_quiz_session_multiple_response(tmp_db):
    """Invalid input is asked again; a full match scores as correct."""
    init_db(tmp_db)
    seed_all(tmp_db)
    q = next(q for q in get_questions_by_difficulty(tmp_db, "medium") if q.item_type == "multiple")
    assert q.correct_options == frozenset({0, 2})

    with patch("secplus_tutor.app.Prompt.ask", side_effect=["z", "a,c"]):
        session = run_quiz_session(tmp_db, [q])

    assert session.completed is True
    assert session.score == 1


def test_cmd_quiz_prepares_next_quiz(tmp_db):
    init_db(tmp_db)
    seed_all(tmp_db)

    with patch("secplus_tutor.app.Prompt.ask", return_value="a"):
        cmd_quiz(tmp_db, DEFAULT_CONFIG)

    assert get_quizzes_completed(tmp_db) == 1
    assert len(get_sessions(tmp_db)[0].attempts) == 10
    conn = get_connection(tmp_db)
    row = conn.execute("SELECT COUNT(*), MAX(generated_after_quiz) FROM cached_quiz").fetchone()
    conn.close()
    assert tuple(row) == (10, 1)


def test_cmd_review_without_weak_areas(tmp_db):
    init_db(tmp_db)
    seed_all(tmp_db)
    with patch("secplus_tutor.app.Prompt.ask") as ask:
        cmd_review(tmp_db, DEFAULT_CONFIG)
    ask.assert_not_called()


def test_dashboard_without_answers_shows_no_score(tmp_db):
    init_db(tmp_db)
    seed_all(tmp_db)
    with console.capture() as capture:
        cmd_dashboard(tmp_db, DEFAULT_CONFIG)
    output = capture.get()
    assert "no data yet" in output
    assert "NEEDS WORK" not in output


def test_export_then_import_commands(tmp_path, tmp_db):
    init_db(tmp_db)
    seed_all(tmp_db)
    path = str(tmp_path / "progress.json")
    q = get_questions_by_difficulty(tmp_db, "easy")[0]
    with patch("secplus_tutor.app.Prompt.ask", side_effect=["a"]):
        run_quiz_session(tmp_db, [q], DEFAULT_CONFIG)
    with patch("secplus_tutor.app.Prompt.ask", return_value=path):
        cmd_export(tmp_db, DEFAULT_CONFIG)
    conn = get_connection(tmp_db)
    conn.execute("DELETE FROM quiz_attempts")
    conn.execute("DELETE FROM quiz_sessions")
    conn.commit()
    conn.close()
    with patch("secplus_tutor.app.Prompt.ask", return_value=path), \
            patch("secplus_tutor.app.Confirm.ask", return_value=True):
        cmd_import(tmp_db, DEFAULT_CONFIG)
    assert get_quizzes_completed(tmp_db) == 1


def test_import_command_can_be_cancelled(tmp_path, tmp_db):
    init_db(tmp_db)
    seed_all(tmp_db)
    path = tmp_path / "progress.json"
    path.write_text('{"format_version": 1, "tables": {}}')
    with patch("secplus_tutor.app.Prompt.ask", return_value=str(path)), \
            patch("secplus_tutor.app.Confirm.ask", return_value=False), \
            patch("secplus_tutor.app.import_progress") as do_import:
        cmd_import(tmp_db, DEFAULT_CONFIG)
    do_import.assert_not_called()
