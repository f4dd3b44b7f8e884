"""Interactive CLI application."""
import logging
import os
import re
from string import ascii_lowercase

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from secplus_tutor.config import DEFAULT_CONFIG, DEFAULT_CONFIG_PATH, EngineConfig, load_config
from secplus_tutor.dashboard import (
    PASSING_SCORE, accuracy_by_difficulty, build_ability_report, get_ability_over_time,
    get_readiness_color, get_readiness_label, get_study_stats,
)
from secplus_tutor.db import DEFAULT_DB_PATH, init_db
from secplus_tutor.flashcards import get_cards_for_domain, get_due_cards, record_review, reset_progress
from secplus_tutor.intervals import format_interval
from secplus_tutor.irt import estimate_ability
from secplus_tutor.models import OUTCOMES, InvalidInputError, Question, QuizSession
from secplus_tutor.progress import DEFAULT_EXPORT_PATH, import_progress, load_progress_file, save_progress
from secplus_tutor.quiz import (
    finish_quiz, get_attempts, get_questions_due_for_review, get_questions_for_domain,
    get_quizzes_completed, load_cached_quiz, pregenerate_quiz, start_quiz, submit_answer,
)
from secplus_tutor.review import get_domain_accuracy, get_learning_phase, get_topic_schedule, get_weak_domains
from secplus_tutor.scoring import points_based_score
from secplus_tutor.seed import is_seeded, seed_all
from secplus_tutor.topics import PHASE_NAMES

logger = logging.getLogger(__name__)

console = Console()

EXIT_WORDS = ("q", "menu")


class SessionExitRequested(Exception):
    """Raised when the learner asks to leave a running session."""


def session_prompt(prompt: str, **kwargs) -> str:
    """``Prompt.ask`` that raises ``SessionExitRequested`` on ``q`` or ``menu``."""
    answer = Prompt.ask(prompt, **kwargs)
    if answer.strip().lower() in EXIT_WORDS:
        raise SessionExitRequested()
    return answer


def session_int_prompt(prompt: str, choices: list[str]) -> int:
    answer = session_prompt(prompt, choices=list(choices) + list(EXIT_WORDS), show_choices=False)
    return int(answer)


def configure_logging() -> None:
    level = logging.DEBUG if os.environ.get("SECPLUS_TUTOR_DEBUG") else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def show_welcome():
    console.print(Panel(
        "[bold]CompTIA Security+[/bold]\n[dim]Adaptive Certification Prep[/dim]\n"
        "[dim]Type 'q' or 'menu' during a session to return here.[/dim]",
        title="Welcome", border_style="blue",
    ))


def show_menu():
    console.print("\n[bold]Commands:[/bold]")
    commands = [
        ("quiz", "Adaptive practice quiz"),
        ("flashcards", "Review due flashcards"),
        ("dashboard", "Predicted score + progress"),
        ("review", "Drill weak areas"),
        ("reset", "Reset flashcard progress"),
        ("export", "Save progress to a JSON file"),
        ("import", "Restore progress from a JSON file"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<14}[/cyan] {desc}")


def parse_selection(answer: str, option_count: int) -> set[int]:
    """Turn ``"a, c"`` style input into option indices."""
    letters = [part for part in re.split(r"[\s,]+", answer.strip().lower()) if part]
    valid = ascii_lowercase[:option_count]
    if not letters or any(len(letter) != 1 or letter not in valid for letter in letters):
        raise InvalidInputError(f"Answer with letters between a and {valid[-1]}")
    return {valid.index(letter) for letter in letters}


def _ask_answer(question: Question) -> set[int]:
    letters = list(ascii_lowercase[:len(question.options)])
    if question.item_type == "single":
        return parse_selection(session_prompt("\nYour answer", choices=letters), len(letters))
    needed = len(question.correct_options)
    while True:
        answer = session_prompt(f"\nSelect {needed} answers (e.g. a,c)")
        try:
            return parse_selection(answer, len(letters))
        except InvalidInputError as e:
            console.print(f"[red]{e}[/red]")


def run_flashcard_session(db_path: str, cards: list, config: EngineConfig = DEFAULT_CONFIG) -> int:
    """Review ``cards`` one by one; returns how many were rated."""
    if not cards:
        console.print("[yellow]No flashcards due right now![/yellow]")
        return 0
    console.print(f"\n[bold]Flashcard Session[/bold]: {len(cards)} cards\n")
    reviewed = 0
    for i, card in enumerate(cards, 1):
        console.print(Panel(card.term, title=f"Card {i}/{len(cards)}", border_style="cyan"))
        session_prompt("[dim]Press Enter to reveal answer[/dim]", default="", show_default=False)
        console.print(Panel(card.definition, border_style="green"))
        grade = session_int_prompt(
            "Rate yourself (1=again, 2=hard, 3=good, 4=easy)", choices=["1", "2", "3", "4"],
        )
        state = record_review(db_path, card.id, OUTCOMES[grade - 1], config)
        reviewed += 1
        console.print(f"[dim]Next review: {state.next_due:%Y-%m-%d %H:%M}[/dim]\n")
    return reviewed


def run_quiz_session(
    db_path: str, questions: list[Question], config: EngineConfig = DEFAULT_CONFIG,
) -> QuizSession | None:
    """Ask each question and record it in a new quiz session.

    The session is closed however the loop ends, including when the learner
    leaves early; a session left without answers is discarded.
    """
    if not questions:
        console.print("[yellow]No questions available![/yellow]")
        return None
    console.print(f"\n[bold]Quiz[/bold]: {len(questions)} questions\n")
    session_id = start_quiz(db_path)
    try:
        for i, q in enumerate(questions, 1):
            tag = "select all that apply" if q.item_type == "multiple" else q.difficulty
            console.print(f"[bold]Q{i}.[/bold] {q.stem} [dim]({tag})[/dim]\n")
            for letter, option in zip(ascii_lowercase, q.options):
                console.print(f"  [cyan]{letter})[/cyan] {option}")
            attempt = submit_answer(db_path, session_id, q.id, _ask_answer(q), config)
            answer = ", ".join(ascii_lowercase[k] for k in sorted(q.correct_options))
            if attempt.is_correct:
                console.print("[green]Correct![/green]")
            elif attempt.points_earned > 0:
                console.print(
                    f"[yellow]Partially correct[/yellow] ({attempt.points_earned:g}/{attempt.max_points:g})."
                    f" Answer: [green]{answer}[/green]"
                )
            else:
                console.print(f"[red]Incorrect.[/red] Answer: [green]{answer}[/green]")
            if q.explanation:
                console.print(f"[dim]{q.explanation}[/dim]")
            console.print()
    finally:
        session = finish_quiz(db_path, session_id, config=config)

    if session is not None:
        answered = len(session.attempts)
        console.print(
            f"[bold]Score: {session.score}/{answered} ({session.score / answered * 100:.0f}%)"
            f"  Points: {session.total_points:g}/{session.max_points:g}"
            f" (~{points_based_score(session.total_points, session.max_points)} on the exam scale)[/bold]\n"
        )
    return session


def _current_theta(db_path: str, config: EngineConfig) -> float:
    return estimate_ability(get_attempts(db_path), config).theta


def cmd_quiz(db_path: str, config: EngineConfig):
    console.print("\n[bold]Adaptive Practice Quiz[/bold]")
    questions = load_cached_quiz(db_path, config)
    if questions is None:
        check = pregenerate_quiz(db_path, _current_theta(db_path, config), config)
        if not check.usable:
            gaps = ", ".join(f"{n} {tier}" for tier, n in check.mix_gaps.items())
            console.print(f"[red]Question bank cannot fill a quiz ({check.reason}: missing {gaps}).[/red]")
            return
        questions = load_cached_quiz(db_path, config)
    try:
        session = run_quiz_session(db_path, questions, config)
    finally:
        # Have the next quiz ready at the updated ability
        pregenerate_quiz(db_path, _current_theta(db_path, config), config)
    if session is not None:
        report = build_ability_report(get_attempts(db_path), config)
        color = get_readiness_color(report["score"])
        console.print(
            f"  Predicted score: [{color}]{report['score']}[/{color}]"
            f" (95% range {format_interval(report['score_interval'], decimals=0)})"
        )


def cmd_flashcards(db_path: str, config: EngineConfig):
    console.print("\n[bold]Flashcard Drill[/bold]")
    cards = get_due_cards(db_path, limit=15)
    run_flashcard_session(db_path, cards, config)


def _percent_interval(interval) -> str:
    return f"{interval.lower * 100:.0f}-{interval.upper * 100:.0f}%"


def cmd_dashboard(db_path: str, config: EngineConfig):
    attempts = get_attempts(db_path)
    report = build_ability_report(attempts, config)
    stats = get_study_stats(db_path, config)
    score = report["score"]
    label = get_readiness_label(score)
    color = get_readiness_color(score)

    console.print(Panel(
        f"[bold]{stats['quizzes_taken']} quizzes, {stats['questions_answered']} questions answered[/bold]",
        title="Security+ Readiness Dashboard", border_style="blue",
    ))

    if report["attempts"] == 0:
        console.print("\n  Predicted Score: [dim]no data yet, take a quiz to get an estimate[/dim]")
    else:
        # Predicted score on the 100-900 scale
        bar_filled = int((score - 100) / 40)
        bar = f"[{color}]{'█' * bar_filled}{'░' * (20 - bar_filled)}[/{color}]"
        console.print(
            f"\n  Predicted Score: [bold]{score}[/bold] {bar} [{color}]{label}[/{color}]"
            f"  [dim](pass {PASSING_SCORE})[/dim]"
        )
        console.print(
            f"  95% range: {format_interval(report['score_interval'], decimals=0)}"
            f"  |  Ability {report['theta']:+.2f} ± {report['margin']:.2f}  |  {report['reliability']}"
        )
    if report["attempts"] and not report["sufficient_data"]:
        console.print(
            f"  [yellow]Provisional estimate: {report['attempts']}/"
            f"{config.irt.sufficient_data_threshold} questions answered[/yellow]"
        )

    table = Table(title="Accuracy by Difficulty")
    table.add_column("Difficulty", style="cyan")
    table.add_column("Correct", justify="right")
    table.add_column("Accuracy", justify="right")
    table.add_column("95% Interval", justify="right")
    for row in accuracy_by_difficulty(attempts, config):
        table.add_row(
            row["difficulty"].title(), f"{row['correct']}/{row['total']}",
            f"{row['accuracy']}%", _percent_interval(row["interval"]) if row["total"] else "-",
        )
    console.print(table)

    domains = Table(title="Domain Breakdown")
    domains.add_column("Domain", style="cyan")
    domains.add_column("Score", justify="right")
    domains.add_column("95% Interval", justify="right")
    for ds in get_domain_accuracy(db_path, config.confidence):
        domains.add_row(
            f"{ds['section_number']}. {ds['domain_name']}",
            f"{ds['score']}%" if ds["total"] else "-",
            _percent_interval(ds["interval"]) if ds["total"] else "-",
        )
    console.print(domains)

    timeline = get_ability_over_time(db_path, config)
    if timeline:
        history = Table(title="Progress")
        history.add_column("Quiz", justify="right")
        history.add_column("Date")
        history.add_column("Ability", justify="right")
        history.add_column("Score", justify="right")
        for point in timeline[-10:]:
            history.add_row(str(point["quiz"]), point["date"], f"{point['theta']:+.2f}", str(point["score"]))
        console.print(history)

    deck = stats["deck"]
    console.print(f"\n  Flashcards: [bold]{deck.total}[/bold]  |  "
                  f"New: [bold]{deck.new}[/bold]  |  "
                  f"Learning: [bold]{deck.learning}[/bold]  |  "
                  f"Review: [bold]{deck.review}[/bold]  |  "
                  f"Mastered: [bold]{deck.mastered}[/bold]")
    console.print(f"  Reviews: [bold]{stats['flashcards_reviewed']}[/bold]  |  "
                  f"Avg Quiz: [bold]{stats['avg_quiz_score']}%[/bold]  |  "
                  f"Est. Recall: [bold]{stats['average_recall']}%[/bold]")

    weak = get_weak_domains(db_path, confidence=config.confidence)
    if weak:
        console.print(f"\n  [yellow]Recommendation: Focus on {weak[0]['domain_name']}[/yellow]")


def show_topic_schedule(db_path: str, config: EngineConfig):
    phase = get_learning_phase(db_path, get_quizzes_completed(db_path), config)
    table = Table(title=f"Domain Review Schedule ({PHASE_NAMES[phase]} phase)")
    table.add_column("Domain", style="cyan")
    table.add_column("Answered", justify="right")
    table.add_column("Accuracy", justify="right")
    table.add_column("Status")
    table.add_column("Next Review", justify="right")
    for row in get_topic_schedule(db_path, config):
        answered = row["questions_answered"]
        table.add_row(
            row["domain_name"], str(answered), f"{row['accuracy']}%" if answered else "-",
            row["status"].title(),
            f"quiz {row['next_review_quiz']}" if row["next_review_quiz"] else "-",
        )
    console.print(table)


def cmd_review(db_path: str, config: EngineConfig):
    console.print("\n[bold]Weak Area Review[/bold]\n")
    show_topic_schedule(db_path, config)
    weak_domains = get_weak_domains(db_path, confidence=config.confidence)
    if not weak_domains:
        console.print("[green]No weak areas detected! Keep up the good work.[/green]")
        missed = get_questions_due_for_review(db_path, config, limit=5, missed_only=True)
        if missed:
            console.print(f"\n[bold]Retrying {len(missed)} missed questions[/bold]")
            run_quiz_session(db_path, missed, config)
        return
    table = Table(title="Weak Domains")
    table.add_column("Domain")
    table.add_column("Score", justify="right")
    table.add_column("95% Interval", justify="right")
    table.add_column("Questions Attempted", justify="right")
    for wd in weak_domains:
        table.add_row(wd["domain_name"], f"{wd['score']}%", _percent_interval(wd["interval"]), str(wd["total"]))
    console.print(table)

    weakest = weak_domains[0]
    console.print(f"\n[bold]Drilling: {weakest['domain_name']}[/bold]")
    cards = get_cards_for_domain(db_path, weakest["domain_id"], limit=10)
    run_flashcard_session(db_path, cards, config)
    questions = get_questions_for_domain(db_path, weakest["domain_id"], count=5)
    run_quiz_session(db_path, questions, config)


def cmd_reset(db_path: str, config: EngineConfig):
    if not Confirm.ask("Forget all flashcard review history?", default=False):
        return
    removed = reset_progress(db_path)
    console.print(f"[green]Reset progress on {removed} cards.[/green]")


def cmd_export(db_path: str, config: EngineConfig):
    path = Prompt.ask("Export to", default=DEFAULT_EXPORT_PATH)
    total = save_progress(db_path, path)
    console.print(f"[green]Saved {total} progress records to {path}.[/green]")


def cmd_import(db_path: str, config: EngineConfig):
    path = Prompt.ask("Import from", default=DEFAULT_EXPORT_PATH)
    data = load_progress_file(path)
    if not Confirm.ask("Replace all current progress with this file?", default=False):
        return
    counts = import_progress(db_path, data)
    console.print(
        f"[green]Imported {counts['quiz_sessions']} quizzes and "
        f"{counts['flashcard_reviews']} flashcard schedules.[/green]"
    )


def main():
    configure_logging()
    config = load_config(DEFAULT_CONFIG_PATH)
    db_path = DEFAULT_DB_PATH
    init_db(db_path)
    first_run = not is_seeded(db_path)
    if first_run:
        console.print("[dim]Setting up for first use...[/dim]")
    seed_all(db_path, config)
    if first_run:
        console.print("[green]Ready![/green]\n")

    show_welcome()

    commands = {
        "quiz": cmd_quiz,
        "flashcards": cmd_flashcards,
        "dashboard": cmd_dashboard,
        "review": cmd_review,
        "reset": cmd_reset,
        "export": cmd_export,
        "import": cmd_import,
    }
    while True:
        show_menu()
        choice = Prompt.ask("\n[bold]>[/bold]", default="quiz").strip().lower()
        try:
            if choice in commands:
                commands[choice](db_path, config)
            elif choice in ("quit", "exit", "q"):
                console.print("[dim]Good luck on your exam![/dim]")
                break
            else:
                console.print("[red]Unknown command. Try again.[/red]")
        except SessionExitRequested:
            console.print("\n[dim]Progress saved. Back to the menu.[/dim]")
        except KeyboardInterrupt:
            console.print("\n[dim]Use 'quit' to exit.[/dim]")
        except Exception as e:
            logger.debug("Command %s failed", choice, exc_info=True)
            console.print(f"[red]Error: {e}[/red]")


if __name__ == "__main__":
    main()
