"""Interactive CLI application."""
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

from lexibox.config import Settings, get_settings
from lexibox.content import OpenAIChatClient, OpenAIContentGenerator
from lexibox.errors import GenerationError, LexiboxError, ValidationError
from lexibox.exam import ExamQuestionGenerator, ExamRunner, OpenAIQuestionGenerator
from lexibox.export import export_to_file
from lexibox.flashcards import add_word, list_tags
from lexibox.importer import import_file
from lexibox.leitner import LeitnerEngine
from lexibox.models import Outcome, SessionMode
from lexibox.progress import (
    ProgressAggregator, box_distribution, cefr_distribution, exam_statistics, get_stats,
)
from lexibox.seed import is_seeded, seed_all
from lexibox.session import SessionCompleted, SessionController
from lexibox.store import CardStore

console = Console()

OUTCOME_CHOICES = {"1": Outcome.HARD, "2": Outcome.GOOD, "3": Outcome.EASY}
BOX_INTERVALS = {1: "1 day", 2: "2 days", 3: "4 days", 4: "8 days", 5: "16 days"}


class SessionExitRequested(Exception):
    """Raised when the user types q/menu inside a running session."""


@dataclass
class Services:
    settings: Settings
    store: CardStore
    engine: LeitnerEngine
    aggregator: ProgressAggregator
    controller: SessionController
    content_generator: Optional[OpenAIContentGenerator]
    exam_runner: ExamRunner


def build_services(settings: Optional[Settings] = None) -> Services:
    """Construct every service once and wire them together."""
    settings = settings or get_settings()
    store = CardStore(settings.db_path)
    engine = LeitnerEngine(store)
    aggregator = ProgressAggregator(store)
    controller = SessionController(engine, aggregator, exam_word_count=settings.exam_word_count)
    content_generator = None
    question_generator = None
    if settings.ai_enabled:
        chat = OpenAIChatClient(settings)
        content_generator = OpenAIContentGenerator(chat)
        question_generator = OpenAIQuestionGenerator(chat)
    exam_runner = ExamRunner(controller, store, ExamQuestionGenerator(question_generator))
    controller.add_listener(review_reminder_listener(store))
    return Services(settings, store, engine, aggregator, controller, content_generator, exam_runner)


def review_reminder_listener(store: CardStore):
    def on_complete(event: SessionCompleted) -> None:
        if not event.due_again or not store.get_or_create_user().notifications_enabled:
            return
        soonest = min(c.next_review_at for c in event.due_again)
        console.print(
            f"[dim]Reminder: {len(event.due_again)} card(s) come back for review, "
            f"next at {soonest:%Y-%m-%d %H:%M}.[/dim]"
        )
    return on_complete


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def session_prompt(prompt: str, **kwargs) -> str:
    answer = Prompt.ask(prompt, **kwargs)
    if answer.strip().lower() in ("q", "menu"):
        raise SessionExitRequested()
    return answer


def session_int_prompt(prompt: str, choices: list[str]) -> int:
    answer = session_prompt(prompt, choices=[*choices, "q", "menu"], show_choices=False)
    return int(answer)


def show_welcome():
    console.print(Panel(
        "[bold]lexibox[/bold]\n[dim]Leitner-box vocabulary trainer[/dim]",
        title="Welcome", border_style="blue",
    ))


def show_menu():
    console.print("\n[bold]Commands:[/bold]")
    commands = [
        ("study", "Today's due cards (spaced repetition)"),
        ("review", "Review all cards, no scheduling changes"),
        ("exam", "Multiple-choice exam"),
        ("add", "Add a word"),
        ("words", "List your words"),
        ("dashboard", "Progress and statistics"),
        ("import", "Import a word list"),
        ("export", "Export data to JSON"),
        ("settings", "Daily goal and reminders"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<14}[/cyan] {desc}")


def show_card_back(card) -> None:
    lines = [f"[bold]{card.definition}[/bold]"]
    if card.translation:
        lines.append(f"Translation: [green]{card.translation}[/green]")
    if card.example:
        lines.append(f"[italic]{card.example}[/italic]")
    if card.phonetics:
        lines.append(f"[dim]{card.phonetics}[/dim]")
    console.print(Panel("\n".join(lines), border_style="green"))


def run_flashcard_session(services: Services, mode: SessionMode, selector=None) -> None:
    controller = services.controller
    total = controller.start(mode, selector)
    if not total:
        console.print("[yellow]No cards to study right now![/yellow]")
        controller.reset()
        return
    label = "Spaced repetition" if mode is SessionMode.DUE_REVIEW else "Review (no scheduling changes)"
    console.print(f"\n[bold]{label}[/bold]: {total} cards [dim](q to stop)[/dim]\n")
    try:
        while (card := controller.current_card()) is not None:
            n = controller.index + 1
            console.print(Panel(f"[bold]{card.word}[/bold]", title=f"Card {n}/{total}", border_style="cyan"))
            if session_prompt("[dim]Enter to reveal, s to skip[/dim]", default="").strip().lower() == "s":
                controller.skip()
                continue
            controller.reveal()
            show_card_back(card)
            choice = session_int_prompt("1=hard  2=good  3=easy", choices=list(OUTCOME_CHOICES))
            result = controller.answer(OUTCOME_CHOICES[str(choice)])
            if result and result.newly_mastered:
                console.print(f"[bold magenta]Mastered '{card.word}'![/bold magenta]")
            if result and result.error:
                console.print("[red]Could not save this answer; it will be lost if you quit now.[/red]")
            console.print()
    except SessionExitRequested:
        console.print("[dim]Session stopped. Answers so far are saved.[/dim]")
        controller.reset()
        return
    show_session_summary(controller)
    controller.reset()


def show_session_summary(controller: SessionController) -> None:
    stats = controller.stats
    user = controller.user
    text = (
        f"Answered: [bold]{stats.answered}[/bold]  |  "
        f"Accuracy: [bold]{stats.accuracy * 100:.0f}%[/bold]  |  "
        f"Points: [bold]+{stats.points}[/bold]"
    )
    if stats.mastered_count:
        text += f"  |  Mastered: [bold]{stats.mastered_count}[/bold]"
    if user:
        text += f"\nStreak: [bold]{user.streak_count}[/bold] days  |  Total points: [bold]{user.total_points}[/bold]"
    console.print(Panel(text, title="Session complete", border_style="green"))


def run_exam_session(services: Services) -> None:
    runner = services.exam_runner
    count = IntPrompt.ask("Number of words", default=services.settings.exam_word_count)
    if count < 1:
        console.print("[red]Number of words must be at least 1.[/red]")
        return
    with console.status("Preparing questions..."):
        total = runner.start(count)
    if not total:
        console.print("[yellow]Add some words first![/yellow]")
        services.controller.reset()
        return
    letters = "abcd"
    try:
        while (q := runner.current_question()) is not None:
            n = services.controller.index + 1
            console.print(f"\n[bold]Q{n}/{total}.[/bold] {q.prompt_text}\n")
            for i, option in enumerate(q.options):
                console.print(f"  [cyan]{letters[i]})[/cyan] {option}")
            answer = session_prompt("\nYour answer", choices=[*letters, "q"])
            result = runner.answer(letters.index(answer))
            if result.is_correct:
                console.print("[green]Correct![/green]")
            else:
                console.print(f"[red]Incorrect.[/red] Answer: [green]{q.correct_answer}[/green]")
            if q.hint:
                console.print(f"[dim]{q.hint}[/dim]")
    except SessionExitRequested:
        console.print("[dim]Exam abandoned; nothing was recorded.[/dim]")
        services.controller.reset()
        return
    console.print(f"\n[bold]Score: {runner.correct_count}/{total} ({runner.correct_count / total * 100:.0f}%)[/bold]")
    if runner.error:
        console.print("[red]Exam results could not be saved.[/red]")
    services.controller.reset()


def cmd_study(services: Services):
    run_flashcard_session(services, SessionMode.DUE_REVIEW)


def cmd_review(services: Services):
    tags = list_tags(services.store)
    selected = []
    if tags:
        console.print(f"[dim]Tags: {', '.join(tags)}[/dim]")
        raw = Prompt.ask("Filter by tags (comma separated, blank for all)", default="")
        selected = [t for t in raw.split(",") if t.strip()]
    run_flashcard_session(services, SessionMode.FULL_REVIEW, lambda: services.engine.all_cards(selected))


def cmd_exam(services: Services):
    run_exam_session(services)


def cmd_add(services: Services):
    settings = services.settings
    word = Prompt.ask("Word")
    source = Prompt.ask("Source language", default=settings.default_source_language)
    target = Prompt.ask("Target language", default=settings.default_target_language)
    raw_tags = Prompt.ask("Tags (comma separated)", default="")
    try:
        with console.status(f"Generating content for '{word}'..."):
            card = add_word(
                services.store, word, source, target, services.content_generator,
                tags=raw_tags.split(","),
            )
    except ValidationError as e:
        console.print(f"[red]{e}[/red]")
        return
    except GenerationError as e:
        console.print(f"[red]Could not generate content: {e}[/red]")
        return
    console.print(f"[green]Added '{card.word}'.[/green]")
    show_card_back(card)


def cmd_words(services: Services):
    cards = services.engine.all_cards()
    if not cards:
        console.print("[yellow]No words yet. Use 'add' or 'import'.[/yellow]")
        return
    table = Table(title=f"Your words ({len(cards)})")
    table.add_column("Word", style="cyan")
    table.add_column("Translation")
    table.add_column("Box", justify="right")
    table.add_column("Next review")
    table.add_column("Success", justify="right")
    table.add_column("Tags", style="dim")
    for c in cards:
        table.add_row(
            c.word + (" [magenta]★[/magenta]" if c.mastered else ""),
            c.translation,
            str(c.box),
            f"{c.next_review_at:%Y-%m-%d %H:%M}",
            f"{c.success_rate * 100:.0f}%" if c.study_count else "-",
            ", ".join(c.tags),
        )
    console.print(table)


def cmd_dashboard(services: Services):
    stats = get_stats(services.store, services.engine)
    console.print(Panel(
        f"Level [bold]{stats['level']}[/bold]  |  Points [bold]{stats['total_points']}[/bold]  |  "
        f"Streak [bold]{stats['streak']}[/bold] days\n"
        f"Words [bold]{stats['total_cards']}[/bold]  |  Mastered [bold]{stats['mastered_cards']}[/bold]  |  "
        f"Due today [bold]{stats['due_today']}[/bold] / goal {stats['daily_goal']}",
        title="Dashboard", border_style="blue",
    ))

    table = Table(title="Leitner boxes")
    table.add_column("Box", justify="right")
    table.add_column("Interval")
    table.add_column("Cards", justify="right")
    for box, count in box_distribution(services.store).items():
        table.add_row(str(box), BOX_INTERVALS[box], str(count))
    console.print(table)

    levels = {k: v for k, v in cefr_distribution(services.store).items() if v}
    if levels:
        console.print("CEFR: " + "  ".join(f"[cyan]{k}[/cyan] {v}" for k, v in levels.items()))

    exams = exam_statistics(services.store)
    if exams["total_exams"]:
        pct = exams["correct_answers"] / exams["total_questions"] * 100 if exams["total_questions"] else 0
        console.print(f"Exams: [bold]{exams['total_exams']}[/bold]  |  Avg score: [bold]{pct:.0f}%[/bold]")


def cmd_import(services: Services):
    file_path = Prompt.ask("File path")
    if not Path(file_path).exists():
        console.print(f"[red]File not found: {file_path}[/red]")
        return
    settings = services.settings
    source = Prompt.ask("Source language", default=settings.default_source_language)
    target = Prompt.ask("Target language", default=settings.default_target_language)
    with console.status("Importing..."):
        result = import_file(services.store, file_path, source, target, services.content_generator)
    console.print(f"[green]Imported {len(result['added'])} words from {result['filename']}[/green]")
    if result["skipped"]:
        console.print(f"[yellow]Skipped {len(result['skipped'])}: {', '.join(result['skipped'][:10])}[/yellow]")


def cmd_export(services: Services):
    default = str(Path(services.settings.db_path).parent / "lexibox_export.json")
    path = export_to_file(services.store, Prompt.ask("Export to", default=default))
    console.print(f"[green]Exported to {path}[/green]")


def cmd_settings(services: Services):
    store = services.store
    user = store.get_or_create_user()
    goal = IntPrompt.ask("Daily goal (5-50, steps of 5)", default=user.daily_goal)
    try:
        user.set_daily_goal(goal)
    except ValidationError as e:
        console.print(f"[red]{e}[/red]")
        return
    user.notifications_enabled = Confirm.ask("Review reminders", default=user.notifications_enabled)
    store.update_user(user)
    console.print("[green]Settings saved.[/green]")


COMMANDS = {
    "study": cmd_study,
    "review": cmd_review,
    "exam": cmd_exam,
    "add": cmd_add,
    "words": cmd_words,
    "dashboard": cmd_dashboard,
    "import": cmd_import,
    "export": cmd_export,
    "settings": cmd_settings,
}


def main():
    settings = get_settings()
    configure_logging(settings.log_level)
    services = build_services(settings)
    first_run = not is_seeded(services.store)
    if first_run:
        console.print("[dim]Setting up for first use...[/dim]")
        seed_all(services.store)
        console.print("[green]Ready![/green]\n")

    show_welcome()

    while True:
        show_menu()
        choice = Prompt.ask("\n[bold]>[/bold]", default="study").strip().lower()
        try:
            if choice in ("quit", "exit", "q"):
                console.print("[dim]See you tomorrow![/dim]")
                break
            command = COMMANDS.get(choice)
            if command is None:
                console.print("[red]Unknown command. Try again.[/red]")
                continue
            command(services)
        except KeyboardInterrupt:
            services.controller.reset()
            console.print("\n[dim]Use 'quit' to exit.[/dim]")
        except LexiboxError as e:
            console.print(f"[red]Error: {e}[/red]")


if __name__ == "__main__":
    main()
