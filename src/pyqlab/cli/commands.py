"""CLI commands for pyqlab.

Commands:
- import-paper: Register a paper (optionally with its PDF)
- extract-text: Extract raw text from a paper PDF
- extract-questions: AI extraction of MCQs into a reviewable preview
- save-questions: Store the reviewed preview as questions
- import-questions: Bulk import questions from a spreadsheet
- question-template: Write the spreadsheet template
- papers: List registered papers
- take-test: Take a timed test on a paper and grade it
- results: List stored test results
- check-answer: Compare two math answers
"""

import random
from functools import partial
from pathlib import Path

import typer
from rich.console import Console

from pyqlab.config.app_config import get_data_dir, load_app_config
from pyqlab.core.answer_comparator import (
    AnswerComparisonError,
    compare_math_answers,
)
from pyqlab.core.math_normalizer import is_math_equivalent, normalize_math_answer
from pyqlab.core.paper_grader import grade_submission, record_test_result
from pyqlab.core.paper_importer import (
    DuplicatePaperError,
    PaperImportError,
    import_paper as do_import_paper,
)
from pyqlab.core.pdf_extractor import PdfExtractionError, extract_paper_text
from pyqlab.core.question_extractor import (
    QuestionExtractionError,
    extract_paper_questions,
    save_extracted_questions,
)
from pyqlab.core.question_importer import (
    QuestionImportError,
    import_questions_from_xlsx,
    write_question_template,
)
from pyqlab.core.results import (
    filter_results,
    format_duration,
    grading_status_label,
    score_band,
)
from pyqlab.core.test_session import (
    TestExpiredError,
    TestSession,
    TestSessionError,
)
from pyqlab.db.database import db_path_for, init_db
from pyqlab.db.papers_repository import get_all_papers, get_paper_by_id
from pyqlab.db.questions_repository import get_questions_for_paper
from pyqlab.db.results_repository import get_results
from pyqlab.llm.client import LLMClient, LLMConfig, LLMError
from pyqlab.utils.validators import (
    AmbiguousPaperIdError,
    PaperNotFoundError,
    resolve_paper_id,
)

app = typer.Typer(
    name="pyq",
    help="Previous-year paper question bank, test-taking and grading.",
    no_args_is_help=True,
)

console = Console()

BAND_COLORS = {"high": "green", "medium": "yellow", "low": "red", "unknown": "dim"}


def _data_dir() -> Path:
    """Data directory (PYQ_DATA_DIR) with its database initialized."""
    data_dir = get_data_dir()
    init_db(db_path_for(data_dir))
    return data_dir


def _resolve_paper_id_or_exit(paper_id_prefix: str) -> str:
    """Resolve paper_id prefix to full ID, or exit with helpful error."""
    candidates = [p.paper_id for p in get_all_papers()]
    try:
        return resolve_paper_id(paper_id_prefix, candidates)
    except PaperNotFoundError as e:
        console.print(f"[red]✗ {e}[/red]")
        if candidates:
            console.print("\nAvailable papers:")
            for c in candidates:
                console.print(f"  - {c}")
        raise typer.Exit(code=1)
    except AmbiguousPaperIdError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)


def _build_client(provider: str | None, model: str | None) -> LLMClient:
    """LLM client from configs/models.yaml with optional overrides."""
    return LLMClient(config=LLMConfig.from_yaml(), provider=provider, model=model)


def _truncate(text: str, max_len: int = 100) -> str:
    """Truncate text with ellipsis if too long."""
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


# =============================================================================
# PAPER PIPELINE
# =============================================================================


@app.command(name="import-paper")
def import_paper(
    file: str | None = typer.Argument(None, help="Path to the paper PDF (optional)"),
    exam: str = typer.Option(..., "--exam", "-e", help="Exam name, e.g. 'JEE Main'"),
    year: int = typer.Option(..., "--year", "-y", help="Exam year"),
    paper_type: str | None = typer.Option(
        None, "--paper-type", "-t", help="Shift/set label, e.g. 'Shift 1'"
    ),
    subject: str | None = typer.Option(None, "--subject", help="Subject reference"),
    chapter: str | None = typer.Option(None, "--chapter", help="Chapter reference"),
    topic: str | None = typer.Option(None, "--topic", help="Topic reference"),
    document_type: str = typer.Option(
        "mcq", "--document-type", "-d", help="mcq, practice or proficiency"
    ),
    category: str = typer.Option(
        "previous_year", "--category", "-c", help="previous_year, proficiency or exam"
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Re-import if exists"),
) -> None:
    """Register a paper and copy its PDF into the data directory."""
    data_dir = _data_dir()
    file_path = Path(file).expanduser().resolve() if file else None

    try:
        result = do_import_paper(
            file_path=file_path,
            exam_name=exam,
            year=year,
            paper_type=paper_type,
            subject_id=subject,
            chapter_id=chapter,
            topic_id=topic,
            document_type=document_type,
            paper_category=category,
            force=force,
            data_dir=data_dir,
        )
    except DuplicatePaperError as e:
        console.print(f"[yellow]⚠ {e}[/yellow]")
        console.print(f"  [dim]existing paper_id:[/dim] {e.existing_paper_id}")
        raise typer.Exit(code=1)
    except PaperImportError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)

    console.print(f"[green]✓ {result.message}[/green]")
    console.print(f"  [dim]paper_id:[/dim] {result.paper_id}")
    console.print(f"  [dim]path:[/dim]     {result.paper_path}")


@app.command(name="extract-text")
def extract_text(
    paper_id: str = typer.Argument(..., help="Paper ID or unique prefix"),
) -> None:
    """Extract raw text from a paper PDF.

    Writes raw/content.txt and raw/pages/*.txt under data/papers/{paper_id}/.
    """
    data_dir = _data_dir()
    resolved_id = _resolve_paper_id_or_exit(paper_id)

    console.print(f"[blue]Extracting text from {resolved_id}...[/blue]")

    try:
        result = extract_paper_text(resolved_id, data_dir=data_dir)
    except PdfExtractionError as e:
        console.print(f"[red]✗ Extraction error: {e}[/red]")
        raise typer.Exit(code=1)

    metrics = result.metrics
    console.print(f"[green]✓ {result.message}[/green]")
    console.print(f"  [dim]content:[/dim]  {result.content_path}")
    console.print(f"  [dim]chars:[/dim]    {metrics.total_chars:,}")
    if metrics.detected_language:
        console.print(f"  [dim]language:[/dim] {metrics.detected_language}")
    if metrics.is_likely_scanned:
        console.print("[yellow]⚠ PDF looks scanned - consider OCR[/yellow]")


@app.command(name="extract-questions")
def extract_questions(
    paper_id: str = typer.Argument(..., help="Paper ID or unique prefix"),
    provider: str | None = typer.Option(
        None, "--provider", "-p", help="LLM provider: lmstudio, openai, gemini"
    ),
    model: str | None = typer.Option(None, "--model", "-m", help="Model name (overrides config)"),
) -> None:
    """Extract MCQs from a paper's text with the LLM.

    Output: artifacts/extraction.json (review it, then run save-questions)
    """
    data_dir = _data_dir()
    resolved_id = _resolve_paper_id_or_exit(paper_id)

    console.print(f"[blue]Extracting questions from {resolved_id}...[/blue]")

    try:
        result = extract_paper_questions(
            resolved_id, client=_build_client(provider, model), data_dir=data_dir
        )
    except (QuestionExtractionError, PdfExtractionError, LLMError) as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)

    for error in result.errors:
        console.print(f"  [yellow]⚠ {error}[/yellow]")

    if result.partial:
        console.print(f"[yellow]⚠ {result.message} ({result.error_code})[/yellow]")
        console.print(f"  [dim]recovered:[/dim] {result.questions_count} questions")
        raise typer.Exit(code=1)

    if not result.success:
        console.print(f"[red]✗ {result.message}[/red]")
        raise typer.Exit(code=1)

    console.print(f"[green]✓ {result.message}[/green]")
    for question in result.questions[:5]:
        console.print(
            f"  {question['question_number']}. {_truncate(question['question_text'], 80)} "
            f"[dim]({question['correct_answer'] or '?'})[/dim]"
        )
    if result.questions_count > 5:
        console.print(f"  [dim]... {result.questions_count - 5} more[/dim]")


@app.command(name="save-questions")
def save_questions(
    paper_id: str = typer.Argument(..., help="Paper ID or unique prefix"),
    topic: str | None = typer.Option(None, "--topic", help="Topic reference"),
) -> None:
    """Store the reviewed extraction preview as questions of the paper."""
    data_dir = _data_dir()
    resolved_id = _resolve_paper_id_or_exit(paper_id)

    try:
        result = save_extracted_questions(resolved_id, topic_id=topic, data_dir=data_dir)
    except QuestionExtractionError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)

    console.print(f"[green]✓ {result.message}[/green]")
    console.print(f"  [dim]total questions:[/dim] {result.total_questions}")


@app.command(name="import-questions")
def import_questions(
    file: str = typer.Argument(..., help="Path to the .xlsx file"),
    paper: str | None = typer.Option(None, "--paper", help="Paper ID or unique prefix"),
    topic: str | None = typer.Option(None, "--topic", help="Topic reference"),
) -> None:
    """Import questions from a spreadsheet (see question-template)."""
    data_dir = _data_dir()
    paper_id = _resolve_paper_id_or_exit(paper) if paper else None

    try:
        result = import_questions_from_xlsx(
            Path(file).expanduser(), paper_id=paper_id, topic_id=topic, data_dir=data_dir
        )
    except QuestionImportError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)

    color = "green" if result.success else "yellow"
    console.print(f"[{color}]{'✓' if result.success else '⚠'} {result.message}[/{color}]")
    for error in result.errors:
        console.print(f"  [yellow]• {error}[/yellow]")
    if not result.success:
        raise typer.Exit(code=1)


@app.command(name="question-template")
def question_template(
    output: str = typer.Argument("questions_template.xlsx", help="Where to write the template"),
) -> None:
    """Write the spreadsheet template for import-questions."""
    path = write_question_template(Path(output).expanduser())
    console.print(f"[green]✓ Template written: {path}[/green]")


@app.command(name="papers")
def list_papers(
    category: str | None = typer.Option(
        None, "--category", "-c", help="previous_year, proficiency or exam"
    ),
) -> None:
    """List registered papers."""
    _data_dir()
    papers = get_all_papers(paper_category=category)

    if not papers:
        console.print("[yellow]No papers registered[/yellow]")
        console.print("  Use: pyq import-paper <paper.pdf> --exam ... --year ...")
        return

    console.print(f"\n[bold]Papers ({len(papers)}):[/bold]\n")

    for paper in papers:
        status_color = {
            "imported": "blue",
            "extracted": "cyan",
            "questions_ready": "green",
        }.get(paper.status, "white")

        console.print(f"  [bold]{paper.paper_id}[/bold]")
        console.print(f"    [dim]exam:[/dim]      {paper.exam_name} {paper.year} {paper.paper_type or ''}")
        console.print(f"    [dim]category:[/dim]  {paper.paper_category} ({paper.document_type})")
        console.print(f"    [dim]questions:[/dim] {paper.total_questions}")
        console.print(f"    [dim]status:[/dim]    [{status_color}]{paper.status}[/{status_color}]")
        console.print()


# =============================================================================
# TEST TAKING
# =============================================================================


def _ask_question(num: int, total: int, question, session: TestSession) -> str:
    """Show one question and read the answer (blank skips)."""
    console.print(f"\n[blue]Question {num}/{total}[/blue]", end="")
    remaining = session.time_remaining()
    if remaining is not None:
        console.print(f"  [dim]time left: {format_duration(remaining)}[/dim]")
    else:
        console.print()
    console.print(f"[bold]{question.question_text}[/bold]")

    if session.is_written_answer(question):
        return typer.prompt("Your answer (blank to skip)", default="", show_default=False)

    for key, option in sorted(question.options.items()):
        console.print(f"  {key}. {option.get('text', '')}")

    if question.question_format == "multiple_choice":
        label = "Options, e.g. A,C (blank to skip)"
    elif question.question_format in ("integer", "numeric"):
        label = "Numeric answer (blank to skip)"
    else:
        label = "Option letter (blank to skip)"
    return typer.prompt(label, default="", show_default=False)


@app.command(name="take-test")
def take_test(
    paper_id: str = typer.Argument(..., help="Paper ID or unique prefix"),
    count: int = typer.Option(10, "--count", "-n", help="Questions: 5, 10, 15, 20, 25 or -1 for all"),
    minutes: int = typer.Option(30, "--time", "-t", help="Minutes: 15, 30, 45, 60, 120, 180 or 0"),
    important: bool = typer.Option(False, "--important", help="Only questions marked important"),
    use_ai: bool | None = typer.Option(
        None, "--ai/--no-ai", help="AI comparison for numeric answers (config default)"
    ),
    provider: str | None = typer.Option(None, "--provider", "-p", help="LLM provider"),
    model: str | None = typer.Option(None, "--model", "-m", help="Model name"),
    seed: int | None = typer.Option(None, "--seed", help="Shuffle seed"),
) -> None:
    """Take a test on a paper, then grade and store the result."""
    _data_dir()
    resolved_id = _resolve_paper_id_or_exit(paper_id)
    paper = get_paper_by_id(resolved_id)
    questions = get_questions_for_paper(resolved_id)

    try:
        session = TestSession(
            paper=paper,
            available_questions=questions,
            question_count=count,
            time_limit_minutes=minutes,
            important_only=important,
        )
        selected = session.start(random.Random(seed))
    except TestSessionError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)

    limit = f"{minutes} min" if minutes else "unlimited"
    console.print(f"\n[bold]Test: {paper.exam_name} {paper.year}[/bold]")
    console.print(f"[dim]Questions:[/dim] {len(selected)}  [dim]Time:[/dim] {limit}")

    submission = None
    for i, question in enumerate(selected, 1):
        response = _ask_question(i, len(selected), question, session)
        try:
            session.answer(question.question_id, response)
        except TestExpiredError as e:
            console.print(f"\n[yellow]⚠ {e}[/yellow]")
            submission = e.submission
            break

    if submission is None:
        submission = session.submit()

    use_ai = load_app_config().grading.use_ai_comparison if use_ai is None else use_ai
    comparator = None
    if use_ai:
        try:
            comparator = partial(compare_math_answers, client=_build_client(provider, model))
        except LLMError as e:
            console.print(f"[yellow]⚠ AI comparison disabled: {e}[/yellow]")

    report = grade_submission(paper, selected, submission.answers, comparator=comparator)
    result_id = record_test_result(report, submission)

    summary = report.summary
    band = score_band(summary.percentage)
    color = BAND_COLORS[band]
    percentage = "N/A" if summary.percentage is None else f"{summary.percentage:.1f}%"

    console.print(f"\n[bold]Result: [{color}]{percentage}[/{color}][/bold]")
    console.print(f"[dim]Correct:[/dim] {summary.score}/{summary.total_questions}")
    console.print(f"[dim]Marks:[/dim]   {summary.marks_obtained}/{summary.max_marks}")
    console.print(f"[dim]Time:[/dim]    {format_duration(submission.time_taken_seconds)}")
    console.print(f"[dim]Status:[/dim]  {grading_status_label(report.grading_status)}")
    for warning in report.warnings:
        console.print(f"  [yellow]⚠ {warning}[/yellow]")

    console.print("\n[bold]Answers:[/bold]")
    for grade in report.results:
        symbol, mark_color = {
            "correct": ("✓", "green"),
            "incorrect": ("✗", "red"),
            "unanswered": ("-", "dim"),
            "pending": ("?", "yellow"),
        }[grade.status]
        console.print(
            f"  [{mark_color}]{symbol}[/{mark_color}] {grade.given_answer or '-'} "
            f"[dim](key: {grade.correct_answer or 'n/a'})[/dim]"
        )

    console.print(f"\n[dim]result_id:[/dim] {result_id}")


@app.command(name="results")
def list_results(
    category: str = typer.Option(
        "all", "--category", "-c", help="all, previous_year, proficiency or exam"
    ),
    paper: str | None = typer.Option(None, "--paper", help="Paper ID or unique prefix"),
) -> None:
    """List stored test results."""
    _data_dir()
    paper_id = _resolve_paper_id_or_exit(paper) if paper else None

    try:
        results = filter_results(get_results(paper_id=paper_id), category)
    except ValueError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)

    if not results:
        console.print("[yellow]No test results yet[/yellow]")
        return

    console.print(f"\n[bold]Results ({len(results)}):[/bold]\n")
    for result in results:
        color = BAND_COLORS[score_band(result.percentage)]
        percentage = "N/A" if result.percentage is None else f"{result.percentage:.1f}%"
        console.print(f"  [bold]{result.paper_id}[/bold]  [{color}]{percentage}[/{color}]")
        console.print(
            f"    [dim]score:[/dim] {result.score}/{result.total_questions}  "
            f"[dim]time:[/dim] {format_duration(result.time_taken_seconds)}  "
            f"[dim]status:[/dim] {grading_status_label(result.grading_status)}"
        )
        console.print(f"    [dim]submitted:[/dim] {result.submitted_at}")


@app.command(name="check-answer")
def check_answer(
    user_answer: str = typer.Argument(..., help="Student answer"),
    correct_answer: str = typer.Argument(..., help="Correct answer"),
    ai: bool = typer.Option(False, "--ai", help="Ask the LLM when notations differ"),
    provider: str | None = typer.Option(None, "--provider", "-p", help="LLM provider"),
    model: str | None = typer.Option(None, "--model", "-m", help="Model name"),
) -> None:
    """Compare two math answers by canonical form (and optionally the LLM)."""
    console.print(f"  [dim]student:[/dim] {normalize_math_answer(user_answer) or '(empty)'}")
    console.print(f"  [dim]key:[/dim]     {normalize_math_answer(correct_answer) or '(empty)'}")

    if is_math_equivalent(user_answer, correct_answer):
        console.print("[green]✓ Equivalent[/green]")
        return

    if ai and user_answer.strip() and correct_answer.strip():
        try:
            comparison = compare_math_answers(
                [("answer", user_answer, correct_answer)],
                _build_client(provider, model),
            )
        except (AnswerComparisonError, LLMError) as e:
            console.print(f"[red]✗ AI comparison failed: {e}[/red]")
            raise typer.Exit(code=1)

        if comparison.is_equivalent("answer"):
            console.print("[green]✓ Equivalent (AI)[/green]")
            return

    console.print("[red]✗ Not equivalent[/red]")
    raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
