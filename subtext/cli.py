"""Command-line interface for the conversation analysis engine."""

import asyncio
import json
import logging
import mimetypes
import sys
from pathlib import Path
from typing import Optional

import structlog
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from subtext.config import get_settings
from subtext.extraction import RawContentExtractor
from subtext.extraction.ocr import tesseract_reader
from subtext.llm import LangChainReasoningService, get_llm_settings
from subtext.models import (
    AnalysisKind,
    CaseRecord,
    CaseStatus,
    JobPayload,
    Report,
    SectionKind,
    StageName,
    UploadedFile,
)
from subtext.pipeline import PipelineOrchestrator
from subtext.services import (
    ArtifactCaseRecordStore,
    CaseRepository,
    FileArtifactStore,
    generate_id,
)
from subtext.services.pipeline_runner import PipelineRunner

app = typer.Typer(
    name="subtext",
    help="Conversation analysis - ingest chat exports and analyze communication patterns",
    add_completion=False,
)
console = Console()


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), stream=sys.stderr)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    configure_logging("DEBUG" if verbose else get_settings().log_level)


class Services:
    """Wiring of stores, orchestrator and runner for one CLI invocation."""

    def __init__(self, storage_dir: Optional[Path] = None):
        self.settings = get_settings()
        store = FileArtifactStore(storage_dir or self.settings.storage_dir)
        self.repository = CaseRepository(store, self.settings)
        self.case_store = ArtifactCaseRecordStore(store)
        orchestrator = PipelineOrchestrator(
            self.repository,
            self.case_store,
            LangChainReasoningService(),
            extractor=RawContentExtractor(image_reader=tesseract_reader, settings=self.settings),
            settings=self.settings,
        )
        self.runner = PipelineRunner(orchestrator, self.repository, self.case_store, settings=self.settings)

    async def run_case(self, record: CaseRecord, files: Optional[list[UploadedFile]] = None) -> CaseRecord:
        await self.case_store.create(record)
        if files:
            await self.repository.stage_files(record.case_id, files)
        await self.runner.submit(JobPayload(case_id=record.case_id, analysis_kind=record.analysis_kind))
        await self.runner.run_until_idle()
        return await self.case_store.get(record.case_id)


def _load_file(path: Path) -> UploadedFile:
    mimetype, _ = mimetypes.guess_type(path.name)
    return UploadedFile.from_bytes(path.name, path.read_bytes(), mimetype or "application/octet-stream")


def _run(services: Services, record: CaseRecord, files: Optional[list[UploadedFile]] = None) -> CaseRecord:
    with console.status(f"[yellow]Running {record.analysis_kind.value} analysis...[/yellow]"):
        result = asyncio.run(services.run_case(record, files))

    if result.status != CaseStatus.COMPLETED:
        console.print(f"\n[red]Analysis failed:[/red] {result.error_message}")
        console.print(f"[dim]Case:[/dim] {result.case_id}")
        raise typer.Exit(code=1)

    console.print(f"\n[green]Analysis complete.[/green] [dim]Case:[/dim] {result.case_id}")
    return result


FILES_ARGUMENT = typer.Argument(..., help="Chat exports, archives or screenshots", exists=True, dir_okay=False)
STORAGE_OPTION = typer.Option(None, "--storage-dir", help="Artifact directory (default: STORAGE_DIR setting)")


@app.command()
def analyze(
    files: list[Path] = FILES_ARGUMENT,
    conversation_id: Optional[str] = typer.Option(
        None, "--conversation", "-c", help="Conversation id (default: a new one)"
    ),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the report JSON here"),
    storage_dir: Optional[Path] = STORAGE_OPTION,
) -> None:
    """Ingest chat exports and run the baseline scan."""
    console.print(Panel.fit("[bold blue]Subtext[/bold blue]\nBaseline scan", border_style="blue"))

    services = Services(storage_dir)
    record = CaseRecord(
        case_id=generate_id(),
        conversation_id=conversation_id or generate_id(),
        analysis_kind=AnalysisKind.BASELINE,
    )
    result = _run(services, record, [_load_file(path) for path in files])
    console.print(f"[dim]Conversation:[/dim] {result.conversation_id}")
    _show_report(services, result.case_id, output)


@app.command()
def deep(
    conversation_id: str = typer.Argument(..., help="Conversation with a completed baseline scan"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the report JSON here"),
    storage_dir: Optional[Path] = STORAGE_OPTION,
) -> None:
    """Run the deep analysis on a conversation's baseline timeline."""
    console.print(Panel.fit("[bold blue]Subtext[/bold blue]\nDeep analysis", border_style="blue"))

    services = Services(storage_dir)
    record = CaseRecord(case_id=generate_id(), conversation_id=conversation_id, analysis_kind=AnalysisKind.DEEP)
    result = _run(services, record)
    _show_report(services, result.case_id, output)


@app.command()
def ask(
    conversation_id: str = typer.Argument(..., help="Conversation with a completed baseline scan"),
    question: str = typer.Argument(..., help="Question about the conversation"),
    storage_dir: Optional[Path] = STORAGE_OPTION,
) -> None:
    """Ask a question about an analyzed conversation."""
    services = Services(storage_dir)
    record = CaseRecord(
        case_id=generate_id(),
        conversation_id=conversation_id,
        analysis_kind=AnalysisKind.QUESTION,
        question=question,
    )
    result = _run(services, record)

    answer = asyncio.run(services.repository.get_finding(result.case_id, StageName.ANSWER))
    console.print(Panel(answer.answer or "[dim]No answer produced.[/dim]", title=question, border_style="blue"))
    if answer.cited_indices:
        console.print(f"[dim]Cited messages:[/dim] {', '.join(str(i) for i in answer.cited_indices)}")


@app.command("suggest-reply")
def suggest_reply(
    screenshot: Path = typer.Argument(..., help="Screenshot of the message to reply to", exists=True, dir_okay=False),
    conversation_id: Optional[str] = typer.Option(
        None, "--conversation", "-c", help="Use this conversation's baseline report as context"
    ),
    storage_dir: Optional[Path] = STORAGE_OPTION,
) -> None:
    """Suggest a reply to a message screenshot."""
    services = Services(storage_dir)
    record = CaseRecord(
        case_id=generate_id(),
        conversation_id=conversation_id or generate_id(),
        analysis_kind=AnalysisKind.REPLY_SUGGESTION,
    )
    result = _run(services, record, [_load_file(screenshot)])

    suggestion = asyncio.run(services.repository.get_finding(result.case_id, StageName.REPLY_SUGGESTION))
    console.print(Panel(suggestion.recommended_reply or "[dim]No suggestion produced.[/dim]", title="Suggested reply"))
    if suggestion.rationale:
        console.print(f"[dim]Why:[/dim] {suggestion.rationale}")
    for alternative in suggestion.alternatives:
        console.print(f"  - {alternative}")


@app.command()
def status(
    case_id: str = typer.Argument(..., help="Case id"),
    storage_dir: Optional[Path] = STORAGE_OPTION,
) -> None:
    """Show a case's status and progress."""
    services = Services(storage_dir)

    async def load():
        return (
            await services.case_store.get(case_id),
            await services.repository.get_progress(case_id),
        )

    record, progress = asyncio.run(load())
    if record is None:
        console.print(f"[red]Unknown case:[/red] {case_id}")
        raise typer.Exit(code=1)

    table = Table(show_header=False, box=None)
    table.add_column("Field", style="dim")
    table.add_column("Value")
    table.add_row("Case", record.case_id)
    table.add_row("Conversation", record.conversation_id)
    table.add_row("Kind", record.analysis_kind.value)
    table.add_row("Status", record.status.value)
    if progress:
        table.add_row("Progress", f"{progress.percent}% ({progress.stage_label})")
        table.add_row("State", progress.state.value)
    if record.error_message:
        table.add_row("Error", f"[red]{record.error_message}[/red]")
    console.print(table)


@app.command()
def info() -> None:
    """Display configuration."""
    from subtext import __version__

    settings = get_settings()
    llm = get_llm_settings()

    console.print(Panel.fit("[bold blue]Subtext[/bold blue]", border_style="blue"))

    table = Table(show_header=False, box=None)
    table.add_column("Setting", style="dim")
    table.add_column("Value")
    table.add_row("Version", __version__)
    table.add_row("LLM Model", llm.model_name)
    table.add_row("Ollama URL", llm.ollama_base_url)
    table.add_row("Storage", str(settings.storage_dir))
    table.add_row("Workers", str(settings.worker_concurrency))
    table.add_row("Deep Minimum", f"{settings.deep_min_messages} messages")
    table.add_row("Veto Threshold", str(settings.veto_threshold))
    console.print(table)


def _show_report(services: Services, case_id: str, output: Optional[Path]) -> None:
    report = asyncio.run(services.repository.get_report(case_id))
    if report is None:
        console.print("[yellow]No report stored for this case.[/yellow]")
        return

    if output is not None:
        with open(output, "w", encoding="utf-8") as f:
            json.dump(report.model_dump(mode="json"), f, indent=2, ensure_ascii=False)
        console.print(f"[green]Report saved to:[/green] {output}")

    _display_summary(report)


def _display_summary(report: Report) -> None:
    meta = report.metadata
    console.print(f"\n[bold]{report.report_type.value.title()} Report[/bold]")
    console.print("-" * 40)

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="dim")
    table.add_column("Value", justify="right")
    table.add_row("Messages", str(meta.total_messages))
    table.add_row("Senders", ", ".join(meta.senders) or "N/A")
    table.add_row("Health Score", str(meta.overall_health_score))
    table.add_row("Confidence", str(meta.overall_confidence))
    console.print(table)

    for chapter in report.chapters:
        console.print(f"\n[bold]{chapter.title}[/bold]")
        for section in chapter.sections:
            if section.kind is SectionKind.TEXT and isinstance(section.content, str):
                console.print(f"  [dim]{section.heading}:[/dim] {section.content}")
            elif section.kind is SectionKind.SCORE and isinstance(section.content, dict):
                console.print(f"  [dim]{section.heading}:[/dim] {section.content.get('score')}")
            else:
                console.print(f"  [dim]{section.heading}[/dim]")


if __name__ == "__main__":
    app()
