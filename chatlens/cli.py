"""Command-line interface for chatlens."""

import json
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from chatlens import __version__
from chatlens.config import get_settings
from chatlens.evaluation import EvaluationError, EvaluationReport, evaluate, load_cases
from chatlens.learning import correction_from_text, get_default_store, recompute_weights, record_role_correction
from chatlens.log_config import configure_logging
from chatlens.pipeline import AnalysisResult, PipelineTrace, Role, analyze_with_trace

app = typer.Typer(
    name="chatlens",
    help="chatlens - Reconstruct roles, intents, topics and sections from pasted AI-chat text",
    add_completion=False,
)
topics_app = typer.Typer(help="Manage user-defined topic keywords")
app.add_typer(topics_app, name="topics")

console = Console()


def _setup_logging(verbose: bool) -> None:
    configure_logging(level="DEBUG" if verbose else "WARNING", json=not verbose)


def _parse_role(value: str) -> Role:
    try:
        return Role(value.lower())
    except ValueError:
        console.print(f"[red]Error:[/red] unknown role '{value}' (expected 'user' or 'ai')")
        sys.exit(1)


@app.command()
def analyze(
    files: list[Path] = typer.Argument(
        ...,
        help="Text files holding pasted conversations (analysed as one conversation)",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output file for the JSON result (default: <first_file>_analysis.json)",
    ),
    pretty: bool = typer.Option(
        True,
        "--pretty/--compact",
        help="Pretty-print JSON output",
    ),
    use_store: bool = typer.Option(
        True,
        "--store/--no-store",
        help="Apply learned weights and user topics from the correction store",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
) -> None:
    """Analyze pasted chat text and write the structured result as JSON."""
    _setup_logging(verbose)
    settings = get_settings()

    if output is None:
        output = files[0].with_name(f"{files[0].stem}_analysis.json")

    console.print(f"[dim]Input:[/dim] {', '.join(str(f) for f in files)}")
    console.print(f"[dim]Output:[/dim] {output}\n")

    try:
        texts = [f.read_text(encoding="utf-8") for f in files]
        store = get_default_store(settings) if use_store else None
        result, trace = analyze_with_trace(texts, store=store, settings=settings)

        payload = result.model_dump(mode="json")
        with open(output, "w", encoding="utf-8") as f:
            if pretty:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            else:
                json.dump(payload, f, ensure_ascii=False)

        _display_summary(result, trace)
        console.print(f"\n[green]Result saved to:[/green] {output}")

    except Exception as e:
        console.print(f"\n[red]Error:[/red] {e}")
        if verbose:
            console.print_exception()
        sys.exit(1)


@app.command()
def correct(
    text: str = typer.Argument(..., help="Text of the message whose role was wrong"),
    to_role: str = typer.Option(..., "--to", help="Correct role: user or ai"),
    from_role: Optional[str] = typer.Option(None, "--from", help="Role the analysis assigned (default: the other one)"),
    confidence: float = typer.Option(0.0, "--confidence", min=0.0, max=1.0, help="Confidence of the wrong label"),
    relearn: bool = typer.Option(False, "--relearn", help="Recompute weights right away"),
) -> None:
    """Record a role correction for a piece of text."""
    _setup_logging(False)
    corrected = _parse_role(to_role)
    if from_role is None:
        original = Role.USER if corrected == Role.AI else Role.AI
    else:
        original = _parse_role(from_role)

    store = get_default_store()
    record = correction_from_text(text, original_role=original, corrected_role=corrected, original_confidence=confidence)
    record_role_correction(record, store=store)

    features = ", ".join(record.active_features) or "none"
    console.print(f"[green]Recorded:[/green] {original.value} → {corrected.value} [dim](features: {features})[/dim]")

    if relearn:
        _print_deltas(recompute_weights(store))


@app.command()
def relearn() -> None:
    """Recompute learned weight deltas from all stored corrections."""
    _setup_logging(False)
    deltas = recompute_weights(get_default_store())
    _print_deltas(deltas)


@app.command()
def stats() -> None:
    """Show correction store statistics and learned weights."""
    _setup_logging(False)
    store = get_default_store()
    store_stats = store.stats()

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="dim")
    table.add_column("Count", justify="right")
    table.add_row("Total corrections", str(store_stats.total_corrections))
    table.add_row("Role corrections", str(store_stats.role_corrections))
    table.add_row("Structure corrections", str(store_stats.structure_corrections))
    table.add_row("User topics", str(store_stats.user_topics))
    table.add_row("Learned features", str(store_stats.learned_features))
    console.print(table)

    deltas = store.weight_deltas()
    if deltas:
        _print_deltas(deltas)


@app.command()
def clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete every stored correction, user topic and learned weight."""
    _setup_logging(False)
    if not yes and not typer.confirm("Clear the correction store?"):
        raise typer.Abort()
    get_default_store().clear()
    console.print("[green]Correction store cleared.[/green]")


@topics_app.command("add")
def topics_add(
    topic: str = typer.Argument(..., help="Topic label, e.g. TERRAFORM"),
    keywords: list[str] = typer.Argument(..., help="Keywords that indicate the topic"),
) -> None:
    """Add a topic, or extend it with more keywords."""
    _setup_logging(False)
    entry = get_default_store().add_user_topic(topic, keywords)
    console.print(f"[green]Saved topic[/green] {entry.topic}: {', '.join(entry.keywords)}")


@topics_app.command("remove")
def topics_remove(topic: str = typer.Argument(..., help="Topic label to remove")) -> None:
    """Remove a user-defined topic."""
    _setup_logging(False)
    if get_default_store().remove_user_topic(topic):
        console.print(f"[green]Removed topic[/green] {topic}")
    else:
        console.print(f"[yellow]No user topic named[/yellow] {topic}")
        sys.exit(1)


@topics_app.command("list")
def topics_list() -> None:
    """List user-defined topics."""
    _setup_logging(False)
    entries = get_default_store().user_topics()
    if not entries:
        console.print("[dim]No user topics.[/dim]")
        return

    table = Table(title="User Topics")
    table.add_column("Topic", style="bold")
    table.add_column("Keywords")
    for entry in entries:
        table.add_row(entry.topic, ", ".join(entry.keywords))
    console.print(table)


@app.command("evaluate")
def evaluate_command(
    fixtures: Path = typer.Argument(
        ...,
        help="JSON file of labelled conversations",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show mismatch details"),
) -> None:
    """Score the pipeline against labelled conversations."""
    _setup_logging(False)
    try:
        report = evaluate(load_cases(fixtures))
    except EvaluationError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    _display_report(report, verbose)


@app.command()
def info() -> None:
    """Display version and configuration."""
    settings = get_settings()

    console.print(Panel.fit("[bold blue]chatlens[/bold blue]", border_style="blue"))

    table = Table(show_header=False, box=None)
    table.add_column("Setting", style="dim")
    table.add_column("Value")
    table.add_row("Version", __version__)
    table.add_row("Store backend", settings.store_backend)
    table.add_row("Store path", str(settings.store_path))
    table.add_row("Similarity threshold", str(settings.similarity_threshold))
    table.add_row("Learning rate", str(settings.learning_rate))
    table.add_row("Strip invitations", str(settings.strip_trailing_invitations))
    console.print(table)


# =============================================================================
# Display helpers
# =============================================================================

def _display_summary(result: AnalysisResult, trace: PipelineTrace) -> None:
    """Print the messages and groups of an analysis."""
    console.print("\n[bold]Analysis Summary[/bold]")
    console.print("-" * 40)

    table = Table(show_header=True)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Role")
    table.add_column("Conf", justify="right")
    table.add_column("Group", justify="right")
    table.add_column("Intent")
    table.add_column("Topics")
    table.add_column("Text")

    for message in result.messages:
        role_style = "cyan" if message.role == Role.USER else "magenta"
        preview = message.text.replace("\n", " ")
        table.add_row(
            str(message.id),
            f"[{role_style}]{message.role.value}[/{role_style}]",
            f"{message.confidence:.2f}",
            str(message.semantic_group_id),
            ",".join(sorted(t.value for t in message.intent)),
            ",".join(message.topic[:3]),
            preview[:60] + ("…" if len(preview) > 60 else ""),
        )
    console.print(table)

    console.print(
        f"\n[dim]{len(result.messages)} messages in {len(result.semantic_groups)} groups, "
        f"{trace.learned_deltas} learned weights applied, "
        f"processed in {trace.stage_durations.get('total', 0.0):.3f}s[/dim]"
    )

    detected = result.detected_source
    console.print(f"[dim]Source:[/dim] {detected.source.value} (confidence {detected.confidence:.2f})")
    if trace.failed_inputs:
        console.print(f"[yellow]Skipped inputs:[/yellow] {', '.join(str(i) for i in trace.failed_inputs)}")


def _print_deltas(deltas: dict[str, float]) -> None:
    if not deltas:
        console.print("[dim]No learned weight deltas.[/dim]")
        return
    table = Table(title="Learned Weight Deltas")
    table.add_column("Feature")
    table.add_column("Delta", justify="right")
    table.add_column("Leans")
    for feature, value in sorted(deltas.items()):
        table.add_row(feature, f"{value:+.3f}", "ai" if value > 0 else "user")
    console.print(table)


def _display_report(report: EvaluationReport, verbose: bool) -> None:
    table = Table(title="Evaluation Report")
    table.add_column("Case")
    table.add_column("Messages", justify="right")
    table.add_column("Role acc.", justify="right")
    table.add_column("Boundary", justify="right")
    table.add_column("Overall", justify="right")

    for r in report.results:
        style = "green" if r.passed else "red"
        table.add_row(
            f"{r.id}: {r.name}",
            f"{r.detected_count}/{r.expected_count}",
            f"{r.role_accuracy:.1%}",
            f"{r.boundary_score:.1%}",
            f"[{style}]{r.overall_score:.1%}[/{style}]",
        )
    console.print(table)

    if verbose:
        for r in report.results:
            for detail in r.details:
                console.print(f"  [dim]{r.id}[/dim] {detail}")

    console.print(
        f"\nAvg role accuracy {report.avg_role_accuracy:.1%}, "
        f"avg boundary {report.avg_boundary_score:.1%}, "
        f"avg overall {report.avg_overall_score:.1%}, "
        f"passing {report.passing}/{len(report.results)}"
    )


if __name__ == "__main__":
    app()
