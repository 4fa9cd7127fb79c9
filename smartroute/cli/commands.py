"""CLI commands for smartroute."""

import asyncio
import sys

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from smartroute import __version__, __logo__

app = typer.Typer(
    name="smartroute",
    help=f"{__logo__} smartroute - score-driven LLM provider routing",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} smartroute v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """smartroute - score-driven LLM provider routing."""
    pass


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")


def _parse_enum(enum_cls, value: str | None, option: str):
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        choices = ", ".join(member.value for member in enum_cls)
        console.print(f"[red]Error: invalid {option} '{value}'. Choose from: {choices}[/red]")
        raise typer.Exit(1)


# ============================================================================
# Routing
# ============================================================================


@app.command()
def route(
    prompt: str = typer.Argument(..., help="Prompt to route"),
    system: str = typer.Option(None, "--system", "-s", help="System prompt"),
    category: str = typer.Option(None, "--category", "-c", help="Task category (skips classification)"),
    tier: str = typer.Option(None, "--tier", "-t", help="User tier: free, standard, premium, enterprise"),
    provider: str = typer.Option(None, "--provider", "-p", help="Force a provider"),
    temperature: float = typer.Option(None, "--temperature", help="Use this temperature verbatim"),
    timeout: int = typer.Option(None, "--timeout", help="Per-invocation timeout in milliseconds"),
    verbose: bool = typer.Option(False, "--verbose", help="Verbose output"),
):
    """Route a prompt through the provider fallback chain."""
    from smartroute.config.loader import load_config
    from smartroute.routing import create_orchestrator_from_config
    from smartroute.routing.errors import RoutingError
    from smartroute.routing.types import ProviderId, RoutingOptions, TaskCategory, UserTier

    _configure_logging(verbose)

    config = load_config()
    options = RoutingOptions(
        task_category=_parse_enum(TaskCategory, category, "category"),
        user_specified_temperature=temperature,
        user_tier=_parse_enum(UserTier, tier, "tier") or config.routing.default_tier,
        force_provider=_parse_enum(ProviderId, provider, "provider"),
        enable_scoring=config.routing.enable_scoring,
        max_retries=config.routing.max_retries,
        timeout_ms=timeout,
    )

    orchestrator = create_orchestrator_from_config(config)

    try:
        result = asyncio.run(orchestrator.route(prompt, system_prompt=system, options=options))
    except RoutingError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    table = Table(title="Routing Attempts")
    table.add_column("Phase", style="cyan")
    table.add_column("Provider", style="magenta")
    table.add_column("Temp")
    table.add_column("Score")
    table.add_column("Decision", style="yellow")
    table.add_column("Latency")

    for attempt in result.attempts:
        table.add_row(
            attempt.phase.value,
            attempt.provider_id.value,
            f"{attempt.temperature:.2f}",
            str(attempt.score) if attempt.score is not None else "-",
            attempt.decision.value if attempt.error is None else f"[red]{attempt.error}[/red]",
            f"{attempt.latency_ms:.0f}ms",
        )

    console.print(table)
    console.print(f"Path: {' -> '.join(p.value for p in result.routing_path)}")
    console.print(
        f"[green]✓[/green] {result.provider_id.value} at temperature {result.temperature} "
        f"for {result.task_category.value} (confidence {result.confidence})"
    )
    if result.response_text:
        console.print(f"\n{__logo__} {result.response_text}")


@app.command()
def classify(
    text: str = typer.Argument(..., help="Text to classify"),
    node_type: str = typer.Option(None, "--node-type", "-n", help="Workflow node type hint"),
):
    """Classify a prompt into a task category."""
    from smartroute.routing.classifier import classify_task

    result = classify_task(text, node_type=node_type)

    console.print(f"Category: [cyan]{result.category.value}[/cyan]")
    console.print(f"Confidence: {result.confidence:.2f}")
    if result.matched_signals:
        console.print(f"Signals: {', '.join(result.matched_signals)}")
    console.print(f"Reasoning: {result.reasoning}")


@app.command()
def temperature(
    category: str = typer.Argument(..., help="Task category"),
    provider: str = typer.Option(None, "--provider", "-p", help="Provider to tune for"),
    retry: bool = typer.Option(False, "--retry", help="Recommend for a retry attempt"),
):
    """Recommend a sampling temperature for a task category."""
    from smartroute.routing.temperature import TemperatureAdvisor
    from smartroute.routing.types import ProviderId, TaskCategory

    task_category = _parse_enum(TaskCategory, category, "category")
    provider_id = _parse_enum(ProviderId, provider, "provider")

    advisor = TemperatureAdvisor()
    recommendation = advisor.recommend(task_category, provider=provider_id, is_retry=retry)
    low, high, base = advisor.get_range(task_category)

    console.print(f"Temperature: [cyan]{recommendation.value}[/cyan] (range {low}-{high}, base {base})")
    console.print(f"Confidence: {recommendation.confidence:.2f}")
    if recommendation.alternatives:
        console.print(f"Alternatives: {', '.join(str(a) for a in recommendation.alternatives)}")
    console.print(f"Reasoning: {recommendation.reasoning}")


# ============================================================================
# Providers / Stats
# ============================================================================


@app.command()
def providers():
    """Show the provider catalog."""
    from smartroute.config.loader import load_config
    from smartroute.routing.catalog import ProviderCatalog

    catalog = ProviderCatalog.from_config(load_config())

    table = Table(title="Providers")
    table.add_column("Provider", style="cyan")
    table.add_column("Enabled", style="green")
    table.add_column("Key")
    table.add_column("Model", style="yellow")
    table.add_column("Cost/token")

    for descriptor in catalog.descriptors():
        table.add_row(
            descriptor.id.value,
            "✓" if descriptor.enabled else "✗",
            "✓" if descriptor.has_credentials else "✗",
            descriptor.model_for(),
            f"{descriptor.cost_per_token:g}",
        )

    console.print(table)


@app.command()
def stats(
    days: int = typer.Option(7, "--days", "-d", help="Look-back window in days"),
):
    """Show score analytics per provider and category."""
    from smartroute.config.loader import load_config
    from smartroute.tracking.scores import ScoreStore

    config = load_config()
    store = ScoreStore(
        config.tracking.storage_path,
        retention_days=config.tracking.retention_days,
        max_records=config.tracking.max_records,
    )
    rows = store.get_analytics(days=days)

    if not rows:
        console.print(f"No scores recorded in the last {days} days.")
        return

    table = Table(title=f"Scores (last {days} days)")
    table.add_column("Provider", style="cyan")
    table.add_column("Category")
    table.add_column("Count")
    table.add_column("Avg score", style="green")
    table.add_column("Avg latency")
    table.add_column("Accepted")

    for row in rows:
        table.add_row(
            row["provider"],
            row["category"],
            str(row["count"]),
            f"{row['avg_confidence']:.1f}",
            f"{row['avg_latency_ms']:.0f}ms",
            f"{row['accept_rate']:.0%}",
        )

    console.print(table)


if __name__ == "__main__":
    app()
