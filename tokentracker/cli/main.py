"""
CLI interface for the token tracker.

Count tokens, price calls and inspect pricing and the usage ledger from the
command line.
"""

import json
import logging
import sys
from typing import List, Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from tokentracker.config.loader import TrackerConfig, load_tracker_config
from tokentracker.core.errors import TokenTrackerError
from tokentracker.core.models import Message, TokenCountParams
from tokentracker.core.tracker import TokenTracker, create_default_tracker
from tokentracker.providers.base import ConfiguredProvider
from tokentracker.storage.db import DEFAULT_DB_PATH
from tokentracker.storage.repository import UsageRepository, initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

# Failures reported as an error message and exit code 1
_CLI_ERRORS = (TokenTrackerError, OSError, ValueError, yaml.YAMLError)

_state = {"config_path": None}


def _build_tracker() -> TokenTracker:
    """Create a tracker from the --config file, or from defaults."""
    config_path = _state["config_path"]
    config = load_tracker_config(config_path) if config_path else TrackerConfig()
    # Usage logging is a library feature; the CLI only reads the ledger
    config.usage_log_enabled = False
    config.auto_update_pricing = False
    return create_default_tracker(config)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to a YAML tracker configuration"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging"
    )
):
    """Token Tracker CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    _state["config_path"] = config
    if ctx.invoked_subcommand is None:
        console.print("Token Tracker - Use --help to see available commands")


@app.command()
def count(
    model: str = typer.Option(..., "--model", "-m", help="Model identifier"),
    text: Optional[str] = typer.Option(None, "--text", "-t", help="Text to count"),
    messages_file: Optional[str] = typer.Option(
        None,
        "--messages",
        help="JSON file with a list of {role, content} messages"
    ),
    estimate_response: bool = typer.Option(
        False,
        "--estimate-response",
        "-r",
        help="Also estimate response tokens"
    )
):
    """Count tokens for a text or a chat conversation."""
    try:
        tracker = _build_tracker()
        messages: List[Message] = []
        if messages_file:
            with open(messages_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            if not isinstance(data, list) or not all(isinstance(m, dict) for m in data):
                raise ValueError(f"{messages_file} must hold a JSON list of message objects")
            messages = [Message.from_dict(m) for m in data]

        result = tracker.count_tokens(TokenCountParams(
            model=model,
            text=text,
            messages=tuple(messages),
            count_response_tokens=estimate_response
        ))
    except _CLI_ERRORS as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title=f"Token count for {model}")
    table.add_column("Input", justify="right")
    table.add_column("Response (estimated)", justify="right")
    table.add_column("Total", justify="right")
    table.add_row(str(result.input_tokens), str(result.response_tokens), str(result.total_tokens))
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def price(
    model: str = typer.Argument(..., help="Model identifier"),
    input_tokens: int = typer.Argument(..., min=0, help="Input token count"),
    output_tokens: int = typer.Argument(0, min=0, help="Output token count")
):
    """Calculate the price of a call."""
    try:
        tracker = _build_tracker()
        result = tracker.calculate_price(model, input_tokens, output_tokens)
    except _CLI_ERRORS as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"\n[bold]Model:[/bold] {model}")
    console.print(f"Input tokens: {input_tokens}, Output tokens: {output_tokens}")
    console.print(f"Input cost: {_format_cost(result.input_cost)}")
    console.print(f"Output cost: {_format_cost(result.output_cost)}")
    console.print(f"Total cost: {_format_cost(result.total_cost)} {result.currency}")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def models():
    """List supported models per provider."""
    try:
        tracker = _build_tracker()
    except _CLI_ERRORS as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title="Supported models")
    table.add_column("Provider", no_wrap=True)
    table.add_column("Model", no_wrap=True)
    table.add_column("Context window", justify="right")
    table.add_column("Description")

    for provider in sorted(tracker.providers(), key=lambda p: p.name()):
        if not isinstance(provider, ConfiguredProvider):
            continue
        for model in provider.supported_models():
            info = provider.get_model_info(model)
            table.add_row(provider.name(), model, f"{info.context_window:,}", info.description)

    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def pricing(
    provider: Optional[str] = typer.Option(None, "--provider", "-p", help="Only show this provider")
):
    """Show the pricing table (per 1K tokens)."""
    try:
        tracker = _build_tracker()
    except _CLI_ERRORS as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title="Pricing per 1K tokens")
    table.add_column("Provider", no_wrap=True)
    table.add_column("Model", no_wrap=True)
    table.add_column("Input", justify="right")
    table.add_column("Output", justify="right")
    table.add_column("Currency")

    for provider_name, model_prices in sorted(tracker.config.pricing.to_dict().items()):
        if provider and provider_name != provider:
            continue
        for model, model_pricing in sorted(model_prices.items()):
            table.add_row(
                provider_name,
                model,
                f"{model_pricing.input_price_per_token * 1000:.6f}",
                f"{model_pricing.output_price_per_token * 1000:.6f}",
                model_pricing.currency
            )

    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def init(
    db_path: str = typer.Option(DEFAULT_DB_PATH, "--db", help="Usage ledger database path")
):
    """Initialize the usage ledger database."""
    try:
        initialize_schema(db_path)
        console.print("[green]✓[/] Usage ledger initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def usage(
    db_path: str = typer.Option(DEFAULT_DB_PATH, "--db", help="Usage ledger database path"),
    provider: Optional[str] = typer.Option(None, "--provider", "-p", help="Filter by provider"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Filter by model"),
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Number of records to show")
):
    """Show recent tracked usage from the ledger."""
    try:
        repository = UsageRepository(db_path)
        records = repository.get_recent(provider=provider, model=model, limit=limit)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if not records:
        console.print("\n[bold yellow]No tracked usage found[/]")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title="Recent usage")
    table.add_column("Timestamp", no_wrap=True)
    table.add_column("Provider", no_wrap=True)
    table.add_column("Model", no_wrap=True)
    table.add_column("Tokens", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Duration", justify="right")

    for record in records:
        table.add_row(
            record.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            record.provider,
            record.model,
            str(record.token_count.total_tokens),
            f"{_format_cost(record.price.total_cost)} {record.price.currency}",
            f"{record.duration.total_seconds():.2f}s"
        )

    console.print(table)
    sys.exit(EXIT_CODE_PASS)


def _format_cost(amount: float) -> str:
    """Format a cost with six decimals."""
    return f"${amount:,.6f}"


if __name__ == "__main__":
    app()
