"""pm-updater CLI: all commands."""

import os
from pathlib import Path
from typing import Annotated

import typer
from rich import print as rprint
from rich.table import Table

from pmu.errors import PmuError
from pmu.github import commits_from_event, deployment_metadata, load_event, step_outputs, write_outputs
from pmu.log import configure_logging, running_in_actions
from pmu.models import RunResult
from pmu.parser import extract_ticket_ids
from pmu.pipeline import run_pipeline
from pmu.settings import PmuSettings, get_settings
from pmu.slack import SlackNotifier

app = typer.Typer(help="pm-updater: notify PMs on Slack about tickets in pushed commits", no_args_is_help=True)

ConfigOpt = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="TOML file with default inputs (default: ./pmu.toml or $PMU_CONFIG)"),
]
DebugOpt = Annotated[bool, typer.Option("--debug", help="Enable debug logging")]


def _fail(message: str) -> typer.Exit:
    """Report a run failure the way Actions surfaces it, and return the exit to raise."""
    if running_in_actions():
        typer.echo(f"::error::{message}")
    else:
        rprint(f"[red]{message}[/red]")
    return typer.Exit(1)


def _load_settings(config: Path | None) -> PmuSettings:
    try:
        return get_settings(config)
    except PmuError as exc:
        raise _fail(str(exc)) from exc


def _print_result(result: RunResult) -> None:
    table = Table(title="pm-updater outputs")
    table.add_column("Output", style="bold")
    table.add_column("Value")
    for name, value in step_outputs(result).items():
        table.add_row(name, value)
    rprint(table)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("run")
def run_cmd(
    event_path: Annotated[
        Path | None,
        typer.Option("--event-path", help="Push event payload (default: $GITHUB_EVENT_PATH)"),
    ] = None,
    config: ConfigOpt = None,
    debug: DebugOpt = False,
) -> None:
    """Scan pushed commits for tickets and post the Slack summary."""
    log = configure_logging(debug)
    log.info("🚀 PM Updater started")

    settings = _load_settings(config)
    log.info("Issue tracker: %s", settings.issue_tracker)
    log.debug("Environment: %s", settings.environment)
    log.debug("Only active sprint/cycle: %s", settings.only_active_sprint)

    if event_path is None and os.environ.get("GITHUB_EVENT_PATH"):
        event_path = Path(os.environ["GITHUB_EVENT_PATH"])

    try:
        commits = commits_from_event(load_event(event_path))
        metadata = deployment_metadata(settings.environment)
        result = run_pipeline(commits, settings, metadata, log=log.getChild("pipeline"))
    except PmuError as exc:
        log.error("Run failed: %s", exc)
        raise _fail(str(exc)) from exc

    output_file = os.environ.get("GITHUB_OUTPUT")
    if output_file:
        write_outputs(result, Path(output_file))
    else:
        _print_result(result)


@app.command("extract")
def extract_cmd(
    messages: Annotated[list[str], typer.Argument(help="Commit message(s) to scan")],
    key: Annotated[str | None, typer.Option("--key", "-k", help="Only keep identifiers for this project/team key")] = None,
) -> None:
    """Print the ticket identifiers found in commit messages (no network)."""
    seen: dict[str, None] = {}
    for message in messages:
        for ticket_id in extract_ticket_ids(message):
            if key is None or ticket_id.startswith(f"{key}-"):
                seen.setdefault(ticket_id)

    for ticket_id in seen:
        typer.echo(ticket_id)


@app.command("check-channel")
def check_channel(
    channel: Annotated[str | None, typer.Argument(help="Channel or user ID (default: slack_channel_or_user)")] = None,
    config: ConfigOpt = None,
) -> None:
    """Verify the bot token can reach the Slack destination."""
    configure_logging()
    settings = _load_settings(config)
    target = channel or settings.slack_channel_or_user

    if SlackNotifier.from_settings(settings).validate_access(target):
        rprint(f"[green]✓[/green] Bot can access {target}")
    else:
        rprint(f"[red]Bot cannot access {target}[/red]")
        raise typer.Exit(1)


@app.command("config-show")
def config_show(config: ConfigOpt = None) -> None:
    """Show resolved configuration (masks credentials)."""
    settings = _load_settings(config)

    def mask(val: str | None) -> str:
        if val is None:
            return "[dim](not set)[/dim]"
        if len(val) <= 5:
            return "***"
        return f"...{val[-5:]}"

    def secret(field: str) -> str:
        value = getattr(settings, field)
        return mask(value.get_secret_value() if value else None)

    def plain(value: object) -> str:
        return "[dim](not set)[/dim]" if value in (None, "", {}) else str(value)

    table = Table(title="pm-updater Configuration")
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("issue_tracker", settings.issue_tracker)
    if settings.issue_tracker == "jira":
        table.add_row("jira_base_url", plain(settings.jira_base_url))
        table.add_row("jira_email", plain(settings.jira_email))
        table.add_row("jira_api_token", secret("jira_api_token"))
        table.add_row("jira_project_key", plain(settings.jira_project_key))
        table.add_row("jira_pm_field", settings.jira_pm_field)
    else:
        table.add_row("linear_api_key", secret("linear_api_key"))
        table.add_row("linear_team_key", plain(settings.linear_team_key))
    table.add_row("slack_bot_token", secret("slack_bot_token"))
    table.add_row("slack_channel_or_user", settings.slack_channel_or_user)
    table.add_row("environment", settings.environment)
    table.add_row("pm_mapping_json", plain(settings.pm_mapping or None))
    table.add_row("only_active_sprint", str(settings.only_active_sprint))
    table.add_row("ticket_status_filter", ", ".join(settings.ticket_status_filter or []) or "[dim](disabled)[/dim]")

    rprint(table)
