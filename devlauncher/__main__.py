"""CLI entry point for devlauncher."""

import logging
import sys

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table as RichTable

from devlauncher.config import Config
from devlauncher.exceptions import ConfigError
from devlauncher.models import PipelineOutcome, RunConfig
from devlauncher.pipeline import Pipeline

console = Console()


def setup_logging(level: str = "INFO", log_file=None):
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        handlers=handlers,
    )


def report(outcome: PipelineOutcome):
    """Print what happened to the user-visible console."""
    if outcome.installed:
        console.print("[green]Installed and added to your user PATH:[/green]")
        for path in outcome.installed:
            console.print(f"  - {path}")
        console.print(
            "[yellow]Terminals that are already open keep their old PATH; "
            "restart them to pick up the change.[/yellow]"
        )
    if outcome.error is not None:
        console.print(f"[red]Error:[/red] {escape(str(outcome.error))}")
        if outcome.hint:
            console.print(f"[bold]Next:[/bold] {outcome.hint}")


@click.group(invoke_without_command=True)
@click.option("--release", is_flag=True, help="Build and launch the release profile")
@click.option("--skip-build", is_flag=True, help="Launch the existing binary without building")
@click.option("--verbose", "-v", is_flag=True, help="Pass the verbosity flag to the application")
@click.option("--config", "-c", default=None, help="Path to config file")
@click.option("--log-level", default=None, help="Logging level (default from config)")
@click.pass_context
def cli(ctx, release, skip_build, verbose, config, log_level):
    """Bootstrap the toolchain, build and launch CodexBar."""
    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = Config.load(config)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        console.print("[bold]Next:[/bold] Fix the reported values in the config file and re-run.")
        sys.exit(1)
    app = ctx.obj["config"].app
    setup_logging(log_level or app.log_level, app.log_file)
    ctx.obj["run"] = RunConfig(release=release, skip_build=skip_build, verbose=verbose)

    if ctx.invoked_subcommand is None:
        pipeline = Pipeline.from_config(ctx.obj["config"])
        outcome = pipeline.run(ctx.obj["run"])
        report(outcome)
        sys.exit(outcome.exit_code)


@cli.command()
@click.pass_context
def doctor(ctx):
    """Show which prerequisites are resolvable and any stale PATH entries."""
    config = ctx.obj["config"]
    pipeline = Pipeline.from_config(config)
    status = pipeline.checker.check(pipeline.requirements)

    table = RichTable(title="Prerequisites")
    table.add_column("Tool", style="cyan")
    table.add_column("Command")
    table.add_column("Status")
    for req in pipeline.requirements:
        found = status[req.name]
        table.add_row(req.name, req.probe_command, "[green]found[/green]" if found else "[red]missing[/red]")
    console.print(table)

    stale = pipeline.registry.stale_entries()
    if stale:
        console.print("\n[yellow]Persisted PATH entries that no longer exist:[/yellow]")
        for entry in stale:
            console.print(f"  - {entry}")
        console.print("Remove them from your user PATH if the tools were uninstalled.")

    if not all(status.values()):
        console.print("\n[bold]Next:[/bold] run `devlauncher install` to provision missing tools.")
        sys.exit(1)


@cli.command()
@click.pass_context
def install(ctx):
    """Install missing prerequisites without building or launching."""
    pipeline = Pipeline.from_config(ctx.obj["config"])
    outcome = pipeline.prepare()
    report(outcome)
    if outcome.error is None:
        console.print("[bold green]All prerequisites are available.[/bold green]")
    sys.exit(outcome.exit_code)


@cli.command()
@click.pass_context
def locate(ctx):
    """List candidate binary paths for the selected profile."""
    run = ctx.obj["run"]
    pipeline = Pipeline.from_config(ctx.obj["config"])
    candidates = pipeline.resolver.candidates(run.profile)

    console.print(f"Candidates for [bold]{run.profile.value}[/bold] (first existing wins):")
    resolved = None
    for path in candidates:
        exists = path.is_file()
        if exists and resolved is None:
            resolved = path
        console.print(f"  {'[green]✓[/green]' if exists else '[dim]·[/dim]'} {path}")

    if resolved is None:
        console.print("[red]No binary found.[/red]")
        sys.exit(1)
    console.print(f"\nResolved: [blue]{resolved}[/blue]")


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
