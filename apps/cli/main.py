"""CLI application for modinstall."""

import json
import logging
from collections.abc import Callable

import typer
from rich.console import Console
from rich.table import Table

from core.errors import ConfigurationError
from core.installer import Installer
from core.lock import InstallLock
from core.logging_utils import configure_logging
from core.manifest import load_project
from core.models import Action, Flags
from core.reporter import ConsoleReporter, GhostReporter

console = Console()


def format_status_table(rows: list[dict]) -> Table:
    table = Table(title="Modules")
    for column in ("Entry point", "Module", "Enabled", "Installed", "Version", "Source", "Pending"):
        table.add_column(column)
    for row in rows:
        pending = row["pending"] if row["pending"] != Action.NONE.value else ""
        table.add_row(
            row["entrypoint"],
            row["module"],
            "yes" if row["enabled"] else "no",
            "yes" if row["installed"] else "no",
            row["version"] or "",
            row["source_version"],
            pending,
        )
    return table


def run_installer(ctx: typer.Context, operation: Callable[[Installer], bool]) -> None:
    """Run an installer operation under the project lock and exit with its result."""
    options = ctx.obj
    configure_logging(options["log"], level=logging.DEBUG if options["verbose"] else logging.INFO)
    reporter = ConsoleReporter(console, level="notice" if options["verbose"] else "")

    try:
        project = load_project(options["project"])
        with InstallLock(project.lock_path):
            installer = Installer(project, reporter)
            ok = operation(installer)
    except ConfigurationError as e:
        console.print(f"Error: {e}", style="red", markup=False)
        raise typer.Exit(1)

    if not ok:
        raise typer.Exit(1)


app = typer.Typer(
    name="modinstall",
    help="modinstall - Install, upgrade and remove the modules of an application",
    add_completion=False,
)


@app.callback()
def main(
    ctx: typer.Context,
    project: str = typer.Option(
        "project.yaml", "--project", "-p", envvar="MODINSTALL_PROJECT", help="Path to project.yaml"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show every message"),
    log: str | None = typer.Option(None, "--log", help="Log file"),
) -> None:
    """modinstall - Install, upgrade and remove the modules of an application."""
    ctx.obj = {"project": project, "verbose": verbose, "log": log}


@app.command()
def install(
    ctx: typer.Context,
    entrypoint: str | None = typer.Option(None, "--entrypoint", "-e", help="Only this entry point"),
    flags: int = typer.Option(
        int(Flags.ALL), "--flags", min=0, max=7, help="Hooks to run: 1=install, 2=upgrade, 4=remove"
    ),
) -> None:
    """Install or upgrade the activated modules."""
    if entrypoint:
        run_installer(ctx, lambda installer: installer.install_entry_point(entrypoint, flags))
    else:
        run_installer(ctx, lambda installer: installer.install_application(flags))


@app.command("install-modules")
def install_modules(
    ctx: typer.Context,
    modules: list[str] = typer.Argument(help="Modules to install"),
    entrypoint: str | None = typer.Option(None, "--entrypoint", "-e", help="Only this entry point"),
) -> None:
    """Install the given modules, even if they are not activated."""
    run_installer(ctx, lambda installer: installer.install_modules(modules, entrypoint))


@app.command("uninstall-modules")
def uninstall_modules(
    ctx: typer.Context,
    modules: list[str] = typer.Argument(help="Modules to uninstall"),
    entrypoint: str | None = typer.Option(None, "--entrypoint", "-e", help="Only this entry point"),
) -> None:
    """Uninstall the given modules."""
    run_installer(ctx, lambda installer: installer.uninstall_modules(modules, entrypoint))


@app.command()
def status(
    ctx: typer.Context,
    entrypoint: str | None = typer.Option(None, "--entrypoint", "-e", help="Only this entry point"),
    format_type: str = typer.Option("table", "--format", help="Output format: table or json"),
) -> None:
    """Show the installation state of modules."""
    try:
        project = load_project(ctx.obj["project"])
        with InstallLock(project.lock_path):
            rows = Installer(project, GhostReporter()).get_modules_status(entrypoint)
    except ConfigurationError as e:
        console.print(f"Error: {e}", style="red", markup=False)
        raise typer.Exit(1)

    if format_type == "json":
        console.print_json(json.dumps({"modules": rows}))
    else:
        console.print(format_status_table(rows))


if __name__ == "__main__":
    app()
