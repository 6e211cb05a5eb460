"""
FormatForge CLI Main Entry Point.

Provides a command-line interface for listing volumes and formatting them.
"""

from __future__ import annotations

import json
import re
import sys
import threading
from pathlib import Path

import click
import humanize
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from formatforge import __version__
from formatforge.core.config import FormatForgeConfig, load_config
from formatforge.core.errors import InvalidSelector, VolumeQueryError
from formatforge.core.models import FileSystemKind, FormatOutcome, FormatRequest, OutcomeKind
from formatforge.core.safety import FormatPlan
from formatforge.core.session import Session
from formatforge.core.status import QueueSink, StatusChannel, StatusKind, StatusMessage
from formatforge.engines.selector import ENGINE_CLASSES

console = Console()

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 2
EXIT_INTERRUPTED = 130

STATUS_STYLES = {
    StatusKind.COMMAND: "cyan",
    StatusKind.OUTPUT: "",
    StatusKind.ERROR_OUTPUT: "red",
    StatusKind.INFO: "dim",
    StatusKind.WARNING: "yellow",
}


def get_session(ctx: click.Context) -> Session:
    """Get or create session from context."""
    if "session" not in ctx.obj:
        config = ctx.obj.get("config") or load_config()
        session = Session(config=config)
        ctx.obj["session"] = session
        ctx.call_on_close(session.close)
    return ctx.obj["session"]


def parse_size(size_str: str) -> int | None:
    """Parse size string like '4K' or '64KB' into bytes."""
    size_str = size_str.strip().upper()
    match = re.match(r"^(\d+)\s*([KM]?)I?B?$", size_str)
    if not match:
        return None

    value = int(match.group(1))
    unit = match.group(2)

    multipliers = {
        "": 1,
        "K": 1024,
        "M": 1024**2,
    }

    return value * multipliers[unit]


def print_status(message: StatusMessage, quiet: bool = False) -> None:
    """Render one status line."""
    if message.kind is StatusKind.SUMMARY:
        return
    if quiet and message.kind not in (StatusKind.WARNING, StatusKind.ERROR_OUTPUT):
        return
    console.print(
        message.text,
        style=STATUS_STYLES.get(message.kind, ""),
        markup=False,
        highlight=False,
    )


def print_outcome(outcome: FormatOutcome) -> None:
    if outcome.success:
        console.print(f"[green]✓ {escape(outcome.summary)}[/green]")
    elif outcome.kind is OutcomeKind.CANCELLED:
        console.print(f"[yellow]{escape(outcome.summary)}[/yellow]")
    else:
        console.print(f"[red]✗ {escape(outcome.summary)}[/red]")

    if outcome.release_warning is not None:
        console.print(f"[yellow]⚠️  {escape(str(outcome.release_warning))}[/yellow]")
        console.print(
            f"Remove it manually with: mountvol {outcome.release_warning.letter} /D",
            markup=False,
        )


def exit_code_for(outcome: FormatOutcome) -> int:
    if outcome.success:
        return EXIT_SUCCESS
    if outcome.kind is OutcomeKind.CANCELLED:
        return EXIT_CANCELLED
    return EXIT_FAILURE


@click.group()
@click.version_option(version=__version__, prog_name="FormatForge")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path | None,
    json_output: bool,
    quiet: bool,
) -> None:
    """
    FormatForge - Windows volume formatting tool.

    Formats a volume by drive letter or volume device id through diskpart,
    WMI, Format-Volume or format.com, retrying elevated when needed.
    """
    ctx.ensure_object(dict)

    if config:
        ctx.obj["config"] = FormatForgeConfig.load(config)
    elif "config" not in ctx.obj:
        ctx.obj["config"] = load_config()

    ctx.obj["json_output"] = json_output
    ctx.obj["quiet"] = quiet


@cli.command("volumes")
@click.option("--all", "show_all", is_flag=True, help="Include network, optical and RAM drives")
@click.pass_context
def list_volumes(ctx: click.Context, show_all: bool) -> None:
    """List volumes that can be formatted."""
    session = get_session(ctx)
    json_output = ctx.obj.get("json_output", False)

    try:
        with console.status("Querying volumes..."):
            volumes = session.volumes.query_volumes(
                include_unlettered=True,
                formattable_only=not show_all,
            )
    except VolumeQueryError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(EXIT_FAILURE)

    if json_output:
        click.echo(json.dumps([v.to_dict() for v in volumes], indent=2))
        return

    table = Table(title="Volumes")
    table.add_column("Volume", style="cyan")
    table.add_column("Label", style="white")
    table.add_column("FS", style="yellow")
    table.add_column("Size", style="green")
    table.add_column("Free", style="green")
    table.add_column("Device ID", style="dim")

    for volume in volumes:
        table.add_row(
            volume.root if volume.has_letter else "-",
            volume.label or "(no label)",
            volume.filesystem or "-",
            humanize.naturalsize(volume.capacity_bytes, binary=True),
            humanize.naturalsize(volume.free_bytes, binary=True),
            volume.device_id,
        )

    console.print(table)
    if not volumes:
        console.print("[dim]No volumes found[/dim]")


@cli.command("letters")
@click.pass_context
def list_letters(ctx: click.Context) -> None:
    """Show drive letters free for temporary mounts."""
    session = get_session(ctx)
    json_output = ctx.obj.get("json_output", False)

    try:
        free = session.leases.list_unused_letters()
    except VolumeQueryError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(EXIT_FAILURE)

    if json_output:
        click.echo(json.dumps([f"{letter}:" for letter in free]))
        return

    if free:
        console.print("Free drive letters: " + " ".join(f"{letter}:" for letter in free))
    else:
        console.print("[yellow]No free drive letters[/yellow]")


@cli.command("engines")
@click.pass_context
def list_engines(ctx: click.Context) -> None:
    """List format engines in the order they are tried."""
    session = get_session(ctx)
    json_output = ctx.obj.get("json_output", False)
    selector = session.engines

    rows = [
        {
            "name": engine.name,
            "primary": engine.name == selector.primary,
            "requires_letter": engine.requires_letter,
            "filesystems": [fs.value for fs in FileSystemKind if engine.supports(fs)],
        }
        for engine in selector.engines
    ]

    if json_output:
        click.echo(json.dumps({"escalate": selector.escalate, "engines": rows}, indent=2))
        return

    table = Table(title=f"Format Engines (escalation {'on' if selector.escalate else 'off'})")
    table.add_column("Engine", style="cyan")
    table.add_column("Primary", style="green")
    table.add_column("Needs letter", style="yellow")
    table.add_column("File systems", style="white")

    for row in rows:
        table.add_row(
            row["name"],
            "✓" if row["primary"] else "",
            "yes" if row["requires_letter"] else "no",
            ", ".join(row["filesystems"]),
        )

    console.print(table)


@cli.command("encryption")
@click.argument("target")
@click.pass_context
def encryption_status(ctx: click.Context, target: str) -> None:
    """Show the BitLocker state of a lettered volume."""
    session = get_session(ctx)
    json_output = ctx.obj.get("json_output", False)

    from formatforge.core.resolver import resolve_selector

    try:
        selector = resolve_selector(target)
    except InvalidSelector as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(EXIT_FAILURE)

    if not selector.has_letter:
        console.print("[red]BitLocker status can only be queried by drive letter[/red]")
        sys.exit(EXIT_FAILURE)

    status = session.encryption.query(selector.letter)

    if json_output:
        click.echo(
            json.dumps(
                {
                    "letter": status.letter,
                    "success": status.success,
                    "protection_status": status.protection_status,
                    "lock_status": status.lock_status,
                    "message": status.message,
                },
                indent=2,
            )
        )
        return

    if not status.success:
        console.print(f"[red]Could not query BitLocker: {status.message}[/red]")
        sys.exit(EXIT_FAILURE)

    lock = "locked" if status.is_locked else "unlocked"
    protection = "protected" if status.is_protected else "not protected"
    console.print(
        Panel(
            f"""[cyan]Volume:[/cyan] {status.letter}
[cyan]Protection:[/cyan] {protection}
[cyan]Lock:[/cyan] {lock}""",
            title="BitLocker",
        )
    )


class PendingConfirmation:
    """A plan waiting for the operator's answer."""

    def __init__(self, plan: FormatPlan) -> None:
        self.plan = plan
        self._answered = threading.Event()
        self._value = False

    def answer(self, value: bool) -> None:
        if not self._answered.is_set():
            self._value = value
            self._answered.set()

    def wait(self) -> bool:
        self._answered.wait()
        return self._value


class ConfirmationBridge:
    """
    Lets the format thread ask for confirmation on the main thread.

    The prompt runs where Ctrl+C is delivered, so an interrupt at the prompt
    declines the format and the worker still detaches any temporary letter.
    """

    def __init__(self, sink: QueueSink) -> None:
        self.sink = sink
        self.interrupted = False
        self._pending: list[PendingConfirmation] = []
        self._lock = threading.Lock()

    def ask(self, plan: FormatPlan) -> bool:
        """Called on the format thread; blocks until the main thread answers."""
        pending = PendingConfirmation(plan)
        with self._lock:
            if self.interrupted:
                return False
            self._pending.append(pending)
        self.sink.post(pending)
        return pending.wait()

    def interrupt(self) -> None:
        """Decline every outstanding and future request."""
        with self._lock:
            self.interrupted = True
            pending, self._pending = self._pending, []
        for request in pending:
            request.answer(False)


def ask_confirmation(session: Session, plan: FormatPlan) -> bool:
    """Show the plan (with any temporary letter attached) and ask the operator."""
    safety = session.config.safety
    console.print(Panel(Text(plan.get_plan_text()), title="Format Plan", border_style="red"))

    if safety.typed_confirmation:
        volume = plan.leased_letter or plan.target
        user_confirm = click.prompt(f"Type '{plan.confirmation_string}' to confirm", default="")
        verified, _ = session.safety.verify_confirmation(volume, user_confirm)
        return verified

    return click.confirm(f"Format {plan.target}? All data will be lost", default=False)


def drain_format_job(
    session: Session,
    sink: QueueSink,
    bridge: ConfirmationBridge,
    json_output: bool,
    quiet: bool,
) -> None:
    """Print status lines and answer prompts until the job closes its channel."""
    while True:
        try:
            for item in sink.drain():
                if isinstance(item, PendingConfirmation):
                    item.answer(not bridge.interrupted and ask_confirmation(session, item.plan))
                elif not json_output:
                    print_status(item, quiet=quiet)
            return
        except KeyboardInterrupt:
            # A running format cannot be stopped; wait for it and its cleanup
            bridge.interrupt()
            console.print("\n[yellow]Interrupted; waiting for the format operation to finish[/yellow]")


@cli.command("format")
@click.argument("target")
@click.option(
    "--filesystem",
    "-f",
    type=click.Choice([fs.value for fs in FileSystemKind], case_sensitive=False),
    required=True,
    help="File system to create",
)
@click.option("--label", "-l", default="", help="Volume label (max 32 characters)")
@click.option("--quick/--full", default=True, help="Quick format (default) or full format")
@click.option("--allocation-unit", "-a", default=None, help="Cluster size, e.g. 4096 or 64K")
@click.option(
    "--engine",
    type=click.Choice(list(ENGINE_CLASSES)),
    default=None,
    help="Format engine (default from configuration)",
)
@click.option(
    "--temp-letter",
    default=None,
    help="Drive letter to attach to a volume without one (default: lowest free letter)",
)
@click.option("--escalate", is_flag=True, help="Try the other engines if the first one fails")
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Skip the confirmation prompt")
@click.option("--dry-run", is_flag=True, help="Show what would be done")
@click.pass_context
def format_volume(
    ctx: click.Context,
    target: str,
    filesystem: str,
    label: str,
    quick: bool,
    allocation_unit: str | None,
    engine: str | None,
    temp_letter: str | None,
    escalate: bool,
    assume_yes: bool,
    dry_run: bool,
) -> None:
    """Format TARGET (E, E:, E:\\ or \\\\?\\Volume{GUID}\\)."""
    session = get_session(ctx)
    json_output = ctx.obj.get("json_output", False)
    quiet = ctx.obj.get("quiet", False)

    unit = 0
    if allocation_unit:
        parsed = parse_size(allocation_unit)
        if parsed is None:
            console.print(f"[red]Invalid allocation unit: {allocation_unit}[/red]")
            sys.exit(EXIT_FAILURE)
        unit = parsed

    try:
        request = FormatRequest(
            target=target,
            filesystem=FileSystemKind.from_string(filesystem),
            label=label,
            quick=quick,
            allocation_unit=unit,
            engine=engine,
            temp_letter=temp_letter,
        )
    except ValueError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(EXIT_FAILURE)

    if escalate:
        session.engines.escalate = True

    if dry_run:
        try:
            plan = session.orchestrator.build_plan(request)
        except InvalidSelector as e:
            console.print(f"[red]{escape(str(e))}[/red]")
            sys.exit(EXIT_FAILURE)
        console.print("[yellow]DRY RUN - No changes will be made[/yellow]")
        console.print(Panel(Text(plan.get_plan_text()), title="Format Plan"))
        return

    status = StatusChannel()
    sink = QueueSink()
    status.subscribe(sink)
    bridge = ConfirmationBridge(sink)

    safety = session.config.safety
    confirm = True if assume_yes or not safety.require_confirmation else bridge.ask
    job = session.submit_format(request, confirm=confirm, status=status)
    drain_format_job(session, sink, bridge, json_output, quiet)

    outcome = session.wait_format(job)
    if outcome is None:
        console.print("[red]Format job did not finish[/red]")
        sys.exit(EXIT_FAILURE)

    if json_output:
        click.echo(json.dumps(outcome.to_dict(), indent=2))
    else:
        print_outcome(outcome)

    if bridge.interrupted and not outcome.success:
        sys.exit(EXIT_INTERRUPTED)
    sys.exit(exit_code_for(outcome))


def main() -> None:
    """Main entry point."""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled[/yellow]")
        sys.exit(EXIT_INTERRUPTED)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
