"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
import threading
from pathlib import Path

import typer

from factfinder.api import Client
from factfinder.core.errors import FactFinderError
from factfinder.core.model import Settings
from factfinder.core.providers import scan_providers
from factfinder.core.readplan import load_read_plan
from factfinder.transports.control import ControlClient, ControlCommand

app = typer.Typer(help="Poll emulator memory and drive a split timer from scripted facts")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command("providers")
def list_providers(
    root: Path | None = typer.Option(
        None, "--root", envvar="FACTFINDER_PROVIDERS", help="Providers folder"
    ),
) -> None:
    """List provider folders that hold a read plan and a fact builder script."""
    try:
        providers = scan_providers(root)
        if not providers:
            typer.echo("No providers found")
            raise typer.Exit(code=1)

        for provider in providers:
            typer.echo(f"{provider.name}: {provider.path}")
    except FactFinderError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("validate")
def validate_plan(plan_file: Path) -> None:
    """Validate a read plan and print its watches."""
    try:
        plan = load_read_plan(plan_file)
    except FactFinderError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    layout = "HiROM" if plan.hirom else "LoROM"
    typer.echo(f"{plan.name}: every {plan.read_interval}ms, {layout}, platform={plan.platform or '-'}")
    for spec in plan.watches:
        signals = ", ".join(sorted(s.value for s in spec.signals)) or "-"
        typer.echo(
            f"  {spec.name}: {spec.bank.value} {spec.address:#x} {spec.type.value} "
            f"width={spec.width} signals={signals}"
        )


@app.command("run")
def run_provider(
    provider: Path,
    host: str = typer.Option("localhost", "--host", envvar="FACTFINDER_EMULATOR_HOST", help="RetroArch host"),
    port: int = typer.Option(55355, "--port", envvar="FACTFINDER_EMULATOR_PORT", help="RetroArch UDP port"),
    timer_host: str = typer.Option("127.0.0.1", "--timer-host", envvar="FACTFINDER_TIMER_HOST", help="Timer host"),
    timer_port: int = typer.Option(6767, "--timer-port", envvar="FACTFINDER_TIMER_PORT", help="Timer UDP port"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Poll RetroArch with PROVIDER's read plan until interrupted."""
    _configure_logging(verbose)
    settings = Settings(
        emulator_host=host,
        emulator_port=port,
        control_host=timer_host,
        control_port=timer_port,
    )
    try:
        client = Client(settings=settings)
        selected = client.select_provider(provider)
    except FactFinderError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    typer.echo(f"Running provider '{selected.name}' against {host}:{port}")
    stop = threading.Event()
    worker = threading.Thread(target=client.run, args=(stop,), name="factfinder-poll", daemon=True)
    worker.start()
    try:
        while worker.is_alive():
            event = client.next_status(timeout=0.5)
            if event is not None:
                typer.echo(f"[{event.source}] {event.message}")
    except KeyboardInterrupt:
        typer.echo("Stopping")
    finally:
        stop.set()
        worker.join(timeout=settings.retry_interval_s + 1.0)
        for key, value in client.state_items():
            typer.echo(f"  {key} = {value}")
        client.close()


@app.command("send")
def send_command(
    command: str,
    timer_host: str = typer.Option("127.0.0.1", "--timer-host", envvar="FACTFINDER_TIMER_HOST", help="Timer host"),
    timer_port: int = typer.Option(6767, "--timer-port", envvar="FACTFINDER_TIMER_PORT", help="Timer UDP port"),
) -> None:
    """Send one control COMMAND (split, reset, pause, hello, ...) to the timer."""
    try:
        parsed = ControlCommand[command.strip().upper()]
    except KeyError:
        allowed = ", ".join(c.name.lower() for c in ControlCommand)
        typer.echo(f"Error: Unknown command '{command}'. Allowed: {allowed}", err=True)
        raise typer.Exit(code=1) from None

    control = ControlClient(timer_host, timer_port)
    try:
        if parsed is ControlCommand.HELLO:
            ok = control.hello()
            typer.echo("Timer answered" if ok else "Timer did not answer")
        else:
            ok = control.send(parsed)
            typer.echo(f"Sent {parsed.name.lower()} to {timer_host}:{timer_port}" if ok else "Send failed")
    finally:
        control.close()
    if not ok:
        raise typer.Exit(code=1)


def run() -> None:
    app()


if __name__ == "__main__":
    run()
