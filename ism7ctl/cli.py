"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import signal
from pathlib import Path

import typer

from ism7ctl.core.errors import Ism7Error
from ism7ctl.core.model import ValueUpdate
from ism7ctl.core.parameter_loader import load_parameters
from ism7ctl.core.service import GatewayService
from ism7ctl.transports.tls import TLSConnector

app = typer.Typer(help="Stream values from a Wolf ISM7 heating gateway")


def _format_update(update: ValueUpdate, as_json: bool) -> str:
    if as_json:
        return json.dumps(dataclasses.asdict(update), ensure_ascii=False)
    unit = f" {update.unit}" if update.unit else ""
    return f"{update.topic}={update.value}{unit}"


def _debug_to_stderr(line: str) -> None:
    typer.echo(line, err=True)


@app.command("params")
def list_parameters(
    file: Path | None = typer.Option(None, "--file", help="Telegram map YAML file"),
) -> None:
    """List configured devices and the telegrams requested from each."""
    try:
        loaded = load_parameters(file)
        for warning in loaded.warnings:
            typer.echo(f"Warning: {warning}", err=True)
        telegram_map = loaded.telegram_map
        if not telegram_map.devices:
            typer.echo("No devices configured")
            raise typer.Exit(code=1)

        for address, device in sorted(telegram_map.devices.items()):
            typer.echo(f"{address}: {device.name}")
            for telegram in device.telegrams:
                unit = f" [{telegram.unit}]" if telegram.unit else ""
                typer.echo(f"  {telegram.info_number}: {telegram.name} ({telegram.type}){unit}")
    except Ism7Error as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("watch")
def watch(
    host: str = typer.Option(..., "--host", help="Gateway IP address or hostname"),
    password: str = typer.Option(..., "--password", envvar="ISM7_PASSWORD", help="Gateway password"),
    cert: Path = typer.Option(..., "--cert", envvar="ISM7_CERT", help="Client certificate (PEM)"),
    key: Path | None = typer.Option(None, "--key", envvar="ISM7_KEY", help="Client key if not in --cert"),
    file: Path | None = typer.Option(None, "--file", help="Telegram map YAML file"),
    as_json: bool = typer.Option(False, "--json", help="Print one JSON object per value"),
    debug: bool = typer.Option(False, "--debug", help="Echo raw XML payloads to stderr"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Log in, pull initial values, then print pushed updates until interrupted."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    async def _print(update: ValueUpdate, stop: asyncio.Event) -> None:
        typer.echo(_format_update(update, as_json))

    async def _run() -> None:
        loaded = load_parameters(file)
        for warning in loaded.warnings:
            typer.echo(f"Warning: {warning}", err=True)
        service = GatewayService(
            host,
            TLSConnector(cert, key),
            _print,
            telegram_map=loaded.telegram_map,
            debug_sink=_debug_to_stderr if debug else None,
        )
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, stop.set)
            except (NotImplementedError, RuntimeError):
                pass
        await service.run(password, stop)

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        typer.echo("Interrupted", err=True)
    except Ism7Error as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
