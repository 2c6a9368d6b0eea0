"""Typer CLI entrypoint."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import typer

from shbctl.core.config_loader import load_config, normalize_uuid
from shbctl.core.errors import ShbctlError
from shbctl.core.service import StreamService
from shbctl.core.sink import HexPayloadSink

app = typer.Typer(help="Stream indications from a Simionic G1000 bezel (SHB1000) over BLE")


def prompt_integer(prompt: str, default: int) -> int | None:
    raw = typer.prompt(prompt, default=str(default), show_default=True)
    try:
        return int(str(raw).strip())
    except ValueError:
        return None


def wait_for_enter() -> None:
    try:
        typer.prompt("Press Enter to stop...", default="", show_default=False, prompt_suffix="")
    except (typer.Abort, KeyboardInterrupt):
        # EOF and Ctrl-C also end the stream; teardown still runs.
        typer.echo("")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _quiet(_: str) -> None:
    return None


def _build_service(
    options: dict[str, Any], notify: Callable[[str], None] = typer.echo
) -> StreamService:
    loaded = load_config(options.get("config"))
    for warning in loaded.warnings:
        typer.echo(f"Warning: {warning}", err=True)

    overrides: dict[str, Any] = {}
    if options.get("timeout") is not None:
        overrides["scan_timeout_s"] = options["timeout"]
    if options.get("target"):
        overrides["target_identifier"] = options["target"]
    if options.get("characteristic"):
        overrides["characteristic_uuid"] = normalize_uuid(
            options["characteristic"], context="--characteristic"
        )
    if options.get("diagnose") is not None:
        overrides["diagnostics"] = options["diagnose"]
    config = dataclasses.replace(loaded.config, **overrides)

    service = StreamService(
        config=config,
        sink=HexPayloadSink(typer.echo),
        prompt=prompt_integer,
        wait_for_stop=wait_for_enter,
        notify=notify,
    )
    for warning in getattr(service, "runtime_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(None, "--config", help="YAML config file to use"),
    timeout: float | None = typer.Option(None, "--timeout", min=0.1, help="Scan duration in seconds"),
    target: str | None = typer.Option(None, "--target", help="Device identifier to connect to"),
    characteristic: str | None = typer.Option(None, "--characteristic", help="Characteristic UUID"),
    diagnose: bool | None = typer.Option(
        None,
        "--diagnose/--no-diagnose",
        help="List services and characteristics when the target characteristic is missing",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Scan, select a device, and print every indication until Enter is pressed."""
    _configure_logging(verbose)
    ctx.obj = {
        "config": config,
        "timeout": timeout,
        "target": target,
        "characteristic": characteristic,
        "diagnose": diagnose,
    }
    if ctx.invoked_subcommand is not None:
        return

    try:
        service = _build_service(ctx.obj)
        service.stream()
    except ShbctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("devices")
def list_devices(ctx: typer.Context) -> None:
    """Scan once and list connectable peripherals, marking target devices."""
    try:
        service = _build_service(ctx.obj or {}, notify=_quiet)
        devices = service.list_devices()
        if not devices:
            typer.echo("No connectable peripherals discovered")
            return

        target = service.config.target_identifier
        for device in devices:
            marker = " <target>" if device.identifier == target else ""
            typer.echo(f"{device.address} {device.identifier or '<unnamed>'}{marker}")
    except ShbctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
