"""Command line interface for the bbtk package."""
from __future__ import annotations

import logging
from typing import List, Optional

import typer

from .config import (
    DEFAULT_BAUDRATE,
    DEFAULT_DURATION_SEC,
    DEFAULT_PORT,
    BbtkConfig,
    build_config,
    config_to_dict,
)
from .errors import BbtkError, CaptureTimeout, ProtocolMismatch
from .models import DEFAULT_SMOOTHING, DEFAULT_THRESHOLDS, SmoothingMask, ThresholdSet
from .payload import parse_capture
from .session import BbtkSession

logger = logging.getLogger(__name__)

app = typer.Typer(
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
    help="Drive a Black Box ToolKit v2 to capture events.",
)

PORT_OPTION = typer.Option(DEFAULT_PORT, "--port", "-p", help="Device (serial port name).")
BAUD_OPTION = typer.Option(DEFAULT_BAUDRATE, "--baud", "-b", help="Baudrate (speed in bps).")
VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Log every command and reply.")
SET_OPTION = typer.Option(
    None,
    "--set",
    help="Override driver settings, e.g. --set timing.poll_interval_sec=0.2",
)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _make_config(
    port: str,
    baudrate: int,
    verbose: bool,
    override: Optional[List[str]],
    duration: Optional[float] = None,
) -> BbtkConfig:
    _configure_logging(verbose)
    try:
        cfg = build_config(override, port=port, baudrate=baudrate, debug=verbose, duration_sec=duration)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    logger.debug("Configuration: %s", config_to_dict(cfg))
    return cfg


def _open_connected(cfg: BbtkConfig) -> BbtkSession:
    logger.info("Trying to connect to %s at %d bps...", cfg.port, cfg.baudrate)
    session = BbtkSession.open(cfg)
    try:
        session.wake()
        session.connect()
        session.reset_buffers()
        try:
            session.check_alive()
            logger.info("BBTK is alive")
        except ProtocolMismatch as exc:
            logger.warning("BBTK not responding to ECHO: %s", exc)
    except Exception:
        session.close()
        raise
    return session


@app.command()
def capture(
    port: str = PORT_OPTION,
    baudrate: int = BAUD_OPTION,
    duration: float = typer.Option(DEFAULT_DURATION_SEC, "--duration", "-d", help="Duration of capture (in s)."),
    verbose: bool = VERBOSE_OPTION,
    thresholds: Optional[str] = typer.Option(
        None,
        "--thresholds",
        help="Mic1,Mic2,Sounder1,Sounder2,Opto1,Opto2,Opto3,Opto4 (0-127 each).",
    ),
    smoothing: Optional[str] = typer.Option(
        None,
        "--smoothing",
        help="Smoothing bits Mic1 Mic2 Opto4 Opto3 Opto2 Opto1, e.g. 110000.",
    ),
    clear: bool = typer.Option(True, "--clear/--no-clear", help="Clear timing memory before capturing."),
    override: Optional[List[str]] = SET_OPTION,
) -> None:
    """Configure the BBTK, run one timed capture and print the raw data."""

    try:
        threshold_set = ThresholdSet.parse(thresholds) if thresholds else DEFAULT_THRESHOLDS
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--thresholds") from exc
    try:
        mask = SmoothingMask.parse(smoothing) if smoothing else DEFAULT_SMOOTHING
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--smoothing") from exc
    cfg = _make_config(port, baudrate, verbose, override, duration=duration)

    try:
        with _open_connected(cfg) as session:
            session.set_smoothing(mask)
            session.set_thresholds(threshold_set)
            if clear:
                session.clear_timing_data()
            result = session.capture(cfg.duration_sec)
    except CaptureTimeout as exc:
        if exc.partial:
            typer.echo(exc.partial.decode("ascii", errors="replace"))
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    except BbtkError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(result.text)
    try:
        payload = parse_capture(result.text)
    except ValueError as exc:
        logger.warning("Could not summarise capture: %s", exc)
        return
    typer.echo(f"Total number of events={len(payload.events)}", err=True)


@app.command()
def info(
    port: str = PORT_OPTION,
    baudrate: int = BAUD_OPTION,
    verbose: bool = VERBOSE_OPTION,
    override: Optional[List[str]] = SET_OPTION,
) -> None:
    """Print the firmware version and show the about screen on the BBTK."""

    cfg = _make_config(port, baudrate, verbose, override)
    try:
        with _open_connected(cfg) as session:
            version = session.firmware_version()
            session.display_info()
    except BbtkError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"Firmware version: {version or 'unknown'}")


@app.command()
def adjust(
    port: str = PORT_OPTION,
    baudrate: int = BAUD_OPTION,
    verbose: bool = VERBOSE_OPTION,
    override: Optional[List[str]] = SET_OPTION,
) -> None:
    """Start the interactive threshold adjustment and wait until it is done."""

    cfg = _make_config(port, baudrate, verbose, override)
    try:
        with _open_connected(cfg) as session:
            session.adjust_thresholds()
    except BbtkError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo("Threshold adjustment done")


def run() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    run()
