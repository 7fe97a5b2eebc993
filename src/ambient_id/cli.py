"""Command-line interface for ambient-id.

Exit codes:
    0  token detected and printed to stdout
    1  no ambient credentials detected
    2  an environment was detected but detection failed, or the
       configuration is invalid
"""

import asyncio
import logging
from typing import Annotated

import typer

from ambient_id.base import DetectionState
from ambient_id.detection import STRATEGIES, detect, probe_all
from ambient_id.errors import ConfigurationError, DetectionError

EXIT_NOT_FOUND = 1
EXIT_ERROR = 2

app = typer.Typer(
    name="ambient-id",
    help="Detect ambient OIDC credentials in CI and cloud environments",
    add_completion=False,
)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@app.command(name="detect")
def detect_cmd(
    audience: Annotated[str, typer.Argument(help="Audience (aud claim) for the ID token")],
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log detection steps to stderr"),
    ] = False,
) -> None:
    """Detect an ambient OIDC token and print it to stdout."""
    _configure_logging(verbose)

    try:
        token = asyncio.run(detect(audience))
    except (DetectionError, ConfigurationError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(EXIT_ERROR)

    if token is None:
        typer.echo("No ambient OIDC credentials detected", err=True)
        raise typer.Exit(EXIT_NOT_FOUND)

    with token:
        typer.echo(token.reveal())


@app.command(name="providers")
def providers_cmd(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log probe steps to stderr"),
    ] = False,
) -> None:
    """List supported providers in detection order and whether each applies."""
    _configure_logging(verbose)

    try:
        state = DetectionState.from_environment()
    except ConfigurationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(EXIT_ERROR)

    detected = set(probe_all(state))
    for position, strategy_cls in enumerate(STRATEGIES, start=1):
        status = "detected" if strategy_cls.name in detected else "not detected"
        typer.echo(f"{position}. {strategy_cls.display_name} ({strategy_cls.name}): {status}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
