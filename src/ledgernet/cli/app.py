# src/ledgernet/cli/app.py
import importlib
import signal
from pathlib import Path
from typing import List, Optional

import typer

from ledgernet.config.loader import build_network, load_config
from ledgernet.config.settings import load_settings
from ledgernet.logging.log import init_logging
from ledgernet.logs.scanner import EXCEPTION_PATTERN, LogScanner, group_by_file
from ledgernet.network.cleanup import CleanupPolicy
from ledgernet.network.errors import NetworkError
from ledgernet.observers.logger import LoggerObserver


app = typer.Typer(help="Ephemeral test network CLI")


def load_factory(path: str):
    """Resolve 'package.module:callable' into the node factory it names."""
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise typer.BadParameter(f"expected 'module:callable', got '{path}'")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise typer.BadParameter(f"cannot import {module_name}: {e}") from e
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise typer.BadParameter(f"{path} is not callable")
    return factory


@app.command()
def up(
    config: Path = typer.Argument(..., help="Network topology YAML"),
    factory: str = typer.Option(..., "--factory", "-f", help="Node factory as 'module:callable'"),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t", help="Override the start-up timeout (seconds)"
    ),
    keep_alive: float = typer.Option(
        600.0, "--keep-alive", help="Seconds to keep a running network up (Ctrl-C stops earlier)"
    ),
    cleanup: Optional[bool] = typer.Option(
        None, "--cleanup/--no-cleanup", help="Apply the cleanup policy when the network stops"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug output on the console"),
):
    """
    Bring a network up and keep it running:
      1) generate the topology and bootstrap it
      2) start every node and wait for all of them
      3) keep alive until SIGINT/SIGTERM or --keep-alive elapses, then stop
    """
    logger, run_id, log_path = init_logging(verbose=verbose)
    cfg = load_config(config)
    if timeout is not None:
        cfg.timeout_seconds = timeout
    if cleanup is not None:
        cfg.cleanup_on_stop = cleanup

    builder = build_network(cfg, load_factory(factory), settings=load_settings(), observers=[LoggerObserver(logger)])
    try:
        network = builder.generate()
    except NetworkError as e:
        typer.secho(f"Bootstrap failed: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    def _on_signal(signum, frame):
        network.signal(signal.Signals(signum).name)

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    try:
        network.start()
    except NetworkError as e:
        typer.secho(f"Start-up failed: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    if not network.wait_until_running():
        typer.secho(f"Network failed: {network.error}", fg=typer.colors.RED, err=True)
        typer.echo(f"Logs kept under {network.target_dir} (run log: {log_path})")
        raise typer.Exit(code=1)

    typer.echo(f"Network running in {network.target_dir} ({len(network)} nodes)")
    network.keep_alive(keep_alive)
    typer.echo("Network stopped")


@app.command()
def scan(
    directory: Path = typer.Argument(..., help="Run directory to search"),
    pattern: str = typer.Option(EXCEPTION_PATTERN, "--pattern", "-p", help="Regular expression"),
):
    """Print every matching log line under DIRECTORY, grouped by file."""
    grouped = group_by_file(LogScanner(directory).find(pattern))
    if not grouped:
        typer.echo("No matches")
        return
    for filename, matches in grouped.items():
        typer.secho(filename, bold=True)
        for m in matches:
            typer.echo(f"  {m.line_number}: {m.contents}")


@app.command()
def clean(
    directory: Path = typer.Argument(..., help="Run directory to clean"),
    node: List[str] = typer.Option([], "--node", "-n", help="Node directory name (repeatable)"),
    failed: bool = typer.Option(
        False, "--failed", help="Treat the run as failed: keep logs and node configuration"
    ),
    always: bool = typer.Option(False, "--always", help="Delete everything even for a failed run"),
):
    """Apply the post-run cleanup policy to an existing run directory."""
    if not directory.is_dir():
        typer.secho(f"{directory} is not a directory", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2)
    report = CleanupPolicy(directory, node, always_clean=always).run(failed=failed)
    typer.echo(report.summary())
    if report.failures:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
