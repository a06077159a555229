"""Typer application and CLI entry point for specref.

This module wires together the top-level Typer application and registers
the built-in commands (``resolve``, ``deref``, ``describe``, ``check-keys``
and the ``config`` group).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers and invokes the Typer app.
:class:`~specref.exceptions.SpecrefError` instances exit with their own
exit code; any other exception is written to a crash log under the data
directory.

See Also:
    :mod:`specref.config`: configuration precedence resolved in
    :func:`main_callback`.
    :mod:`specref.output`: output formatting initialised in
    :func:`main_callback`.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from specref import __version__
from specref.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="specref",
    help="Resolve $ref pointers in YAML/JSON API description documents.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

# ------------------------------------------------------------------ #
# Commands
# ------------------------------------------------------------------ #

from specref.commands.config import config_app  # noqa: E402
from specref.commands.resolve import (  # noqa: E402
    deref_command,
    describe_command,
    resolve_command,
)
from specref.commands.validate import check_keys_command  # noqa: E402

app.command("resolve")(resolve_command)
app.command("deref")(deref_command)
app.command("describe")(describe_command)
app.command("check-keys")(check_keys_command)
app.add_typer(config_app, name="config", help="Configuration management.")


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"specref {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    """Send library log records to stderr; DEBUG with ``--verbose``, else WARNING."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    logger = logging.getLogger("specref")
    logger.handlers = [handler]
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Plain text output."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t", min=0.001, help="Network fetch timeout in seconds."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Skip confirmations."
    ),
    output_file: Optional[str] = typer.Option(
        None, "-o", "--output", help="Output file path."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Resolves the effective configuration, initialises the global
    :class:`~specref.output.OutputManager` and logging from CLI flags, and
    stores shared state in ``ctx.obj``.
    """
    from specref.config import resolve_config
    from specref.exceptions import ConfigError
    from specref.output import OutputFormat, OutputManager, error, set_output

    _configure_logging(verbose)

    cli_format: Optional[str] = None
    if json_output:
        cli_format = OutputFormat.JSON.value
    elif plain_output:
        cli_format = OutputFormat.PLAIN.value

    try:
        config = resolve_config(cli_timeout=timeout, cli_format=cli_format)
        fmt = OutputFormat(config.output.format)
    except ConfigError as exc:
        set_output(OutputManager(no_color=no_color))
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    except ValueError:
        fmt = OutputFormat.AUTO

    set_output(
        OutputManager(
            format=fmt,
            no_color=no_color,
            quiet=quiet,
            verbose=verbose,
            output_file=output_file,
        )
    )

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["force"] = force
    ctx.obj["verbose"] = verbose


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from specref.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``specref`` console script.

    Unhandled :class:`~specref.exceptions.SpecrefError` instances cause a
    clean exit with the error's ``exit_code``. All other exceptions produce
    a crash log and a generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from specref.exceptions import SpecrefError
        from specref.output import error

        if isinstance(exc, SpecrefError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
