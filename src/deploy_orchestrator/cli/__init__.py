"""deploy-orchestrator command line.

Logging stays silent unless asked for.  ``-v``/``-vv`` raise the whole
package to INFO/DEBUG; ``DEPLOY_LOG`` takes comma-separated entries that
override single subpackages on top of that::

    DEPLOY_LOG=debug                         # everything at DEBUG
    DEPLOY_LOG=engine=debug,providers=info   # per subpackage
"""

from __future__ import annotations

import logging
import os

import typer

from deploy_orchestrator import __version__

PACKAGE_LOGGER = "deploy_orchestrator"

# Operations in one batch log from executor workers named "deploy_<n>".
LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(threadName)s] %(name)s: %(message)s"

_VERBOSITY = (logging.WARNING, logging.INFO, logging.DEBUG)

app = typer.Typer(
    name="deploy-orchestrator",
    no_args_is_help=True,
    add_completion=False,
)


def parse_log_levels(value: str) -> dict[str, int]:
    """Map ``DEPLOY_LOG`` entries to logger names and levels.

    Entries with an unknown level are reported on stderr and skipped.
    """
    levels: dict[str, int] = {}
    for entry in (e.strip() for e in value.split(",")):
        if not entry:
            continue
        module, _, level_name = entry.rpartition("=")
        level = logging.getLevelName(level_name.strip().upper())
        if not isinstance(level, int):
            typer.echo(f"WARNING: ignoring DEPLOY_LOG entry '{entry}': unknown level", err=True)
            continue
        module = module.strip()
        levels[f"{PACKAGE_LOGGER}.{module}" if module else PACKAGE_LOGGER] = level
    return levels


def _configure_logging(verbose: int) -> None:
    levels: dict[str, int] = {}
    if verbose:
        levels[PACKAGE_LOGGER] = _VERBOSITY[min(verbose, len(_VERBOSITY) - 1)]
    levels.update(parse_log_levels(os.environ.get("DEPLOY_LOG", "")))
    if not levels:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.basicConfig(level=logging.WARNING, handlers=[handler], force=True)
    for name, level in levels.items():
        logging.getLogger(name).setLevel(level)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"deploy-orchestrator {__version__}")
        raise typer.Exit


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase log verbosity (-v info, -vv debug).",
    ),
) -> None:
    """Plan and converge declarative multi-resource deployments."""
    _ = version
    _configure_logging(verbose)


from deploy_orchestrator.cli import commands as _commands  # noqa: E402, F401
