"""Map exceptions to clean stderr messages and exit codes."""

from __future__ import annotations

from typing import TYPE_CHECKING

import typer

if TYPE_CHECKING:
    from deploy_orchestrator.engine.types import FailureReport

EXIT_FAILURE = 1
EXIT_BUILD_ERROR = 2


def _err(msg: str, *, fg: str | None) -> None:
    """Print a styled message to stderr."""
    typer.echo(typer.style(msg, fg=fg), err=True)


def handle_error(exc: Exception, *, color: bool = True) -> int:
    """Print a clean error message to stderr and return an exit code.

    Build errors (the document cannot become a valid graph) exit with 2,
    everything else with 1.  No tracebacks are printed.
    """
    from deploy_orchestrator.config.loader import ConfigError
    from deploy_orchestrator.engine.errors import (
        AlreadyLockedError,
        BuildError,
        CyclicDependencyError,
        InconsistentStateError,
        PlanError,
        SpecValidationError,
        StalePlanError,
        StateTargetMismatchError,
        UnresolvedReferenceError,
    )

    fg = typer.colors.RED if color else None

    if isinstance(exc, ConfigError):
        _err(f"Configuration error: {exc}", fg=fg)
    elif isinstance(exc, SpecValidationError):
        _err("Validation failed:", fg=fg)
        for e in exc.errors:
            _err(f"  - {e}", fg=fg)
    elif isinstance(exc, UnresolvedReferenceError):
        _err("Unresolved references:", fg=fg)
        for source, target in exc.unresolved:
            _err(f"  - {source} references unknown '{target}'", fg=fg)
    elif isinstance(exc, CyclicDependencyError):
        _err(f"Dependency cycle: {' -> '.join(exc.cycle)}", fg=fg)
    elif isinstance(exc, BuildError):
        _err(f"Build error: {exc}", fg=fg)
    elif isinstance(exc, StalePlanError):
        _err(f"Plan is stale: {exc}", fg=fg)
    elif isinstance(exc, StateTargetMismatchError):
        _err(f"State mismatch: {exc}", fg=fg)
    elif isinstance(exc, InconsistentStateError):
        _err("State is inconsistent:", fg=fg)
        for p in exc.problems:
            _err(f"  - {p}", fg=fg)
    elif isinstance(exc, PlanError):
        _err(f"Plan error: {exc}", fg=fg)
    elif isinstance(exc, AlreadyLockedError):
        _err(f"Another run holds the state lease: {exc}", fg=fg)
    else:
        _err(f"Error: {exc}", fg=fg)

    if isinstance(exc, BuildError):
        return EXIT_BUILD_ERROR
    return EXIT_FAILURE


def report_failures(report: FailureReport, *, color: bool = True) -> int:
    """List every operation that did not apply and return the exit code."""
    from deploy_orchestrator.cli.formatting import format_failure_report

    typer.echo(format_failure_report(report, color=color), err=True)
    return EXIT_FAILURE
