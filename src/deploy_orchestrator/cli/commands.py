"""CLI command implementations."""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import typer

from deploy_orchestrator.cli import app
from deploy_orchestrator.cli.errors import handle_error, report_failures

if TYPE_CHECKING:
    from deploy_orchestrator.config.schema import Config
    from deploy_orchestrator.engine.executor import ProgressEvent
    from deploy_orchestrator.engine.types import ChangeRecord, ExecutionResult, Plan

ConfigPath = Annotated[
    Path,
    typer.Option("--config", "-c", help="Path to the deployment document."),
]

NoColor = Annotated[
    bool,
    typer.Option("--no-color", help="Disable colored output."),
]

AutoApprove = Annotated[
    bool,
    typer.Option("--auto-approve", help="Skip interactive approval."),
]

Params = Annotated[
    list[str] | None,
    typer.Option("--param", "-p", help="Parameter override as KEY=VALUE (repeatable)."),
]

DEFAULT_CONFIG = Path("deploy.yaml")


def _use_color(no_color: bool) -> bool:
    """Determine whether to use color output."""
    return not (no_color or os.environ.get("NO_COLOR"))


def _parse_params(values: list[str] | None) -> dict[str, Any]:
    """Turn ``KEY=VALUE`` strings into a parameter mapping."""
    from deploy_orchestrator.config.loader import ConfigError

    params: dict[str, Any] = {}
    for item in values or []:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise ConfigError(f"Invalid parameter '{item}': expected KEY=VALUE")
        params[key.strip()] = value
    return params


def _apply_with_progress(
    plan_obj: Plan, cfg: Config, *, color: bool, destroy: bool = False
) -> ExecutionResult:
    """Apply a plan with a Rich progress bar and per-operation status lines."""
    from rich.console import Console
    from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

    from deploy_orchestrator.cli.formatting import _ACTION_STYLES, _REPLACE_STYLE
    from deploy_orchestrator.config import apply

    console = Console(no_color=not color)
    canceled = threading.Event()
    total = sum(len(b) for b in plan_obj.batches)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Destroying" if destroy else "Applying", total=total)

        def on_progress(change: ChangeRecord, event: ProgressEvent) -> None:
            s = _REPLACE_STYLE if change.replacement else _ACTION_STYLES[change.action.value]
            if event == "start":
                progress.update(task, description=f"{change.key}: {s.progress_verb}...")
            elif event == "done":
                progress.console.print(f"  {change.key}: {s.done_verb}")
                progress.advance(task)
            else:
                progress.console.print(f"  {change.key}: {event}")
                progress.advance(task)

        return apply(plan_obj, cfg, progress=on_progress, canceled=canceled)


def _confirm_and_apply(
    plan_obj: Plan,
    cfg: Config,
    *,
    color: bool,
    auto_approve: bool,
    confirm_msg: str,
    empty_msg: str,
) -> None:
    """Shared flow: show plan -> confirm -> apply with progress -> print summary.

    Exits with code 0 if no actionable changes, 1 if any operation did not
    apply.
    """
    from deploy_orchestrator.cli.formatting import (
        format_apply_summary,
        format_outputs,
        format_partial_summary,
        format_plan,
        format_plan_summary,
        has_actionable_changes,
    )

    if not has_actionable_changes(plan_obj):
        typer.echo(empty_msg)
        raise typer.Exit(0)

    typer.echo(format_plan(plan_obj, color=color))
    typer.echo()
    typer.echo(format_plan_summary(plan_obj.summary(), color=color))
    typer.echo()

    if not auto_approve:
        try:
            typer.confirm(confirm_msg, abort=True)
        except typer.Abort as e:
            typer.echo("Apply canceled.", err=True)
            raise typer.Exit(1) from e

    try:
        result = _apply_with_progress(
            plan_obj, cfg, color=color, destroy=plan_obj.metadata.destroy
        )
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    typer.echo()
    if result.failure_report is not None:
        typer.echo(format_partial_summary(result.summary(), color=color))
        raise typer.Exit(report_failures(result.failure_report, color=color))

    typer.echo(format_apply_summary(result.summary(), color=color))
    if result.outputs:
        typer.echo()
        typer.echo(format_outputs(result.outputs, color=color))


@app.command()
def plan(
    config: ConfigPath = DEFAULT_CONFIG,
    out: Annotated[
        Path | None,
        typer.Option("--out", "-o", help="Save plan to file."),
    ] = None,
    param: Params = None,
    destroy: Annotated[
        bool,
        typer.Option("--destroy", help="Plan the deletion of every tracked resource."),
    ] = False,
    no_color: NoColor = False,
) -> None:
    """Show changes required by the current document.

    Exits 0 on success, 2 if the document does not build, 1 on other errors.
    """
    from deploy_orchestrator.cli.formatting import (
        format_batches,
        format_plan,
        format_plan_summary,
        has_actionable_changes,
    )
    from deploy_orchestrator.config import load
    from deploy_orchestrator.config import plan as plan_fn

    color = _use_color(no_color)
    try:
        cfg = load(config)
        plan_obj = plan_fn(cfg, parameters=_parse_params(param), destroy=destroy)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    typer.echo(format_plan(plan_obj, color=color))
    typer.echo()
    if has_actionable_changes(plan_obj):
        typer.echo(format_batches(plan_obj, color=color))
        typer.echo()
    typer.echo(format_plan_summary(plan_obj.summary(), color=color))

    if out is not None:
        plan_obj.save(out)
        typer.echo(f"\nPlan saved to {out}")


@app.command(name="apply")
def apply_cmd(
    plan_file: Annotated[
        Path | None,
        typer.Argument(help="Saved plan file to apply."),
    ] = None,
    config: ConfigPath = DEFAULT_CONFIG,
    param: Params = None,
    auto_approve: AutoApprove = False,
    no_color: NoColor = False,
) -> None:
    """Apply the changes required by the current document.

    Exits 1 if any operation failed, was blocked or was canceled.
    """
    from deploy_orchestrator.config import load
    from deploy_orchestrator.config import plan as plan_fn
    from deploy_orchestrator.engine.types import Plan

    color = _use_color(no_color)
    try:
        cfg = load(config)
        plan_obj = (
            Plan.load(plan_file)
            if plan_file is not None
            else plan_fn(cfg, parameters=_parse_params(param))
        )
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    _confirm_and_apply(
        plan_obj,
        cfg,
        color=color,
        auto_approve=auto_approve,
        confirm_msg="Do you want to apply these changes?",
        empty_msg="No changes. Resources are up-to-date.",
    )


@app.command()
def destroy(
    config: ConfigPath = DEFAULT_CONFIG,
    auto_approve: AutoApprove = False,
    no_color: NoColor = False,
) -> None:
    """Destroy all managed resources."""
    from deploy_orchestrator.config import load
    from deploy_orchestrator.config import plan as plan_fn

    color = _use_color(no_color)
    try:
        cfg = load(config)
        plan_obj = plan_fn(cfg, destroy=True)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    _confirm_and_apply(
        plan_obj,
        cfg,
        color=color,
        auto_approve=auto_approve,
        confirm_msg="Do you really want to destroy all resources?",
        empty_msg="No resources to destroy.",
    )


@app.command()
def validate(
    config: ConfigPath = DEFAULT_CONFIG,
    param: Params = None,
    no_color: NoColor = False,
) -> None:
    """Validate the deployment document without reading state."""
    from deploy_orchestrator.cli.formatting import styler
    from deploy_orchestrator.config import load
    from deploy_orchestrator.config import validate as validate_fn

    color = _use_color(no_color)
    try:
        cfg = load(config)
        graph = validate_fn(cfg, parameters=_parse_params(param))
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    count = len(graph)
    msg = f"Configuration is valid. {count} resource{'s' if count != 1 else ''}."
    typer.echo(styler(color)(msg, fg="green"))


@app.command()
def state(
    config: ConfigPath = DEFAULT_CONFIG,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the raw state snapshot as JSON."),
    ] = False,
    no_color: NoColor = False,
) -> None:
    """Show the resources tracked for the document's target."""
    from deploy_orchestrator.cli.formatting import format_state
    from deploy_orchestrator.config import load
    from deploy_orchestrator.config import state as state_fn

    color = _use_color(no_color)
    try:
        cfg = load(config)
        snapshot = state_fn(cfg)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    if as_json:
        typer.echo(snapshot.model_dump_json(indent=2))
        return
    if not snapshot.resources:
        typer.echo(f"No resources tracked for target {snapshot.target}.")
        return
    typer.echo(format_state(snapshot, color=color))


@app.command()
def providers(
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Also load plugins named by this document."),
    ] = None,
    no_color: NoColor = False,
) -> None:
    """List registered resource types and the permissions they declare."""
    from deploy_orchestrator.cli.formatting import styler
    from deploy_orchestrator.config import engine_from_config, load
    from deploy_orchestrator.config.registry import default_registry

    color = _use_color(no_color)
    style = styler(color)
    try:
        registry = (
            engine_from_config(load(config)).registry
            if config is not None
            else default_registry()
        )
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    for resource_type in registry.types():
        provider = registry.get(resource_type)
        typer.echo(style(resource_type, bold=True))
        if provider.replace_on:
            typer.echo(f"  replaced on: {', '.join(sorted(provider.replace_on))}")
        for operation, needs in sorted(provider.permissions.items()):
            typer.echo(f"  {operation}: {', '.join(needs)}")

