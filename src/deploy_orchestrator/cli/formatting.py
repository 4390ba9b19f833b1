"""Plan and apply output rendering (Terraform-style)."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, NamedTuple

import typer

from deploy_orchestrator.engine.intrinsics import UNKNOWN
from deploy_orchestrator.engine.types import Action

if TYPE_CHECKING:
    from collections.abc import Callable

    from deploy_orchestrator.core.state import StateSnapshot
    from deploy_orchestrator.engine.types import ChangeRecord, FailureReport, Plan


class _ActionStyle(NamedTuple):
    color: str
    symbol: str
    progress_verb: str
    done_verb: str


_ACTION_STYLES: dict[str, _ActionStyle] = {
    "create": _ActionStyle("green", "+", "Creating", "Creation complete"),
    "update": _ActionStyle("yellow", "~", "Updating", "Update complete"),
    "delete": _ActionStyle("red", "-", "Destroying", "Destroy complete"),
    "no-op": _ActionStyle("bright_black", " ", "", ""),
}

_REPLACE_STYLE = _ActionStyle("magenta", "-/+", "Replacing", "Replacement complete")

_ACTION_DESC: dict[str, str] = {
    "create": "will be created",
    "update": "will be updated in-place",
    "delete": "will be destroyed",
    "no-op": "is up-to-date",
}


def styler(color: bool) -> Callable[..., str]:
    """Return ``typer.style`` when *color* is True, otherwise a passthrough."""
    if color:
        return typer.style
    return lambda text, **_kw: text


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def has_actionable_changes(plan: Plan) -> bool:
    """Return True if the plan contains any non-NOOP changes."""
    return bool(plan.changes.actionable())


def _align_values(items: dict[str, str]) -> list[tuple[str, str]]:
    """Right-pad keys so ``=`` signs align."""
    if not items:
        return []
    max_key = max(len(k) for k in items)
    return [(k.ljust(max_key), v) for k, v in items.items()]


def _format_value(value: Any) -> str:
    """Format a value for display in a plan diff block."""
    if value == UNKNOWN:
        return UNKNOWN
    if isinstance(value, str):
        return f'"{value}"'
    if value is None:
        return "null"
    if isinstance(value, dict | list):
        return json.dumps(value, sort_keys=True)
    return str(value)


# ---------------------------------------------------------------------------
# Plan rendering
# ---------------------------------------------------------------------------


def _change_attrs(change: ChangeRecord) -> dict[str, str]:
    """Extract displayable ``key -> formatted value`` pairs from a change."""
    if change.diff and change.action in (Action.CREATE, Action.UPDATE):
        return {
            k: f"{_format_value(d['from'])} -> {_format_value(d['to'])}"
            for k, d in change.diff.items()
        }
    if change.action == Action.CREATE and change.planned:
        return {k: _format_value(v) for k, v in change.planned.items()}
    return {}


def format_change(change: ChangeRecord, *, color: bool = True) -> str:
    """Render a single change record as a Terraform-style block."""
    style = styler(color)
    action_val = change.action.value
    if change.replacement:
        action_style = _REPLACE_STYLE
        desc = "must be replaced"
    else:
        action_style = _ACTION_STYLES[action_val]
        desc = _ACTION_DESC[action_val]
    sc = {"fg": action_style.color}
    symbol = action_style.symbol

    lines = [
        style(f"  # {change.name} {desc}", bold=True, **sc),
        style(f'  {symbol} resource "{change.resource_type}" "{change.name}" {{', **sc),
        *[
            style(f"      {symbol} {k} = {v}", **sc)
            for k, v in _align_values(_change_attrs(change))
        ],
        style("    }", **sc),
    ]
    return "\n".join(lines)


def format_changes(changes: list[ChangeRecord], *, color: bool = True) -> str:
    """Render a list of changes as Terraform-style diff blocks.

    A replacement is shown once, through its create record.
    """
    blocks = [
        format_change(c, color=color)
        for c in changes
        if c.action != Action.NOOP and not (c.replacement and c.action == Action.DELETE)
    ]
    if not blocks:
        return "No changes. Resources are up-to-date."
    return "\n\n".join(blocks)


def format_plan(plan: Plan, *, color: bool = True) -> str:
    """Render the full plan output with per-change diff blocks."""
    return format_changes(list(plan.changes.records), color=color)


def format_batches(plan: Plan, *, color: bool = True) -> str:
    """Render the execution order, one line per batch."""
    style = styler(color)
    lines = [style("Execution order:", bold=True)]
    for index, batch in enumerate(plan.batches, start=1):
        lines.append(f"  {index}. {', '.join(batch)}")
    return "\n".join(lines)


def format_outputs(outputs: dict[str, Any], *, color: bool = True) -> str:
    style = styler(color)
    lines = [style("Outputs:", bold=True), ""]
    formatted = {k: _format_value(outputs[k]) for k in sorted(outputs)}
    lines.extend(f"  {k} = {v}" for k, v in _align_values(formatted))
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------

_PLAN_VERBS = ("to add", "to change", "to destroy")
_APPLY_VERBS = ("added", "changed", "destroyed")
_SUMMARY_COLORS = ("green", "yellow", "red")


def _format_summary(summary: dict[str, int], verbs: tuple[str, ...], *, color: bool) -> str:
    """Build the ``N verb, N verb, N verb`` part of a summary line."""
    style = styler(color)
    counts = (summary.get("create", 0), summary.get("update", 0), summary.get("delete", 0))
    parts = [
        style(f"{n} {verb}", fg=fg) if n and color else f"{n} {verb}"
        for n, verb, fg in zip(counts, verbs, _SUMMARY_COLORS, strict=True)
    ]
    return ", ".join(parts)


def format_plan_summary(summary: dict[str, int], *, color: bool = True) -> str:
    """Render ``Plan: 2 to add, 1 to change, 0 to destroy.``"""
    return f"Plan: {_format_summary(summary, _PLAN_VERBS, color=color)}."


def format_apply_summary(summary: dict[str, int], *, color: bool = True) -> str:
    """Render ``Apply complete! Resources: 2 added, 0 changed, 0 destroyed.``"""
    style = styler(color)
    header = style("Apply complete!", fg="green", bold=True)
    return f"{header} Resources: {_format_summary(summary, _APPLY_VERBS, color=color)}."


def format_partial_summary(summary: dict[str, int], *, color: bool = True) -> str:
    """Render ``Apply finished with errors. Resources: 1 added, ...``"""
    style = styler(color)
    header = style("Apply finished with errors.", fg="red", bold=True)
    return f"{header} Resources: {_format_summary(summary, _APPLY_VERBS, color=color)}."


def format_failure_report(report: FailureReport, *, color: bool = True) -> str:
    """List every operation that did not apply, in plan order."""
    style = styler(color)
    lines = [
        style(
            f"{len(report.failed)} failed, {len(report.blocked)} blocked, "
            f"{len(report.canceled)} canceled:",
            fg="red",
            bold=True,
        )
    ]
    for entry in report.entries:
        status = entry.status.value
        if entry.blocked_by:
            detail = f"blocked by {', '.join(entry.blocked_by)}"
        elif entry.attempts > 1:
            detail = f"{entry.error} (after {entry.attempts} attempts)"
        else:
            detail = entry.error or ""
        lines.append(style(f"  - {entry.key}: {status}: {detail}", fg="red"))
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


def format_state(state: StateSnapshot, *, color: bool = True) -> str:
    """Render the tracked resources of a snapshot, one per line."""
    style = styler(color)
    header = (
        f"Target: {state.target}  serial: {state.serial}  "
        f"resources: {len(state.resources)}"
    )
    lines = [style(header, bold=True)]
    for name in sorted(state.resources):
        inst = state.resources[name]
        status = inst.status.value
        fg = "green" if status == "applied" else "red"
        line = f"  {name} ({inst.resource_type}) {inst.physical_id} [{status}]"
        lines.append(style(line, fg=fg))
    if state.outputs:
        lines.extend(["", format_outputs(state.outputs, color=color)])
    return "\n".join(lines)
