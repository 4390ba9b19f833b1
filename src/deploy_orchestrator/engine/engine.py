"""Plan/apply engine."""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from deploy_orchestrator import __version__
from deploy_orchestrator.core.state import StateSnapshot, compute_state_digest
from deploy_orchestrator.engine.builder import GraphBuilder
from deploy_orchestrator.engine.diff import DiffEngine
from deploy_orchestrator.engine.errors import StalePlanError, StateTargetMismatchError
from deploy_orchestrator.engine.executor import ExecutionEngine, ProgressCallback
from deploy_orchestrator.engine.retry import RetryPolicy
from deploy_orchestrator.engine.scheduler import PlanScheduler
from deploy_orchestrator.engine.store import StateStore
from deploy_orchestrator.engine.types import Plan, PlanMetadata

if TYPE_CHECKING:
    import threading
    from collections.abc import Mapping
    from pathlib import Path

    from deploy_orchestrator.engine.builder import ResourceGraph
    from deploy_orchestrator.engine.registry import ProviderRegistry
    from deploy_orchestrator.engine.types import ExecutionResult
    from deploy_orchestrator.resources.template import Template

logger = logging.getLogger(__name__)


def _canonical_json(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)


def _compute_config_digest(graph: ResourceGraph | None) -> str:
    items: list[dict[str, Any]] = []
    if graph is not None:
        for name, node in graph.nodes.items():
            items.append(
                {
                    "name": name,
                    "resource_type": node.resource_type,
                    "properties": node.properties,
                    "dependencies": list(node.dependencies),
                }
            )
    items.sort(key=lambda x: x["name"])
    payload = _canonical_json({"resources": items, "outputs": graph.outputs if graph else {}})
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class DeploymentEngine:
    """Terraform-like plan/apply engine for one deployment target."""

    def __init__(
        self,
        *,
        target: str,
        state_path: Path,
        registry: ProviderRegistry,
        max_concurrency: int = 4,
        retry: RetryPolicy | None = None,
    ) -> None:
        self._target = target
        self._store = StateStore(state_path)
        self._registry = registry
        self._max_concurrency = max_concurrency
        self._retry = retry or RetryPolicy()

    @property
    def target(self) -> str:
        return self._target

    @property
    def store(self) -> StateStore:
        return self._store

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    def _load_state(self) -> StateSnapshot:
        state = self._store.load_or_create(self._target)
        if state.target != self._target:
            raise StateTargetMismatchError(self._target, state.target)
        logger.debug("State loaded: serial=%d, %d resources", state.serial, len(state.resources))
        return state

    def _load_state_for_apply(self, plan: Plan) -> StateSnapshot:
        if self._store.exists():
            return self._load_state()
        # No state yet: start from the snapshot identity the plan was made against.
        return StateSnapshot(
            target=self._target,
            lineage=plan.metadata.state_lineage,
            serial=plan.metadata.state_serial,
        )

    def build(
        self, template: Template, parameters: Mapping[str, Any] | None = None
    ) -> ResourceGraph:
        """Validate *template* into a resource graph without reading state."""
        return GraphBuilder(self._registry).build(template, parameters)

    def plan(
        self,
        template: Template | None = None,
        *,
        parameters: Mapping[str, Any] | None = None,
        destroy: bool = False,
    ) -> Plan:
        """Compute the change set and batches that bring state to *template*.

        With ``destroy=True`` the template is ignored and every tracked
        resource is planned for deletion.
        """
        if not destroy and template is None:
            raise ValueError("A template is required unless destroy=True")
        logger.info("Planning target %s (destroy=%s)", self._target, destroy)

        graph = None if destroy else self.build(template, parameters)  # type: ignore[arg-type]
        state = self._load_state()

        differ = DiffEngine(self._registry)
        changes = differ.destroy(state) if graph is None else differ.diff(graph, state)
        schedule = PlanScheduler().schedule(changes, state)

        metadata = PlanMetadata(
            target=self._target,
            created_at=datetime.now(UTC),
            destroy=destroy,
            state_lineage=state.lineage,
            state_serial=state.serial,
            state_digest=compute_state_digest(state),
            config_digest=_compute_config_digest(graph),
            engine_version=__version__,
        )
        plan = Plan(
            metadata=metadata,
            changes=changes,
            batches=schedule.batches,
            operation_deps=schedule.operation_deps,
            outputs={} if graph is None else graph.outputs,
        )
        logger.debug("Plan summary: %s", plan.summary())
        return plan

    def apply(
        self,
        plan: Plan,
        *,
        progress: ProgressCallback | None = None,
        canceled: threading.Event | None = None,
    ) -> ExecutionResult:
        """Execute *plan* while holding the lease on the state target.

        Raises :class:`StalePlanError` if the state moved since planning.
        Per-operation failures do not raise; they come back in the
        result's failure report.
        """
        if plan.metadata.target != self._target:
            raise StateTargetMismatchError(self._target, plan.metadata.target)

        with self._store.acquire() as lease:
            state = self._load_state_for_apply(plan)

            if state.lineage != plan.metadata.state_lineage:
                raise StalePlanError("State lineage changed; re-run plan")
            if state.serial != plan.metadata.state_serial:
                raise StalePlanError("State serial changed; re-run plan")
            if compute_state_digest(state) != plan.metadata.state_digest:
                raise StalePlanError("State digest changed; re-run plan")

            executor = ExecutionEngine(
                registry=self._registry,
                store=self._store,
                lease=lease,
                target=self._target,
                max_concurrency=self._max_concurrency,
                retry=self._retry,
                canceled=canceled,
                progress=progress,
            )
            logger.info(
                "Applying %d operations in %d batches",
                sum(len(b) for b in plan.batches),
                len(plan.batches),
            )
            return executor.execute(plan, state)

    def destroy(
        self,
        *,
        progress: ProgressCallback | None = None,
        canceled: threading.Event | None = None,
    ) -> ExecutionResult:
        """Plan and apply the deletion of everything the state tracks."""
        return self.apply(self.plan(destroy=True), progress=progress, canceled=canceled)

    def state(self) -> StateSnapshot:
        """Current snapshot for this target (empty if nothing was applied)."""
        return self._load_state()
