"""Execution engine: applies a plan batch by batch against resource providers."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Literal

from deploy_orchestrator.core.state import (
    ResourceState,
    ResourceStatus,
    compute_properties_hash,
)
from deploy_orchestrator.engine.errors import ExecutionCanceled, ProviderError
from deploy_orchestrator.engine.intrinsics import contains_unknown, resolve_references
from deploy_orchestrator.engine.providers import ProviderContext
from deploy_orchestrator.engine.retry import RetryPolicy
from deploy_orchestrator.engine.types import (
    Action,
    ChangeRecord,
    ExecutionResult,
    FailureReport,
    OperationOutcome,
    OperationStatus,
)

if TYPE_CHECKING:
    from deploy_orchestrator.core.state import StateSnapshot
    from deploy_orchestrator.engine.providers import ResourceProvider
    from deploy_orchestrator.engine.registry import ProviderRegistry
    from deploy_orchestrator.engine.store import Lease, StateStore
    from deploy_orchestrator.engine.types import Plan

logger = logging.getLogger(__name__)

ProgressEvent = Literal["start", "done", "failed", "blocked"]
ProgressCallback = Callable[[ChangeRecord, ProgressEvent], None]


class ExecutionEngine:
    """Runs the batches of one plan; owns the state snapshot while doing so.

    Batches run strictly one after another.  Operations inside a batch run on
    a bounded thread pool.  A failed operation never raises out of
    :meth:`execute`: it is recorded, every operation that waits on it is
    reported ``blocked``, and independent operations keep going.
    """

    def __init__(
        self,
        *,
        registry: ProviderRegistry,
        store: StateStore,
        lease: Lease,
        target: str,
        max_concurrency: int = 4,
        retry: RetryPolicy | None = None,
        canceled: threading.Event | None = None,
        progress: ProgressCallback | None = None,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._registry = registry
        self._store = store
        self._lease = lease
        self._max_concurrency = max_concurrency
        self._retry = retry or RetryPolicy()
        self._canceled = canceled or threading.Event()
        self._progress = progress
        self._ctx = ProviderContext(target=target, canceled=self._canceled)
        self._lock = threading.Lock()

    def _notify(self, record: ChangeRecord, event: ProgressEvent) -> None:
        if self._progress is not None:
            self._progress(record, event)

    # ── state bookkeeping (always under self._lock) ─────────────────

    def _persist(self, state: StateSnapshot) -> None:
        state.serial += 1
        self._store.save(state, self._lease)

    def _resolve(self, record: ChangeRecord, state: StateSnapshot) -> dict[str, Any]:
        def ref(name: str) -> Any:
            inst = state.resources.get(name)
            if inst is None:
                raise ProviderError(f"Referenced resource '{name}' is not applied")
            return inst.physical_id

        def get_att(name: str, attr: str) -> Any:
            inst = state.resources.get(name)
            if inst is None:
                raise ProviderError(f"Referenced resource '{name}' is not applied")
            if attr not in inst.outputs:
                raise ProviderError(f"Resource '{name}' has no output '{attr}'")
            return inst.outputs[attr]

        props = resolve_references(record.desired or {}, ref, get_att)
        if contains_unknown(props):
            raise ProviderError(f"Properties of '{record.name}' still contain unknown values")
        return props

    def _mark(self, state: StateSnapshot, name: str, status: ResourceStatus) -> None:
        inst = state.resources.get(name)
        if inst is not None:
            inst.status = status

    # ── per-operation work ──────────────────────────────────────────

    def _apply_create(
        self,
        provider: ResourceProvider,
        record: ChangeRecord,
        state: StateSnapshot,
        on_attempt: Callable[[int], None],
    ) -> None:
        with self._lock:
            props = self._resolve(record, state)
        result = self._retry.call(
            lambda: provider.create(self._ctx, record.name, props),
            canceled=self._canceled,
            label=record.key,
            on_attempt=on_attempt,
        )
        now = datetime.now(UTC)
        with self._lock:
            state.resources[record.name] = ResourceState(
                name=record.name,
                resource_type=record.resource_type,
                properties=props,
                properties_hash=compute_properties_hash(props),
                physical_id=result.physical_id,
                outputs=dict(result.outputs),
                dependencies=list(record.dependencies),
                created_at=now,
                updated_at=now,
            )
            self._persist(state)

    def _apply_update(
        self,
        provider: ResourceProvider,
        record: ChangeRecord,
        state: StateSnapshot,
        on_attempt: Callable[[int], None],
    ) -> None:
        with self._lock:
            props = self._resolve(record, state)
            physical_id = state.resources[record.name].physical_id
            self._mark(state, record.name, ResourceStatus.UPDATING)
        outputs = self._retry.call(
            lambda: provider.update(self._ctx, physical_id, props),
            canceled=self._canceled,
            label=record.key,
            on_attempt=on_attempt,
        )
        with self._lock:
            inst = state.resources[record.name]
            inst.properties = props
            inst.properties_hash = compute_properties_hash(props)
            inst.outputs = dict(outputs)
            inst.dependencies = list(record.dependencies)
            inst.status = ResourceStatus.APPLIED
            inst.updated_at = datetime.now(UTC)
            self._persist(state)

    def _apply_delete(
        self,
        provider: ResourceProvider,
        record: ChangeRecord,
        state: StateSnapshot,
        on_attempt: Callable[[int], None],
    ) -> None:
        with self._lock:
            physical_id = state.resources[record.name].physical_id
            self._mark(state, record.name, ResourceStatus.DELETING)
        self._retry.call(
            lambda: provider.delete(self._ctx, physical_id),
            canceled=self._canceled,
            label=record.key,
            on_attempt=on_attempt,
        )
        with self._lock:
            del state.resources[record.name]
            if not record.replacement:
                for inst in state.resources.values():
                    if record.name in inst.dependencies:
                        inst.dependencies.remove(record.name)
            self._persist(state)

    def _fail(self, record: ChangeRecord, state: StateSnapshot) -> None:
        with self._lock:
            if record.name in state.resources and record.action != Action.CREATE:
                self._mark(state, record.name, ResourceStatus.FAILED)
                self._persist(state)
        self._notify(record, "failed")

    def _run(self, record: ChangeRecord, state: StateSnapshot) -> OperationOutcome:
        if self._canceled.is_set():
            return self._outcome(record, OperationStatus.CANCELED, error="run canceled")
        self._notify(record, "start")
        logger.debug("Applying %s", record.key)
        attempts = 0

        def on_attempt(n: int) -> None:
            nonlocal attempts
            attempts = n

        try:
            provider = self._registry.get(record.resource_type)
            match record.action:
                case Action.CREATE:
                    self._apply_create(provider, record, state, on_attempt)
                case Action.UPDATE:
                    self._apply_update(provider, record, state, on_attempt)
                case Action.DELETE:
                    self._apply_delete(provider, record, state, on_attempt)
                case _:
                    raise ValueError(f"Cannot execute action: {record.action}")
        except ExecutionCanceled as exc:
            logger.info("%s canceled: %s", record.key, exc)
            self._fail(record, state)
            return self._outcome(
                record, OperationStatus.CANCELED, attempts=attempts, error=str(exc)
            )
        except Exception as exc:
            logger.error("%s failed: %s", record.key, exc)
            self._fail(record, state)
            return self._outcome(
                record, OperationStatus.FAILED, attempts=attempts, error=str(exc) or repr(exc)
            )

        self._notify(record, "done")
        return self._outcome(record, OperationStatus.APPLIED, attempts=attempts)

    @staticmethod
    def _outcome(
        record: ChangeRecord,
        status: OperationStatus,
        *,
        attempts: int = 0,
        error: str | None = None,
        blocked_by: list[str] | None = None,
    ) -> OperationOutcome:
        return OperationOutcome(
            key=record.key,
            name=record.name,
            action=record.action,
            status=status,
            attempts=attempts,
            error=error,
            blocked_by=blocked_by or [],
        )

    # ── run ─────────────────────────────────────────────────────────

    def _resolve_outputs(self, plan: Plan, state: StateSnapshot) -> dict[str, Any]:
        def ref(name: str) -> Any:
            return state.resources[name].physical_id

        def get_att(name: str, attr: str) -> Any:
            return state.resources[name].outputs.get(attr)

        return {k: resolve_references(v, ref, get_att) for k, v in plan.outputs.items()}

    def execute(self, plan: Plan, state: StateSnapshot) -> ExecutionResult:
        """Apply *plan* to *state*, persisting after every successful operation."""
        records = {r.key: r for r in plan.changes.records}
        outcomes: dict[str, OperationOutcome] = {}
        applied: list[ChangeRecord] = []

        with ThreadPoolExecutor(
            max_workers=self._max_concurrency, thread_name_prefix="deploy"
        ) as pool:
            for index, batch in enumerate(plan.batches):
                if self._canceled.is_set():
                    for key in (k for b in plan.batches[index:] for k in b):
                        outcomes[key] = self._outcome(
                            records[key], OperationStatus.CANCELED, error="run canceled"
                        )
                    logger.info("Run canceled before batch %d", index + 1)
                    break

                runnable: list[ChangeRecord] = []
                for key in batch:
                    record = records[key]
                    unsettled = [
                        d
                        for d in plan.operation_deps.get(key, ())
                        if outcomes[d].status != OperationStatus.APPLIED
                    ]
                    if unsettled:
                        outcomes[key] = self._outcome(
                            record,
                            OperationStatus.BLOCKED,
                            error=f"dependency not applied: {', '.join(unsettled)}",
                            blocked_by=unsettled,
                        )
                        self._notify(record, "blocked")
                        logger.info("%s blocked by %s", key, ", ".join(unsettled))
                    else:
                        runnable.append(record)

                logger.debug("Batch %d: running %d operations", index + 1, len(runnable))
                futures = [pool.submit(self._run, record, state) for record in runnable]
                try:
                    wait(futures)
                except KeyboardInterrupt:
                    logger.warning("Interrupted; waiting for in-flight operations to settle")
                    self._canceled.set()
                    wait(futures)
                for record, future in zip(runnable, futures, strict=True):
                    outcome = future.result()
                    outcomes[record.key] = outcome
                    if outcome.status == OperationStatus.APPLIED:
                        applied.append(record)

        unsuccessful = [
            outcomes[r.key]
            for r in plan.changes.records
            if r.key in outcomes and outcomes[r.key].status != OperationStatus.APPLIED
        ]
        result_outputs: dict[str, Any] = dict(state.outputs)
        if not unsuccessful:
            with self._lock:
                result_outputs = self._resolve_outputs(plan, state)
                if result_outputs != state.outputs:
                    state.outputs = result_outputs
                    self._persist(state)

        report = FailureReport(entries=unsuccessful) if unsuccessful else None
        if report is not None:
            logger.warning(
                "Apply finished with %d failed, %d blocked, %d canceled operations",
                len(report.failed),
                len(report.blocked),
                len(report.canceled),
            )
        return ExecutionResult(
            applied=applied,
            outcomes=outcomes,
            failure_report=report,
            outputs=result_outputs,
        )
