"""Plan and apply engine for declarative deployments."""

from deploy_orchestrator.engine.builder import GraphBuilder, ResourceGraph, ResourceNode
from deploy_orchestrator.engine.diff import DiffEngine
from deploy_orchestrator.engine.engine import DeploymentEngine
from deploy_orchestrator.engine.errors import (
    AlreadyLockedError,
    BuildError,
    CyclicDependencyError,
    DuplicateAddressError,
    EngineError,
    ExecutionCanceled,
    InconsistentStateError,
    PlanError,
    ProviderError,
    SpecValidationError,
    StalePlanError,
    StateLockError,
    StateTargetMismatchError,
    UnknownResourceTypeError,
    UnresolvedReferenceError,
)
from deploy_orchestrator.engine.executor import ExecutionEngine, ProgressCallback
from deploy_orchestrator.engine.providers import CreateResult, ProviderContext, ResourceProvider
from deploy_orchestrator.engine.registry import ProviderRegistry
from deploy_orchestrator.engine.retry import RetryPolicy
from deploy_orchestrator.engine.scheduler import PlanScheduler, Schedule
from deploy_orchestrator.engine.store import Lease, StateStore
from deploy_orchestrator.engine.types import (
    Action,
    ChangeRecord,
    ChangeSet,
    ExecutionResult,
    FailureReport,
    OperationOutcome,
    OperationStatus,
    Plan,
    PlanMetadata,
)

__all__ = [
    "Action",
    "AlreadyLockedError",
    "BuildError",
    "ChangeRecord",
    "ChangeSet",
    "CreateResult",
    "CyclicDependencyError",
    "DeploymentEngine",
    "DiffEngine",
    "DuplicateAddressError",
    "EngineError",
    "ExecutionCanceled",
    "ExecutionEngine",
    "ExecutionResult",
    "FailureReport",
    "GraphBuilder",
    "InconsistentStateError",
    "Lease",
    "OperationOutcome",
    "OperationStatus",
    "Plan",
    "PlanError",
    "PlanMetadata",
    "PlanScheduler",
    "ProgressCallback",
    "ProviderContext",
    "ProviderError",
    "ProviderRegistry",
    "ResourceGraph",
    "ResourceNode",
    "ResourceProvider",
    "RetryPolicy",
    "Schedule",
    "SpecValidationError",
    "StalePlanError",
    "StateLockError",
    "StateStore",
    "StateTargetMismatchError",
    "UnknownResourceTypeError",
    "UnresolvedReferenceError",
]
