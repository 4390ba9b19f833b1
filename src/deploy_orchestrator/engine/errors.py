"""Engine error types."""

from __future__ import annotations


class EngineError(Exception):
    """Base exception for engine errors."""


# ── Build errors: raised before any mutation ────────────────────────


class BuildError(EngineError):
    """The deployment document cannot be turned into a resource graph."""


class UnresolvedReferenceError(BuildError):
    """Raised when one or more references point at unknown names."""

    def __init__(self, unresolved: list[tuple[str, str]]) -> None:
        self.unresolved = unresolved
        lines = [f"  - {source} references unknown '{target}'" for source, target in unresolved]
        super().__init__("Unresolved references:\n" + "\n".join(lines))


class CyclicDependencyError(BuildError):
    """Raised when dependencies contain a cycle."""

    def __init__(self, cycle: list[str]) -> None:
        msg = "Dependency cycle detected"
        if cycle:
            msg += f": {' -> '.join(cycle)}"
        super().__init__(msg)
        self.cycle = cycle


class DuplicateAddressError(BuildError):
    """Raised when multiple resources share the same logical name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Duplicate resource name: {name}")
        self.name = name


class UnknownResourceTypeError(BuildError):
    """Raised when a resource type has no registered provider."""

    def __init__(self, resource_type: str) -> None:
        super().__init__(f"Unknown resource type: {resource_type}")
        self.resource_type = resource_type


class SpecValidationError(BuildError):
    """One or more resources failed validation."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        msg = "Validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        super().__init__(msg)


# ── Plan errors: the state snapshot cannot be planned against ───────


class PlanError(EngineError):
    """The current state cannot be planned or applied against."""


class InconsistentStateError(PlanError):
    """Raised when the state snapshot contradicts itself."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = problems
        msg = "Inconsistent state:\n" + "\n".join(f"  - {p}" for p in problems)
        super().__init__(msg)


class StateTargetMismatchError(PlanError):
    """Raised when the on-disk state belongs to a different deployment target."""

    def __init__(self, expected: str, got: str) -> None:
        super().__init__(f"State target mismatch: expected {expected}, got {got}")
        self.expected = expected
        self.got = got


class UntrackableResourceError(PlanError):
    """Raised when a resource in state has a type no provider handles anymore."""

    def __init__(self, name: str, resource_type: str) -> None:
        super().__init__(
            f"Resource '{name}' in state has type {resource_type}, "
            "which no registered provider handles"
        )
        self.name = name
        self.resource_type = resource_type


class StalePlanError(PlanError):
    """Raised when applying a plan against a different state than planned."""


# ── State locking ───────────────────────────────────────────────────


class StateLockError(EngineError):
    """Raised when the state lease cannot be used, acquired or released."""


class AlreadyLockedError(StateLockError):
    """Raised when another run currently holds the lease on a state target."""

    def __init__(self, path: str, holder: str | None = None) -> None:
        msg = f"State is locked: {path}"
        if holder:
            msg += f" (held by {holder})"
        super().__init__(msg)
        self.path = path
        self.holder = holder


# ── Execution ───────────────────────────────────────────────────────


class ProviderError(Exception):
    """Error raised by a resource provider.

    ``retryable`` marks transient faults (throttling, timeouts) that the
    execution engine retries with backoff.  Everything else is fatal.
    """

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class ExecutionCanceled(EngineError):
    """Raised inside a worker when the run was canceled during a retry wait."""

