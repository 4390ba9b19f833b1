"""Core state models for deploy-orchestrator."""

from deploy_orchestrator.core.state import ResourceState, ResourceStatus, StateSnapshot

__all__ = ["ResourceState", "ResourceStatus", "StateSnapshot"]
