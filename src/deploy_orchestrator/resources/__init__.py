"""Deployment template definitions."""

from deploy_orchestrator.resources.template import (
    ParameterDefinition,
    ResourceDefinition,
    Template,
)

__all__ = ["ParameterDefinition", "ResourceDefinition", "Template"]
