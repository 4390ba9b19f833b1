"""Declarative deployment orchestration: plan and converge multi-resource deployments."""

__version__ = "0.1.0"
