"""Capability registry exports."""

from pookal.tools.capabilities.registry import CapabilityRegistry, build_default_registry
from pookal.tools.capabilities.schema import CapabilitySpec, ExecutionResult

__all__ = ["CapabilityRegistry", "CapabilitySpec", "ExecutionResult", "build_default_registry"]
