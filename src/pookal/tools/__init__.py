# Tools package.

from pookal.tools.capabilities import CapabilityRegistry, CapabilitySpec, ExecutionResult

__all__ = ["CapabilityRegistry", "CapabilitySpec", "ExecutionResult"]
