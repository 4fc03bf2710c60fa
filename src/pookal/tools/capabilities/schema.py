"""Capability and execution result contracts."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

UNKNOWN_CAPABILITY = "unknown_capability"
INVALID_ARGUMENTS = "invalid_arguments"
EXECUTOR_FAILURE = "executor_failure"
TRANSPORT_FAILURE = "transport_failure"


@dataclass
class ExecutionResult:
    """Uniform outcome of running a capability.

    ``ok`` is authoritative. On failure ``error`` carries a human-readable
    reason and ``error_code`` its category; on success ``data`` may still be
    ``None`` when the capability has nothing to return.
    """

    ok: bool
    data: Any = None
    error: str = ""
    error_code: str = ""

    @classmethod
    def success(cls, data: Any = None) -> ExecutionResult:
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, error: str, error_code: str = EXECUTOR_FAILURE) -> ExecutionResult:
        return cls(ok=False, error=error or "unknown error", error_code=error_code)

    def to_dict(self) -> dict[str, Any]:
        if self.ok:
            return {"ok": True, "data": self.data}
        return {"ok": False, "error": self.error, "error_code": self.error_code}


Executor = Callable[[Any], Awaitable[ExecutionResult]]


@dataclass(frozen=True)
class CapabilitySpec:
    """One named action the model may propose.

    ``args_model`` is the only gate for argument shape: the executor is
    called with an instance of it, never with raw model output.
    """

    name: str
    description: str
    args_model: type[BaseModel]
    executor: Executor
    sensitive: bool = False
    allow_auto_consent: bool = True

    def summary(self) -> dict[str, str]:
        return {"name": self.name, "description": self.description}
