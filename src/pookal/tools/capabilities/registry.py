"""Capability registry, argument validation and execution."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import ValidationError

from pookal.errors import RegistryFrozenError
from pookal.tools.capabilities.schema import (
    EXECUTOR_FAILURE,
    INVALID_ARGUMENTS,
    UNKNOWN_CAPABILITY,
    CapabilitySpec,
    ExecutionResult,
)

if TYPE_CHECKING:
    from pookal.config import Settings

logger = logging.getLogger(__name__)


def _first_violation(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "invalid arguments"
    first = errors[0]
    loc = ".".join(str(part) for part in first.get("loc", ()) if part != "__root__")
    msg = str(first.get("msg", "invalid value"))
    return f"{loc}: {msg}" if loc else msg


class CapabilityRegistry:
    """Closed name → capability mapping, built at start-up and then frozen."""

    def __init__(self, capabilities: tuple[CapabilitySpec, ...] = ()):
        self._by_name: dict[str, CapabilitySpec] = {}
        self._frozen = False
        for cap in capabilities:
            self.register(cap)

    def register(self, capability: CapabilitySpec) -> None:
        if self._frozen:
            raise RegistryFrozenError(f"Registry is frozen; cannot register {capability.name}")
        if capability.name in self._by_name:
            raise ValueError(f"Capability already registered: {capability.name}")
        self._by_name[capability.name] = capability

    def freeze(self) -> CapabilityRegistry:
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> CapabilitySpec | None:
        return self._by_name.get(name)

    def names(self) -> list[str]:
        return list(self._by_name)

    def is_sensitive(self, name: str) -> bool:
        cap = self._by_name.get(name)
        return bool(cap and cap.sensitive)

    def list_capabilities(self) -> list[dict[str, str]]:
        """Name and description of every capability, for the model prompt."""
        return [cap.summary() for cap in self._by_name.values()]

    async def invoke(self, name: str, raw_args: Any) -> ExecutionResult:
        """Validate ``raw_args`` against the capability schema, then execute.

        Never raises: unknown names, schema violations and executor faults
        all come back as failed results.
        """
        cap = self._by_name.get(name)
        if cap is None:
            logger.info("Rejected unknown capability %r", name)
            return ExecutionResult.failure(f"Unknown capability: {name}", UNKNOWN_CAPABILITY)

        if raw_args is None:
            raw_args = {}
        if not isinstance(raw_args, Mapping):
            return ExecutionResult.failure(
                f"arguments must be an object, got {type(raw_args).__name__}", INVALID_ARGUMENTS
            )

        try:
            args = cap.args_model.model_validate(dict(raw_args))
        except ValidationError as exc:
            reason = _first_violation(exc)
            logger.info("Rejected arguments for %s: %s", name, reason)
            return ExecutionResult.failure(reason, INVALID_ARGUMENTS)

        logger.info("Executing capability %s", name)
        try:
            result = await cap.executor(args)
        except Exception as exc:
            logger.error("Capability %s execution error: %s", name, exc)
            return ExecutionResult.failure(str(exc) or type(exc).__name__, EXECUTOR_FAILURE)

        if not isinstance(result, ExecutionResult):
            return ExecutionResult.success(result)
        if not result.ok and not result.error_code:
            result.error_code = EXECUTOR_FAILURE
        return result


def build_default_registry(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
    twilio_client_factory: Callable[[str, str], Any] | None = None,
) -> CapabilityRegistry:
    """Register the built-in capabilities and freeze the registry."""
    from pookal.tools.builtin import builtin_capabilities

    capabilities = builtin_capabilities(
        settings, transport=transport, twilio_client_factory=twilio_client_factory
    )
    return CapabilityRegistry(capabilities).freeze()
