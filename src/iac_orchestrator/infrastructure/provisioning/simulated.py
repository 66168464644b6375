"""Simulated provisioning tool for development and testing."""

from __future__ import annotations

import asyncio
import json
import os
from typing import Any

import structlog

from iac_orchestrator.domain.models.provisioning import ApplyOutput, PlanOutput, ToolResult
from iac_orchestrator.domain.ports.services import ProvisioningTool


logger = structlog.get_logger(__name__)


class SimulatedProvisioningTool(ProvisioningTool):
    """Simulates init/validate/plan/apply without cloud credentials.

    ``failures`` maps an operation name to how many times it fails before
    succeeding, which exercises retry behaviour. Every call is recorded in
    ``calls`` as ``(operation, working_dir)``.
    """

    def __init__(
        self,
        failures: dict[str, int] | None = None,
        apply_outputs: dict[str, str] | None = None,
        delay: float = 0.0,
    ) -> None:
        self._failures = dict(failures or {})
        self._apply_outputs = apply_outputs
        self._delay = delay
        self._state: dict[str, dict[str, str]] = {}
        self.calls: list[tuple[str, str]] = []

    def _record(self, operation: str, working_dir: str) -> bool:
        """Record a call; return False if this call is scheduled to fail."""
        self.calls.append((operation, working_dir))
        remaining = self._failures.get(operation, 0)
        if remaining > 0:
            self._failures[operation] = remaining - 1
            return False
        return True

    def calls_to(self, operation: str) -> int:
        return sum(1 for name, _ in self.calls if name == operation)

    async def version(self) -> str:
        self.calls.append(("version", ""))
        return "1.8.0-simulated"

    async def init(self, working_dir: str) -> ToolResult:
        if not self._record("init", working_dir):
            return ToolResult(success=False, output="Error: Failed to query available provider packages")
        await asyncio.sleep(self._delay)
        return ToolResult(success=True, output="OpenTofu has been successfully initialized!")

    async def validate(self, working_dir: str) -> ToolResult:
        if not self._record("validate", working_dir):
            return ToolResult(success=False, output="Error: Unsupported argument")
        await asyncio.sleep(self._delay)
        return ToolResult(success=True, output="Success! The configuration is valid.")

    async def plan(
        self,
        working_dir: str,
        var_file: str,
        plan_file: str,
        refresh: bool = True,
        targets: list[str] | None = None,
    ) -> PlanOutput:
        if not self._record("plan", working_dir):
            return PlanOutput(success=False, output="Error: Invalid reference")
        await asyncio.sleep(self._delay)

        variables: dict[str, Any] = {}
        if os.path.exists(var_file):
            with open(var_file, encoding="utf-8") as f:
                variables = json.load(f)

        os.makedirs(os.path.dirname(plan_file) or ".", exist_ok=True)
        with open(plan_file, "w", encoding="utf-8") as f:
            json.dump({"variables": variables, "refresh": refresh, "targets": targets or []}, f)

        return PlanOutput(
            success=True,
            plan_file=plan_file,
            has_changes=True,
            summary="Plan: 1 to add, 0 to change, 0 to destroy.",
            output="Plan: 1 to add, 0 to change, 0 to destroy.",
        )

    async def apply(self, working_dir: str, plan_file: str, parallelism: int = 10) -> ApplyOutput:
        if not self._record("apply", working_dir):
            return ApplyOutput(success=False, output="Error: creating resource: timeout while waiting for state")
        await asyncio.sleep(self._delay)

        if not os.path.exists(plan_file):
            return ApplyOutput(success=False, output=f"Error: Failed to load plan file {plan_file}")

        outputs = self._apply_outputs
        if outputs is None:
            outputs = {
                "resource_id": f"sim-{os.path.basename(os.path.normpath(working_dir))}",
                "ip_address": "10.0.0.10",
            }
        self._state[working_dir] = dict(outputs)

        return ApplyOutput(
            success=True,
            outputs=dict(outputs),
            summary="Apply complete! Resources: 1 added, 0 changed, 0 destroyed.",
            output="Apply complete! Resources: 1 added, 0 changed, 0 destroyed.",
        )

    async def outputs(self, working_dir: str) -> dict[str, str]:
        self.calls.append(("outputs", working_dir))
        return dict(self._state.get(working_dir, {}))

    def drift(self, working_dir: str, name: str, value: str) -> None:
        """Change a live output to simulate out-of-band modification."""
        self._state.setdefault(working_dir, {})[name] = value
