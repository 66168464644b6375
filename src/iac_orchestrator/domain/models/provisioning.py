"""Value objects returned by the provisioning tool port."""

from __future__ import annotations

from pydantic import Field

from iac_orchestrator.domain.models.base import ValueObject


class ToolResult(ValueObject):
    """Outcome of a non-mutating provisioning command."""

    success: bool
    output: str = ""


class PlanOutput(ValueObject):
    """Outcome of a plan run."""

    success: bool
    plan_file: str = ""
    has_changes: bool = False
    summary: str = ""
    output: str = ""


class ApplyOutput(ValueObject):
    """Outcome of an apply run."""

    success: bool
    outputs: dict[str, str] = Field(default_factory=dict)
    summary: str = ""
    output: str = ""


class GitSyncResult(ValueObject):
    """Details about a completed clone or fetch."""

    commit: str
