"""OpenTofu (or Terraform) CLI implementation of the provisioning tool port."""

from __future__ import annotations

import json

import structlog

from iac_orchestrator.domain.errors import ProvisioningError
from iac_orchestrator.domain.models.provisioning import ApplyOutput, PlanOutput, ToolResult
from iac_orchestrator.domain.ports.services import ProvisioningTool
from iac_orchestrator.infrastructure.process import CommandResult, run_command


logger = structlog.get_logger(__name__)

SENSITIVE_PLACEHOLDER = "<sensitive>"

# `plan -detailed-exitcode`: 0 = no changes, 1 = error, 2 = changes present
PLAN_EXIT_NO_CHANGES = 0
PLAN_EXIT_CHANGES = 2


def _summary_line(output: str, prefixes: tuple[str, ...]) -> str:
    for line in output.splitlines():
        stripped = line.strip()
        if stripped.startswith(prefixes):
            return stripped
    return ""


class OpenTofuProvisioningTool(ProvisioningTool):
    """Drives the ``tofu`` binary (``terraform`` works too) non-interactively.

    Timeouts are applied by the caller; a cancelled call kills the child.
    """

    def __init__(self, binary: str = "tofu") -> None:
        self._binary = binary

    async def version(self) -> str:
        result = await self._run(["version", "-json"])
        if not result.ok:
            raise ProvisioningError(f"{self._binary} version failed: {result.stderr.strip()}")
        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError:
            return result.stdout.strip().splitlines()[0] if result.stdout.strip() else "unknown"
        return str(data.get("terraform_version", "unknown"))

    async def init(self, working_dir: str) -> ToolResult:
        logger.info("provisioner_init", working_dir=working_dir)
        result = await self._run(["init", "-input=false", "-no-color"], working_dir)
        return ToolResult(success=result.ok, output=result.stdout if result.ok else result.stderr)

    async def validate(self, working_dir: str) -> ToolResult:
        logger.info("provisioner_validate", working_dir=working_dir)
        result = await self._run(["validate", "-no-color"], working_dir)
        return ToolResult(success=result.ok, output=result.stdout if result.ok else result.stderr)

    async def plan(
        self,
        working_dir: str,
        var_file: str,
        plan_file: str,
        refresh: bool = True,
        targets: list[str] | None = None,
    ) -> PlanOutput:
        args = [
            "plan",
            "-input=false",
            "-no-color",
            "-detailed-exitcode",
            f"-out={plan_file}",
            f"-var-file={var_file}",
        ]
        if not refresh:
            args.append("-refresh=false")
        args.extend(f"-target={target}" for target in targets or [])

        logger.info("provisioner_plan", working_dir=working_dir, plan_file=plan_file)
        result = await self._run(args, working_dir)
        if result.returncode not in (PLAN_EXIT_NO_CHANGES, PLAN_EXIT_CHANGES):
            return PlanOutput(success=False, output=result.stderr or result.stdout)

        return PlanOutput(
            success=True,
            plan_file=plan_file,
            has_changes=result.returncode == PLAN_EXIT_CHANGES,
            summary=_summary_line(result.stdout, ("Plan:", "No changes.")),
            output=result.stdout,
        )

    async def apply(self, working_dir: str, plan_file: str, parallelism: int = 10) -> ApplyOutput:
        logger.info("provisioner_apply", working_dir=working_dir, plan_file=plan_file)
        result = await self._run(
            ["apply", "-input=false", "-no-color", f"-parallelism={parallelism}", plan_file],
            working_dir,
        )
        if not result.ok:
            return ApplyOutput(success=False, output=result.stderr or result.stdout)

        return ApplyOutput(
            success=True,
            outputs=await self.outputs(working_dir),
            summary=_summary_line(result.stdout, ("Apply complete!",)),
            output=result.stdout,
        )

    async def outputs(self, working_dir: str) -> dict[str, str]:
        result = await self._run(["output", "-json"], working_dir)
        if not result.ok:
            raise ProvisioningError(f"Reading outputs failed: {result.stderr.strip()}")
        try:
            raw = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as e:
            raise ProvisioningError(f"Unparsable output JSON: {e}") from e

        outputs: dict[str, str] = {}
        for name, item in raw.items():
            if item.get("sensitive"):
                outputs[name] = SENSITIVE_PLACEHOLDER
                continue
            value = item.get("value")
            outputs[name] = value if isinstance(value, str) else json.dumps(value)
        return outputs

    async def _run(self, args: list[str], working_dir: str | None = None) -> CommandResult:
        command = [self._binary]
        if working_dir is not None:
            command.append(f"-chdir={working_dir}")
        command.extend(args)
        try:
            return await run_command(command, env={"TF_IN_AUTOMATION": "1", "TF_INPUT": "0"})
        except OSError as e:
            raise ProvisioningError(f"Cannot run {self._binary}: {e}") from e
