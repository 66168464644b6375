"""Unit tests for the OpenTofu CLI adapter."""

from __future__ import annotations

import json

import pytest

from iac_orchestrator.domain.errors import ProvisioningError
from iac_orchestrator.infrastructure.process import CommandResult
from iac_orchestrator.infrastructure.provisioning import opentofu as tofu_module
from iac_orchestrator.infrastructure.provisioning.opentofu import (
    SENSITIVE_PLACEHOLDER,
    OpenTofuProvisioningTool,
)


class FakeRunner:
    def __init__(self, *results: CommandResult | BaseException) -> None:
        self.results = list(results)
        self.calls: list[tuple[list[str], dict[str, str] | None]] = []

    async def __call__(self, args, cwd=None, env=None, timeout=None) -> CommandResult:
        self.calls.append((list(args), env))
        result = self.results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result


def _result(code: int = 0, stdout: str = "", stderr: str = "") -> CommandResult:
    return CommandResult(["tofu"], code, stdout, stderr)


OUTPUTS_JSON = json.dumps({
    "resource_id": {"value": "vm-01", "type": "string", "sensitive": False},
    "disks": {"value": ["os", "data"], "type": ["list", "string"], "sensitive": False},
    "admin_password": {"value": "hunter2", "type": "string", "sensitive": True},
})


@pytest.fixture
def runner(monkeypatch: pytest.MonkeyPatch):
    def _install(*results):
        fake = FakeRunner(*results)
        monkeypatch.setattr(tofu_module, "run_command", fake)
        return fake
    return _install


class TestOpenTofuProvisioningTool:
    @pytest.mark.asyncio
    async def test_version(self, runner) -> None:
        runner(_result(stdout='{"terraform_version": "1.8.2", "platform": "linux_amd64"}'))
        assert await OpenTofuProvisioningTool().version() == "1.8.2"

    @pytest.mark.asyncio
    async def test_missing_binary(self, runner) -> None:
        runner(FileNotFoundError("tofu"))
        with pytest.raises(ProvisioningError, match="Cannot run tofu"):
            await OpenTofuProvisioningTool().version()

    @pytest.mark.asyncio
    async def test_init_runs_in_working_dir(self, runner) -> None:
        fake = runner(_result(stdout="OpenTofu has been successfully initialized!"))

        result = await OpenTofuProvisioningTool().init("/work/lab")

        assert result.success is True
        args, env = fake.calls[0]
        assert args[:3] == ["tofu", "-chdir=/work/lab", "init"]
        assert env == {"TF_IN_AUTOMATION": "1", "TF_INPUT": "0"}

    @pytest.mark.asyncio
    async def test_validate_failure_returns_stderr(self, runner) -> None:
        runner(_result(code=1, stderr="Error: Unsupported argument"))

        result = await OpenTofuProvisioningTool().validate("/work/lab")

        assert result.success is False
        assert result.output == "Error: Unsupported argument"

    @pytest.mark.asyncio
    async def test_plan_with_changes(self, runner) -> None:
        fake = runner(_result(code=2, stdout="...\nPlan: 1 to add, 0 to change, 0 to destroy.\n"))

        result = await OpenTofuProvisioningTool().plan(
            "/work/lab", "/state/d/vars.json", "/state/d/plan", refresh=False, targets=["module.vm"]
        )

        assert result.success is True
        assert result.has_changes is True
        assert result.summary == "Plan: 1 to add, 0 to change, 0 to destroy."
        args = fake.calls[0][0]
        assert "-out=/state/d/plan" in args
        assert "-var-file=/state/d/vars.json" in args
        assert "-refresh=false" in args
        assert "-target=module.vm" in args

    @pytest.mark.asyncio
    async def test_plan_without_changes(self, runner) -> None:
        runner(_result(code=0, stdout="No changes. Your infrastructure matches the configuration."))

        result = await OpenTofuProvisioningTool().plan("/w", "/v", "/p")

        assert result.success is True
        assert result.has_changes is False

    @pytest.mark.asyncio
    async def test_plan_error(self, runner) -> None:
        runner(_result(code=1, stderr="Error: Invalid reference"))

        result = await OpenTofuProvisioningTool().plan("/w", "/v", "/p")

        assert result.success is False
        assert "Invalid reference" in result.output

    @pytest.mark.asyncio
    async def test_apply_collects_outputs(self, runner) -> None:
        fake = runner(
            _result(stdout="Apply complete! Resources: 1 added, 0 changed, 0 destroyed.\n"),
            _result(stdout=OUTPUTS_JSON),
        )

        result = await OpenTofuProvisioningTool().apply("/w", "/p", parallelism=4)

        assert result.success is True
        assert result.outputs == {
            "resource_id": "vm-01",
            "disks": '["os", "data"]',
            "admin_password": SENSITIVE_PLACEHOLDER,
        }
        assert fake.calls[0][0][-2:] == ["-parallelism=4", "/p"]

    @pytest.mark.asyncio
    async def test_apply_failure_skips_outputs(self, runner) -> None:
        fake = runner(_result(code=1, stderr="Error: creating resource"))

        result = await OpenTofuProvisioningTool().apply("/w", "/p")

        assert result.success is False
        assert len(fake.calls) == 1

    @pytest.mark.asyncio
    async def test_outputs_unparsable(self, runner) -> None:
        runner(_result(stdout="not json"))
        with pytest.raises(ProvisioningError, match="Unparsable"):
            await OpenTofuProvisioningTool().outputs("/w")

    @pytest.mark.asyncio
    async def test_custom_binary(self, runner) -> None:
        fake = runner(_result(stdout='{"terraform_version": "1.7.5"}'))
        await OpenTofuProvisioningTool(binary="terraform").version()
        assert fake.calls[0][0][0] == "terraform"
