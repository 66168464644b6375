"""Tests for stage, plan, configuration and repository models."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from iac_orchestrator.domain.errors import InvalidStateTransitionError
from iac_orchestrator.domain.models.configuration import (
    DeploymentConfiguration,
    RepositoryReference,
    RunOptions,
)
from iac_orchestrator.domain.models.plan import DeploymentPlan
from iac_orchestrator.domain.models.repository import (
    RepositoryEntry,
    RepositoryManifest,
    RepositoryStatus,
    TemplateDescriptor,
)
from iac_orchestrator.domain.models.stage import (
    ApplyConfig,
    PlanConfig,
    PrepareConfig,
    StageDefinition,
    StageName,
    StageSettings,
    checkpoint_name,
)


NOW = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


class TestStageName:
    def test_case_insensitive_lookup(self) -> None:
        assert StageName("apply") == StageName.APPLY
        assert StageName("VERIFY") == StageName.VERIFY

    def test_unknown(self) -> None:
        with pytest.raises(ValueError):
            StageName("Destroy")

    def test_checkpoint_name(self) -> None:
        assert checkpoint_name(StageName.PLAN) == "after-Plan"


class TestStageSettings:
    def test_defaults(self) -> None:
        settings = StageSettings()
        assert settings.plan.create_checkpoint is True
        assert settings.apply.create_checkpoint is True
        assert settings.prepare.create_checkpoint is False
        assert settings.for_stage(StageName.VALIDATE).required is True

    def test_validate_alias(self) -> None:
        settings = StageSettings.model_validate({"validate": {"required_variables": ["vm_name"]}})
        assert settings.validate_.required_variables == ["vm_name"]

    def test_unknown_key_rejected(self) -> None:
        with pytest.raises(ValidationError):
            StageSettings.model_validate({"apply": {"parallel": 4}})

    def test_parallelism_bounds(self) -> None:
        with pytest.raises(ValidationError):
            ApplyConfig(parallelism=0)

    def test_timeout_positive(self) -> None:
        with pytest.raises(ValidationError):
            PrepareConfig(timeout_seconds=0)


class TestDeploymentPlan:
    def test_orders_must_increase(self) -> None:
        with pytest.raises(ValidationError, match="execution order"):
            DeploymentPlan(stages={
                StageName.APPLY: StageDefinition(order=4, config=ApplyConfig()),
                StageName.PLAN: StageDefinition(order=3, config=PlanConfig()),
            })

    def test_orders_unique(self) -> None:
        with pytest.raises(ValidationError, match="unique"):
            DeploymentPlan(stages={
                StageName.PLAN: StageDefinition(order=3, config=PlanConfig()),
                StageName.APPLY: StageDefinition(order=3, config=ApplyConfig()),
            })

    def test_remaining_after(self) -> None:
        plan = DeploymentPlan(stages={
            StageName.PLAN: StageDefinition(order=3, config=PlanConfig()),
            StageName.APPLY: StageDefinition(order=4, config=ApplyConfig()),
        })
        assert plan.remaining_after([StageName.PLAN]) == [StageName.APPLY]
        assert plan.remaining_after([StageName.PLAN, StageName.APPLY]) == []

    def test_discriminated_config_from_json(self) -> None:
        plan = DeploymentPlan(stages={
            StageName.APPLY: StageDefinition(order=4, config=ApplyConfig(parallelism=4)),
        })
        restored = DeploymentPlan.model_validate_json(plan.model_dump_json())
        assert isinstance(restored.stages[StageName.APPLY].config, ApplyConfig)
        assert restored.stages[StageName.APPLY].config.parallelism == 4


class TestDeploymentConfiguration:
    def test_target_stages_sorted(self) -> None:
        configuration = DeploymentConfiguration(
            name="lab",
            source_path="/lab.yaml",
            repository=RepositoryReference(name="hyperv-lab"),
            target_stages=["Verify", "Prepare"],
        )
        assert configuration.target_stages == [StageName.PREPARE, StageName.VERIFY]

    def test_duplicate_targets_rejected(self) -> None:
        with pytest.raises(ValidationError, match="duplicates"):
            DeploymentConfiguration(
                name="lab",
                source_path="/lab.yaml",
                repository=RepositoryReference(name="hyperv-lab"),
                target_stages=["Plan", "plan"],
            )

    def test_with_repository(self) -> None:
        configuration = DeploymentConfiguration(
            name="lab",
            source_path="/lab.yaml",
            repository=RepositoryReference(name="hyperv-lab", template="hyperv-single-vm"),
        )
        moved = configuration.with_repository("mirror")
        assert moved.repository.name == "mirror"
        assert moved.repository.template == "hyperv-single-vm"
        assert configuration.repository.name == "hyperv-lab"

    def test_run_options_single_stage(self) -> None:
        assert RunOptions(stage="Apply").single_stage is True
        assert RunOptions().single_stage is False


class TestRepositoryEntry:
    def _entry(self, **overrides) -> RepositoryEntry:
        data = {
            "name": "hyperv-lab",
            "url": "https://github.com/example/templates.git",
            "local_path": "/cache/hyperv-lab",
        }
        data.update(overrides)
        return RepositoryEntry(**data)

    def test_name_validation(self) -> None:
        with pytest.raises(ValidationError):
            self._entry(name="../escape")

    def test_ttl_bounds(self) -> None:
        with pytest.raises(ValidationError):
            self._entry(cache_ttl=299)
        with pytest.raises(ValidationError):
            self._entry(cache_ttl=604801)

    def test_freshness(self) -> None:
        entry = self._entry(cache_ttl=300)
        assert entry.is_fresh(NOW) is False

        entry.mark_synced(NOW, "abc123", [])
        assert entry.is_fresh(NOW + timedelta(seconds=300)) is True
        assert entry.is_fresh(NOW + timedelta(seconds=301)) is False

    def test_failed_entry_is_stale_but_keeps_sync_time(self) -> None:
        entry = self._entry()
        entry.mark_synced(NOW, "abc123", [])
        entry.mark_failed("fatal: unable to access remote")

        assert entry.status == RepositoryStatus.CLONE_FAILED
        assert entry.last_sync_time == NOW
        assert entry.ever_synced is True
        assert entry.is_fresh(NOW) is False

    def test_registered_cannot_be_reentered(self) -> None:
        entry = self._entry()
        entry.mark_synced(NOW, "abc123", [])
        with pytest.raises(InvalidStateTransitionError):
            entry._transition_to(RepositoryStatus.REGISTERED)


class TestRepositoryManifest:
    def test_find_in_templates_and_bases(self) -> None:
        manifest = RepositoryManifest(
            templates=[TemplateDescriptor(id="vm", path="templates/vm")],
            base_templates=[TemplateDescriptor(id="base", path="templates/base")],
        )
        assert manifest.find("vm").path == "templates/vm"
        assert manifest.find("base").path == "templates/base"
        assert manifest.find("missing") is None
