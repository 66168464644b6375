"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterator
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest
import structlog

from iac_orchestrator.api.dependencies.services import ServiceContainer
from iac_orchestrator.config import (
    Environment,
    ExecutionSettings,
    ProvisioningSettings,
    Settings,
    StorageSettings,
)
from iac_orchestrator.domain.models.provisioning import GitSyncResult
from iac_orchestrator.domain.models.repository import RepositoryEntry
from iac_orchestrator.domain.ports.services import GitClient
from iac_orchestrator.domain.services.orchestrator import DeploymentOrchestrator
from iac_orchestrator.domain.services.planner import DeploymentPlanner
from iac_orchestrator.domain.services.repository_cache import RepositoryCacheService
from iac_orchestrator.domain.services.stage_executor import StageExecutor
from iac_orchestrator.infrastructure.credentials.store import InMemoryCredentialStore
from iac_orchestrator.infrastructure.descriptors.manifest import YamlManifestReader
from iac_orchestrator.infrastructure.descriptors.yaml_resolver import YamlConfigurationResolver
from iac_orchestrator.infrastructure.locking.keyed_lock import AsyncKeyedLock
from iac_orchestrator.infrastructure.messaging.event_publisher import InMemoryEventPublisher
from iac_orchestrator.infrastructure.persistence.in_memory import (
    InMemoryRepositoryRegistryStore,
    InMemoryStateStore,
)
from iac_orchestrator.infrastructure.provisioning.simulated import SimulatedProvisioningTool
from iac_orchestrator.stages import default_handlers


LAB_URL = "https://github.com/example/infrastructure-templates.git"

HYPERV_MANIFEST = """\
name: infrastructure-templates
templates:
  - id: hyperv-single-vm
    name: Hyper-V Single VM
    path: templates/hyperv/single-vm
    version: 1.0.0
base_templates:
  - id: hyperv-base
    path: templates/hyperv/base
"""

TEMPLATE_FILES = {
    "repository.yaml": HYPERV_MANIFEST,
    "README.md": "# Infrastructure templates\n",
    "templates/hyperv/single-vm/main.tf": 'resource "hyperv_machine_instance" "vm" {}\n',
    "templates/hyperv/single-vm/variables.tf": 'variable "vm_name" {}\n',
    "templates/hyperv/base/main.tf": "# shared provider settings\n",
}

LAB_DESCRIPTOR = """\
name: hyperv-lab
repository:
  name: hyperv-lab
  template: hyperv-single-vm
stages:
  validate:
    required_variables: [vm_name]
  verify:
    expected_outputs: [resource_id]
variables:
  vm_name: lab-01
  memory_mb: 4096
"""


class FakeClock:
    """Controllable clock for TTL tests."""

    def __init__(self) -> None:
        self.now = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeGitClient(GitClient):
    """Git client that materializes a fixed file tree instead of cloning."""

    def __init__(self, files: dict[str, str] | None = None) -> None:
        self.files = dict(TEMPLATE_FILES if files is None else files)
        self.reachable = True
        self.fail_clone = False
        self.fail_fetch = False
        self.reachability_checks: list[str] = []
        self.clones: list[str] = []
        self.fetches: list[str] = []
        self.secrets: list[str | None] = []
        self._commits = 0

    def _next_commit(self) -> str:
        self._commits += 1
        return f"{self._commits:040x}"

    @property
    def network_operations(self) -> int:
        return len(self.clones) + len(self.fetches)

    async def is_reachable(
        self, url: str, branch: str, secret: str | None = None, timeout: float = 30.0
    ) -> bool:
        self.reachability_checks.append(url)
        self.secrets.append(secret)
        return self.reachable

    async def clone(
        self,
        url: str,
        branch: str,
        target: Path,
        secret: str | None = None,
        timeout: float = 300.0,
    ) -> GitSyncResult:
        self.clones.append(url)
        self.secrets.append(secret)
        if self.fail_clone:
            raise RuntimeError("fatal: could not read from remote repository")
        for relative, content in self.files.items():
            path = target / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return GitSyncResult(commit=self._next_commit())

    async def fetch(
        self, path: Path, branch: str, secret: str | None = None, timeout: float = 300.0
    ) -> GitSyncResult:
        self.fetches.append(str(path))
        self.secrets.append(secret)
        if self.fail_fetch:
            raise RuntimeError("fatal: unable to access remote")
        return GitSyncResult(commit=self._next_commit())


@pytest.fixture(autouse=True)
def reset_logging() -> Iterator[None]:
    """Undo any structlog configuration a test installed."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        environment=Environment.TESTING,
        debug=True,
        storage=StorageSettings(
            state_dir=tmp_path / "state",
            repository_cache_dir=tmp_path / "repositories",
            registry_path=tmp_path / "repositories.json",
        ),
        execution=ExecutionSettings(retry_base_delay_seconds=0, retry_max_delay_seconds=0),
        provisioning=ProvisioningSettings(backend="simulated"),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def git_client() -> FakeGitClient:
    return FakeGitClient()


@pytest.fixture
def credential_store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore({"github-token": "s3cr3t-token"})


@pytest.fixture
def event_publisher() -> InMemoryEventPublisher:
    return InMemoryEventPublisher()


@pytest.fixture
def registry_store() -> InMemoryRepositoryRegistryStore:
    return InMemoryRepositoryRegistryStore()


@pytest.fixture
def state_store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def provisioning_tool() -> SimulatedProvisioningTool:
    return SimulatedProvisioningTool()


@pytest.fixture
def repository_cache(
    tmp_path: Path,
    registry_store: InMemoryRepositoryRegistryStore,
    git_client: FakeGitClient,
    credential_store: InMemoryCredentialStore,
    event_publisher: InMemoryEventPublisher,
    clock: FakeClock,
) -> RepositoryCacheService:
    return RepositoryCacheService(
        registry_store=registry_store,
        git_client=git_client,
        credential_store=credential_store,
        manifest_reader=YamlManifestReader(),
        lock=AsyncKeyedLock(),
        cache_dir=tmp_path / "repositories",
        event_publisher=event_publisher,
        clock=clock,
    )


@pytest.fixture
def register_lab(
    repository_cache: RepositoryCacheService,
) -> Callable[..., Awaitable[RepositoryEntry]]:
    """Register (and by default clone) the hyperv-lab template repository."""

    async def _register(**overrides: Any) -> RepositoryEntry:
        params: dict[str, Any] = {"name": "hyperv-lab", "url": LAB_URL, "auto_sync": True}
        params.update(overrides)
        return await repository_cache.register(**params)

    return _register


@pytest.fixture
def executor() -> StageExecutor:
    return StageExecutor(default_handlers(), retry_base_delay=0, retry_max_delay=0)


@pytest.fixture
def orchestrator(
    tmp_path: Path,
    repository_cache: RepositoryCacheService,
    provisioning_tool: SimulatedProvisioningTool,
    state_store: InMemoryStateStore,
    executor: StageExecutor,
    event_publisher: InMemoryEventPublisher,
) -> DeploymentOrchestrator:
    return DeploymentOrchestrator(
        resolver=YamlConfigurationResolver(),
        planner=DeploymentPlanner(repository_cache),
        executor=executor,
        state_store=state_store,
        repository_cache=repository_cache,
        provisioning_tool=provisioning_tool,
        event_publisher=event_publisher,
        work_root=tmp_path / "state",
    )


@pytest.fixture
def descriptor_path(tmp_path: Path) -> Path:
    path = tmp_path / "hyperv-lab.yaml"
    path.write_text(LAB_DESCRIPTOR, encoding="utf-8")
    return path


@pytest.fixture
def container(
    settings: Settings,
    git_client: FakeGitClient,
    credential_store: InMemoryCredentialStore,
) -> Iterator[ServiceContainer]:
    """Composition root wired with fakes and installed as the process-wide instance."""
    services = ServiceContainer(
        settings=settings,
        git_client=git_client,
        provisioning_tool=SimulatedProvisioningTool(),
        credential_store=credential_store,
    )
    ServiceContainer.set_instance(services)
    yield services
    ServiceContainer.reset()
