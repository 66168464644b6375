"""Service dependencies for FastAPI dependency injection and the CLI."""

from __future__ import annotations

from iac_orchestrator.config import get_settings, Settings
from iac_orchestrator.domain.ports.repositories import RepositoryRegistryStore, StateStore
from iac_orchestrator.domain.ports.services import (
    CredentialStore,
    EventPublisher,
    GitClient,
    ProvisioningTool,
)
from iac_orchestrator.domain.services.orchestrator import DeploymentOrchestrator
from iac_orchestrator.domain.services.planner import DeploymentPlanner
from iac_orchestrator.domain.services.repository_cache import RepositoryCacheService
from iac_orchestrator.domain.services.stage_executor import StageExecutor
from iac_orchestrator.infrastructure.credentials.store import EnvironmentCredentialStore
from iac_orchestrator.infrastructure.descriptors.manifest import YamlManifestReader
from iac_orchestrator.infrastructure.descriptors.yaml_resolver import YamlConfigurationResolver
from iac_orchestrator.infrastructure.git.client import SubprocessGitClient
from iac_orchestrator.infrastructure.locking.keyed_lock import AsyncKeyedLock
from iac_orchestrator.infrastructure.messaging.event_publisher import InMemoryEventPublisher
from iac_orchestrator.infrastructure.persistence.registry_store import JsonRepositoryRegistryStore
from iac_orchestrator.infrastructure.persistence.state_store import FileStateStore
from iac_orchestrator.infrastructure.provisioning.opentofu import OpenTofuProvisioningTool
from iac_orchestrator.infrastructure.provisioning.simulated import SimulatedProvisioningTool
from iac_orchestrator.stages import default_handlers


class ServiceContainer:
    """Simple dependency injection container.

    Implements the Composition Root pattern: the only place where ports are
    bound to adapters. Adapters can be overridden, which tests use to swap in
    fakes for git and the provisioning tool.
    """

    _instance: ServiceContainer | None = None

    def __init__(
        self,
        settings: Settings | None = None,
        git_client: GitClient | None = None,
        provisioning_tool: ProvisioningTool | None = None,
        credential_store: CredentialStore | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        storage = self._settings.storage
        repository = self._settings.repository
        execution = self._settings.execution

        self._event_publisher = InMemoryEventPublisher()
        self._state_store = FileStateStore(storage.state_dir)
        self._registry_store = JsonRepositoryRegistryStore(storage.registry_path)
        self._git_client = git_client or SubprocessGitClient(repository.git_binary)
        self._credential_store = credential_store or EnvironmentCredentialStore(
            repository.credential_env_prefix
        )
        self._provisioning_tool = provisioning_tool or self._build_provisioning_tool()

        self._repository_cache = RepositoryCacheService(
            registry_store=self._registry_store,
            git_client=self._git_client,
            credential_store=self._credential_store,
            manifest_reader=YamlManifestReader(),
            lock=AsyncKeyedLock(),
            cache_dir=storage.repository_cache_dir,
            event_publisher=self._event_publisher,
            default_ttl=repository.default_cache_ttl_seconds,
            git_timeout=repository.git_timeout_seconds,
            reachability_timeout=repository.reachability_timeout_seconds,
            max_workers=repository.sync_max_workers,
        )
        self._orchestrator = DeploymentOrchestrator(
            resolver=YamlConfigurationResolver(),
            planner=DeploymentPlanner(
                self._repository_cache, max_stage_timeout=execution.max_stage_timeout_seconds
            ),
            executor=StageExecutor(
                default_handlers(),
                retry_base_delay=execution.retry_base_delay_seconds,
                retry_max_delay=execution.retry_max_delay_seconds,
            ),
            state_store=self._state_store,
            repository_cache=self._repository_cache,
            provisioning_tool=self._provisioning_tool,
            event_publisher=self._event_publisher,
            work_root=storage.state_dir,
        )

    def _build_provisioning_tool(self) -> ProvisioningTool:
        provisioning = self._settings.provisioning
        if provisioning.backend == "simulated":
            return SimulatedProvisioningTool()
        return OpenTofuProvisioningTool(provisioning.binary)

    @classmethod
    def get_instance(cls) -> ServiceContainer:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def set_instance(cls, container: ServiceContainer) -> None:
        cls._instance = container

    @classmethod
    def reset(cls) -> None:
        cls._instance = None

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def event_publisher(self) -> EventPublisher:
        return self._event_publisher

    @property
    def state_store(self) -> StateStore:
        return self._state_store

    @property
    def registry_store(self) -> RepositoryRegistryStore:
        return self._registry_store

    @property
    def provisioning_tool(self) -> ProvisioningTool:
        return self._provisioning_tool

    @property
    def repository_cache(self) -> RepositoryCacheService:
        return self._repository_cache

    @property
    def orchestrator(self) -> DeploymentOrchestrator:
        return self._orchestrator


def get_service_container() -> ServiceContainer:
    return ServiceContainer.get_instance()
