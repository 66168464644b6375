"""Repository cache: registry of template repositories and their local mirrors."""

from __future__ import annotations

import asyncio
import re
import shutil
import time
import uuid
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from urllib.parse import urlparse

import structlog

from iac_orchestrator.domain.errors import (
    CloneFailedError,
    ConfigurationError,
    CredentialInvalidError,
    DuplicateRepositoryError,
    InvalidRepositoryUrlError,
    OrchestratorError,
    RepositoryAccessError,
    RepositoryNotRegisteredError,
    RepositoryNotSyncedError,
)
from iac_orchestrator.domain.events.deployment_events import RepositorySynced, RepositorySyncFailed
from iac_orchestrator.domain.models.base import DomainEvent, utc_now
from iac_orchestrator.domain.models.provisioning import GitSyncResult
from iac_orchestrator.domain.models.repository import (
    DEFAULT_CACHE_TTL_SECONDS,
    MAX_CACHE_TTL_SECONDS,
    MIN_CACHE_TTL_SECONDS,
    REPOSITORY_MARKER,
    REPOSITORY_NAME_PATTERN,
    RepositoryEntry,
    RepositoryManifest,
)
from iac_orchestrator.domain.ports.repositories import RepositoryRegistryStore
from iac_orchestrator.domain.ports.services import (
    CredentialStore,
    EventPublisher,
    GitClient,
    KeyedLock,
    ManifestReader,
)
from iac_orchestrator.infrastructure.observability.metrics import (
    REPOSITORY_SYNC_DURATION,
    REPOSITORY_SYNCS_TOTAL,
)
from iac_orchestrator.infrastructure.observability.tracing import traced


logger = structlog.get_logger(__name__)

ALLOWED_URL_SCHEMES = {"https", "http", "ssh", "git", "file"}
_SCP_LIKE_URL = re.compile(r"^[\w.-]+@[\w.-]+:[\w./~-]+$")
README_NAMES = ("README.md", "README", "README.rst", "readme.md")


def validate_repository_url(url: str) -> None:
    """Raise InvalidRepositoryUrlError unless ``url`` is a usable git remote."""
    parsed = urlparse(url)
    if parsed.scheme in ALLOWED_URL_SCHEMES:
        if parsed.scheme != "file" and not parsed.netloc:
            raise InvalidRepositoryUrlError(f"Repository URL has no host: {url}")
        if parsed.password:
            raise InvalidRepositoryUrlError(
                "Repository URL embeds credentials; register a credential reference instead"
            )
        return
    if _SCP_LIKE_URL.match(url):
        return
    raise InvalidRepositoryUrlError(f"Unsupported repository URL: {url}")


class RepositoryCacheService:
    """Maintains a TTL-bounded local mirror of remote template repositories.

    Syncs of the same repository are serialized through a keyed lock; the
    registry document is read-modify-written under a single lock so
    concurrent syncs of different repositories do not lose updates.
    """

    def __init__(
        self,
        registry_store: RepositoryRegistryStore,
        git_client: GitClient,
        credential_store: CredentialStore,
        manifest_reader: ManifestReader,
        lock: KeyedLock,
        cache_dir: Path,
        event_publisher: EventPublisher | None = None,
        clock: Callable[[], datetime] = utc_now,
        default_ttl: int = DEFAULT_CACHE_TTL_SECONDS,
        git_timeout: float = 300.0,
        reachability_timeout: float = 30.0,
        max_workers: int = 4,
    ) -> None:
        self._store = registry_store
        self._git = git_client
        self._credentials = credential_store
        self._manifests = manifest_reader
        self._lock = lock
        self._cache_dir = cache_dir
        self._event_publisher = event_publisher
        self._clock = clock
        self._default_ttl = default_ttl
        self._git_timeout = git_timeout
        self._reachability_timeout = reachability_timeout
        self._max_workers = max_workers
        self._registry_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def register(
        self,
        name: str,
        url: str,
        branch: str = "main",
        credential_ref: str | None = None,
        cache_ttl: int | None = None,
        auto_sync: bool = False,
        tags: list[str] | None = None,
        update: bool = False,
    ) -> RepositoryEntry:
        """Add a repository to the registry after checking it is reachable."""
        if not REPOSITORY_NAME_PATTERN.match(name):
            raise ConfigurationError(f"Invalid repository name: {name!r}")
        validate_repository_url(url)
        ttl = self._default_ttl if cache_ttl is None else cache_ttl
        if not MIN_CACHE_TTL_SECONDS <= ttl <= MAX_CACHE_TTL_SECONDS:
            raise ConfigurationError(
                f"cache_ttl must be between {MIN_CACHE_TTL_SECONDS} and "
                f"{MAX_CACHE_TTL_SECONDS} seconds, got {ttl}"
            )

        entries = await self._store.load_all()
        existing = entries.get(name)
        if existing is not None and not update:
            raise DuplicateRepositoryError(f"Repository {name} is already registered")

        secret = self._credentials.resolve(credential_ref) if credential_ref else None
        reachable = await self._git.is_reachable(
            url, branch, secret=secret, timeout=self._reachability_timeout
        )
        if not reachable:
            raise RepositoryAccessError(f"Repository {url} (branch {branch}) is not reachable")

        entry = RepositoryEntry(
            name=name,
            url=url,
            branch=branch,
            local_path=str(self._cache_dir / name),
            credential_ref=credential_ref,
            cache_ttl=ttl,
            auto_sync=auto_sync,
            tags=list(tags or []),
        )
        if existing is not None and existing.url == url and existing.branch == branch:
            # Same remote: keep the mirror and its sync history.
            entry = existing.model_copy(update={
                "credential_ref": credential_ref,
                "cache_ttl": ttl,
                "auto_sync": auto_sync,
                "tags": list(tags or []),
            })
            entry.touch()
        elif existing is not None:
            entry = entry.model_copy(update={"id": existing.id, "created_at": existing.created_at})
            await self._discard_local_copy(Path(existing.local_path))

        await self._save(entry)
        logger.info(
            "repository_registered",
            repository=name,
            url=url,
            branch=branch,
            updated=existing is not None,
        )

        if auto_sync:
            entry = await self.sync(name)
        return entry

    async def remove(self, name: str, purge: bool = False) -> RepositoryEntry:
        """Unregister a repository, optionally deleting its local mirror."""
        async with self._lock.hold(name):
            async with self._registry_lock:
                entries = await self._store.load_all()
                entry = entries.pop(name, None)
                if entry is None:
                    raise RepositoryNotRegisteredError(f"Repository {name} is not registered")
                await self._store.save_all(entries)
            if purge:
                await self._discard_local_copy(Path(entry.local_path))
        logger.info("repository_removed", repository=name, purged=purge)
        return entry

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get(self, name: str) -> RepositoryEntry:
        entries = await self._store.load_all()
        entry = entries.get(name)
        if entry is None:
            raise RepositoryNotRegisteredError(f"Repository {name} is not registered")
        return entry

    async def list_repositories(self, tag: str | None = None) -> list[RepositoryEntry]:
        entries = await self._store.load_all()
        items = sorted(entries.values(), key=lambda e: e.name)
        if tag is not None:
            items = [e for e in items if tag in e.tags]
        return items

    async def resolve(self, name: str) -> Path:
        """Local path of a repository that has been synced at least once."""
        entry = await self.get(name)
        local = Path(entry.local_path)
        if not entry.ever_synced or not local.is_dir():
            raise RepositoryNotSyncedError(
                f"Repository {name} has no local copy; run a sync first"
            )
        return local

    async def resolve_template(self, name: str, template: str | None) -> Path:
        """Directory of ``template`` inside a synced repository.

        ``template`` is a template id from the repository marker or a path
        relative to the repository root. Without one, the root is used.
        """
        root = await self.resolve(name)
        if not template:
            return root

        manifest = self._read_manifest(root)
        descriptor = manifest.find(template) if manifest else None
        candidate = root / (descriptor.path if descriptor else template)

        resolved_root = root.resolve()
        resolved = candidate.resolve()
        if resolved != resolved_root and resolved_root not in resolved.parents:
            raise ConfigurationError(f"Template {template!r} escapes repository {name}")
        if not resolved.is_dir():
            raise ConfigurationError(f"Template {template!r} not found in repository {name}")
        return resolved

    def validate_structure(self, path: Path) -> list[str]:
        """Structural checks on a mirror. Problems are warnings, never errors."""
        warnings: list[str] = []
        manifest = None
        try:
            manifest = self._manifests.read(path)
        except FileNotFoundError:
            warnings.append(f"missing {REPOSITORY_MARKER} at repository root")
        except ConfigurationError as e:
            warnings.append(str(e))

        if manifest is not None:
            if not manifest.templates:
                warnings.append(f"{REPOSITORY_MARKER} lists no templates")
            for template in [*manifest.templates, *manifest.base_templates]:
                if not (path / template.path).is_dir():
                    warnings.append(f"template {template.id!r} path not found: {template.path}")

        if not any((path / readme).is_file() for readme in README_NAMES):
            warnings.append("repository has no README")
        return warnings

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    async def sync(self, name: str, force: bool = False) -> RepositoryEntry:
        """Bring the mirror up to date.

        Clones when there is no local copy, fetches once the TTL has expired
        (or when forced) and otherwise does nothing. A failed sync marks the
        entry ``CloneFailed`` and keeps whatever local copy already existed.
        """
        async with self._lock.hold(name):
            entry = await self.get(name)
            now = self._clock()
            local = Path(entry.local_path)
            has_copy = local.is_dir()

            if has_copy and not force and entry.is_fresh(now):
                REPOSITORY_SYNCS_TOTAL.labels(operation="fresh", result="success").inc()
                logger.debug("repository_cache_fresh", repository=name)
                return entry

            operation = "fetch" if has_copy else "clone"
            try:
                secret = self._credentials.resolve(entry.credential_ref) if entry.credential_ref else None
            except CredentialInvalidError as e:
                await self._record_failure(entry, operation, str(e))
                raise

            start = time.monotonic()
            with traced("repository.sync", repository=name, sync_operation=operation) as span:
                try:
                    if has_copy:
                        result = await self._git.fetch(
                            local, entry.branch, secret=secret, timeout=self._git_timeout
                        )
                    else:
                        result = await self._clone_into_place(entry, local, secret)
                except Exception as e:
                    span.set_attribute("sync.success", False)
                    await self._record_failure(entry, operation, str(e))
                    raise CloneFailedError(f"{operation} of repository {name} failed: {e}") from e
                span.set_attribute("sync.success", True)

            REPOSITORY_SYNC_DURATION.labels(operation=operation).observe(time.monotonic() - start)
            REPOSITORY_SYNCS_TOTAL.labels(operation=operation, result="success").inc()

            warnings = self.validate_structure(local)
            entry.mark_synced(now, result.commit, warnings)
            await self._save(entry)
            await self._publish(RepositorySynced(repository=name, commit=result.commit))

            for warning in warnings:
                logger.warning("repository_structure_warning", repository=name, warning=warning)
            logger.info("repository_synced", repository=name, operation=operation, commit=result.commit)
            return entry

    async def sync_many(
        self, names: list[str] | None = None, force: bool = False
    ) -> dict[str, RepositoryEntry | OrchestratorError]:
        """Sync several repositories on a bounded pool of workers.

        Failures are reported per repository instead of aborting the batch.
        """
        if names is None:
            names = [entry.name for entry in await self.list_repositories()]
        semaphore = asyncio.Semaphore(self._max_workers)

        async def _sync_one(name: str) -> RepositoryEntry | OrchestratorError:
            async with semaphore:
                try:
                    return await self.sync(name, force=force)
                except OrchestratorError as e:
                    logger.warning("repository_sync_failed", repository=name, error=str(e))
                    return e

        results = await asyncio.gather(*(_sync_one(name) for name in names))
        return dict(zip(names, results))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _clone_into_place(
        self, entry: RepositoryEntry, target: Path, secret: str | None
    ) -> GitSyncResult:
        """Clone into a sibling staging directory and rename it on success."""
        staging = target.with_name(f".{target.name}.{uuid.uuid4().hex[:8]}.partial")
        try:
            result = await self._git.clone(
                entry.url, entry.branch, staging, secret=secret, timeout=self._git_timeout
            )
            staging.replace(target)
            return result
        finally:
            if staging.exists():
                await asyncio.to_thread(shutil.rmtree, staging, True)

    def _read_manifest(self, path: Path) -> RepositoryManifest | None:
        try:
            return self._manifests.read(path)
        except (FileNotFoundError, ConfigurationError):
            return None

    async def _record_failure(self, entry: RepositoryEntry, operation: str, error: str) -> None:
        entry.mark_failed(error)
        await self._save(entry)
        REPOSITORY_SYNCS_TOTAL.labels(operation=operation, result="failure").inc()
        await self._publish(RepositorySyncFailed(repository=entry.name, error_message=error))
        logger.error("repository_sync_error", repository=entry.name, operation=operation, error=error)

    async def _save(self, entry: RepositoryEntry) -> None:
        async with self._registry_lock:
            entries = await self._store.load_all()
            entries[entry.name] = entry
            await self._store.save_all(entries)

    async def _publish(self, event: DomainEvent) -> None:
        if self._event_publisher is not None:
            await self._event_publisher.publish(event.event_type, event.model_dump(mode="json"))

    @staticmethod
    async def _discard_local_copy(path: Path) -> None:
        if path.exists():
            await asyncio.to_thread(shutil.rmtree, path, True)
