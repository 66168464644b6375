"""Template repository marker (``repository.yaml``) parsing."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import ValidationError

from iac_orchestrator.domain.errors import ConfigurationError
from iac_orchestrator.domain.models.repository import REPOSITORY_MARKER, RepositoryManifest
from iac_orchestrator.domain.ports.services import ManifestReader


class YamlManifestReader(ManifestReader):
    """Reads the marker listing a repository's templates::

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

    def read(self, repository_path: Path) -> RepositoryManifest:
        marker = repository_path / REPOSITORY_MARKER
        with marker.open("r", encoding="utf-8") as handle:
            try:
                data = yaml.safe_load(handle) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Malformed {REPOSITORY_MARKER}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"{REPOSITORY_MARKER} must be a mapping")
        try:
            return RepositoryManifest.model_validate({
                "name": data.get("name", ""),
                "templates": data.get("templates") or [],
                "base_templates": data.get("base_templates") or [],
            })
        except ValidationError as e:
            raise ConfigurationError(f"Invalid {REPOSITORY_MARKER}: {e}") from e
