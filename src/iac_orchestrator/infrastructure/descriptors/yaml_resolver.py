"""YAML deployment descriptor loading."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import ValidationError

from iac_orchestrator.domain.errors import ConfigurationError
from iac_orchestrator.domain.models.configuration import DeploymentConfiguration
from iac_orchestrator.domain.models.stage import StageName
from iac_orchestrator.domain.ports.services import ConfigurationResolver


logger = structlog.get_logger(__name__)

STAGE_KEYS = {stage.value.lower(): stage.value for stage in StageName}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _expand(value: Any) -> Any:
    """Expand ``$VAR``/``${VAR}`` references in string values."""
    if isinstance(value, str):
        return os.path.expandvars(value)
    if isinstance(value, list):
        return [_expand(item) for item in value]
    if isinstance(value, dict):
        return {key: _expand(item) for key, item in value.items()}
    return value


class YamlConfigurationResolver(ConfigurationResolver):
    """Loads deployment descriptors such as::

        name: hyperv-lab
        repository:
          name: hyperv-lab
          template: hyperv-single-vm
        stages:
          apply:
            parallelism: 4
        variables:
          vm_name: lab-01

    A descriptor may ``extends`` one or more base descriptors (paths relative
    to itself) which are deep-merged underneath it. Environment variable
    references in ``variables`` are expanded.
    """

    def load(self, path: str) -> DeploymentConfiguration:
        descriptor_path = Path(path)
        if not descriptor_path.is_file():
            raise ConfigurationError(f"Deployment descriptor not found: {path}")

        data = self._load_data(descriptor_path, set())
        data.setdefault("name", descriptor_path.stem)
        data["source_path"] = str(descriptor_path.resolve())
        data["variables"] = _expand(data.get("variables") or {})
        data["stages"] = self._tag_stages(descriptor_path, data.get("stages") or {})

        try:
            configuration = DeploymentConfiguration.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid deployment descriptor {path}: {e}") from e

        logger.debug(
            "descriptor_loaded",
            path=str(descriptor_path),
            name=configuration.name,
            repository=configuration.repository.name,
        )
        return configuration

    def _load_data(self, path: Path, seen: set[Path]) -> dict[str, Any]:
        resolved = path.resolve()
        if resolved in seen:
            raise ConfigurationError(f"Cyclic 'extends' reference at {path}")
        seen.add(resolved)

        try:
            with path.open("r", encoding="utf-8") as handle:
                loaded = yaml.safe_load(handle) or {}
        except OSError as e:
            raise ConfigurationError(f"Cannot read deployment descriptor {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Malformed YAML in {path}: {e}") from e

        if not isinstance(loaded, dict):
            raise ConfigurationError(f"Deployment descriptor {path} must be a mapping")

        extends = loaded.pop("extends", None)
        if isinstance(extends, str):
            extends = [extends]
        if extends is not None and not (
            isinstance(extends, list) and all(isinstance(item, str) for item in extends)
        ):
            raise ConfigurationError(f"{path}: 'extends' must be a string or list of strings")

        merged: dict[str, Any] = {}
        for entry in extends or []:
            base_path = path.parent / entry
            if not base_path.is_file():
                raise ConfigurationError(f"{path}: extended descriptor '{entry}' not found")
            merged = _deep_merge(merged, self._load_data(base_path, seen))

        seen.discard(resolved)
        return _deep_merge(merged, loaded)

    @staticmethod
    def _tag_stages(path: Path, stages: Any) -> dict[str, Any]:
        """Attach the stage discriminator to every per-stage block."""
        if not isinstance(stages, dict):
            raise ConfigurationError(f"{path}: 'stages' must be a mapping")

        tagged: dict[str, Any] = {}
        for key, block in stages.items():
            stage = STAGE_KEYS.get(str(key).lower())
            if stage is None:
                raise ConfigurationError(
                    f"{path}: unknown stage '{key}' (expected one of {sorted(STAGE_KEYS)})"
                )
            block = block or {}
            if not isinstance(block, dict):
                raise ConfigurationError(f"{path}: stage '{key}' must be a mapping")
            tagged[stage.lower()] = {**block, "stage": stage}
        return tagged
