# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Loading of clusters.yml and the offline dev config."""

import logging
from pathlib import Path
from typing import Any, Optional, Type, TypeVar

import yaml
from pydantic import BaseModel, ValidationError

from swarmbrowse.errors import ConfigError
from swarmbrowse.models.cluster import Cluster, ClustersConfig, DevConfig
from swarmbrowse.paths import HostPaths

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _load_yaml(path: Path) -> Any:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        with open(path) as f:
            return yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read {path}: {e}") from e


def _validate(model: Type[ModelT], raw: Any, path: Path) -> ModelT:
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid config in {path}: {e}") from e


def load_clusters_config(path: Optional[Path] = None) -> ClustersConfig:
    """Load clusters.yml.

    Args:
        path: Explicit file; otherwise looked up via HostPaths.find_clusters_file

    Raises:
        ConfigError: No file found, unreadable, or invalid.
    """
    resolved = HostPaths.find_clusters_file(path)
    if resolved is None:
        raise ConfigError(
            f"No {HostPaths.CLUSTERS_FILE_NAME} found",
            hint=f"create ./{HostPaths.CLUSTERS_FILE_NAME} or {HostPaths.clusters_file()}",
        )
    config = _validate(ClustersConfig, _load_yaml(resolved), resolved)
    logger.debug(f"Loaded {len(config.clusters)} cluster(s) from {resolved}")
    return config


def load_dev_config(path: Path) -> DevConfig:
    """Load the offline dev config used by DevBrowser."""
    config = _validate(DevConfig, _load_yaml(path), path)
    logger.debug(f"Loaded dev config with {len(config.stacks)} stack(s) from {path}")
    return config


def resolve_cluster(clusters: dict, name: Optional[str]) -> Cluster:
    """Pick a cluster by key, or the first configured one when no key is given."""
    if not clusters:
        raise ConfigError("No clusters configured")
    if name is None:
        return next(iter(clusters.values()))
    cluster = clusters.get(name)
    if cluster is None:
        available = ", ".join(sorted(clusters))
        raise ConfigError(f"Cluster '{name}' not found in config (available: {available})")
    return cluster
