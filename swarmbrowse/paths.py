# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Centralized path definitions for swarmbrowse.

- HostPaths: config, state and runtime locations on the operator's machine
- RemotePaths: well-known paths on the cluster nodes

Usage:
    from swarmbrowse.paths import HostPaths, RemotePaths

    clusters_file = HostPaths.clusters_file()
    socket_dir = HostPaths.tunnel_socket_dir()
"""

import os
import tempfile
from pathlib import Path
from typing import Optional


class HostPaths:
    """Paths on the machine where the swarmbrowse CLI runs."""

    # Name of the clusters file looked up in the working directory
    CLUSTERS_FILE_NAME = "clusters.yml"

    @staticmethod
    def config_dir() -> Path:
        """~/.config/swarmbrowse/"""
        return Path.home() / ".config" / "swarmbrowse"

    @staticmethod
    def clusters_file() -> Path:
        """~/.config/swarmbrowse/clusters.yml"""
        return HostPaths.config_dir() / HostPaths.CLUSTERS_FILE_NAME

    @staticmethod
    def state_dir() -> Path:
        """~/.local/state/swarmbrowse/"""
        return Path.home() / ".local" / "state" / "swarmbrowse"

    @staticmethod
    def log_dir() -> Path:
        """~/.local/state/swarmbrowse/logs/"""
        return HostPaths.state_dir() / "logs"

    @staticmethod
    def runtime_dir() -> Path:
        """XDG runtime dir, or the system temp dir when unset."""
        xdg = os.getenv("XDG_RUNTIME_DIR")
        if xdg and Path(xdg).is_dir():
            return Path(xdg)
        return Path(tempfile.gettempdir())

    @staticmethod
    def tunnel_socket_dir() -> Path:
        """Directory holding the local ends of the SSH forwards.

        Kept short: unix socket paths are limited to ~100 bytes.
        """
        return HostPaths.runtime_dir() / "swarmbrowse"

    @staticmethod
    def find_clusters_file(explicit: Optional[Path] = None) -> Optional[Path]:
        """Locate the clusters file.

        Priority:
        1. explicit path (--config)
        2. SWARMBROWSE_CONFIG environment variable
        3. ./clusters.yml
        4. ~/.config/swarmbrowse/clusters.yml
        """
        if explicit is not None:
            return explicit

        env_path = os.environ.get("SWARMBROWSE_CONFIG")
        if env_path:
            return Path(env_path)

        for candidate in (Path.cwd() / HostPaths.CLUSTERS_FILE_NAME, HostPaths.clusters_file()):
            if candidate.exists():
                return candidate
        return None


class RemotePaths:
    """Paths on the cluster nodes reached through SSH."""

    DOCKER_SOCKET = "/var/run/docker.sock"


class BinPaths:
    """Executables invoked as subprocesses."""

    SSH = "ssh"
