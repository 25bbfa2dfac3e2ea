# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""swarmbrowse - Browse Docker Swarm clusters and shell into running tasks."""

__version__ = "0.1.0"
