# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Connection and session core: tunnels, host pool, session bridge.

For the browsing layer built on top, see swarmbrowse/browser/.
"""
