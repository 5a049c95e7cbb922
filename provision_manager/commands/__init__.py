# /*
# Copyright 2026 The Provision Manager Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */


"""Typer command groups and the shared wiring they use."""

from __future__ import annotations

import httpx

from provision_manager.config import InstallerConfig


def http_client(config: InstallerConfig) -> httpx.Client:
    """HTTP client for version lookups and downloads; release assets redirect."""
    return httpx.Client(timeout=config.http_timeout, follow_redirects=True)
