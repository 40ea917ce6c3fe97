# /*
# Copyright 2026 The Grounds Authors.
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

"""Shared option handling for the subcommands."""

from __future__ import annotations

from pathlib import Path

from grounds_dev.config import ClusterConfig


def cluster_config(cluster_name: str | None = None, project_dir: Path | None = None) -> ClusterConfig:
    """Load ClusterConfig from the environment and apply CLI overrides."""
    cfg = ClusterConfig()
    overrides: dict = {}
    if cluster_name is not None:
        overrides["cluster_name"] = cluster_name
    if project_dir is not None:
        overrides["project_dir"] = project_dir.resolve()
    if overrides:
        cfg = cfg.model_copy(update=overrides)
    return cfg
