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

"""k3d cluster lifecycle and credential export."""

from __future__ import annotations

import json
from pathlib import Path

import sh

from grounds_dev import console
from grounds_dev.config import ClusterConfig
from grounds_dev.constants import CLUSTER_TIMEOUT, KUBECONFIG_FILE_MODE
from grounds_dev.convergence import StepFailed


def cluster_create_args(cfg: ClusterConfig) -> list[str]:
    """Build ``k3d cluster create`` arguments.

    A ``cluster/k3d.yaml`` file in the project directory takes precedence over
    the individual settings.

    Args:
        cfg: k3d cluster configuration.

    Returns:
        Argument list for ``k3d``.
    """
    if cfg.k3d_config.exists():
        return ["cluster", "create", "--config", str(cfg.k3d_config)]
    return [
        "cluster", "create", cfg.cluster_name,
        "--servers", str(cfg.servers),
        "--agents", str(cfg.agents),
        "--image", cfg.k3s_image,
        "--port", f"{cfg.http_port}:80@loadbalancer",
        "--port", f"{cfg.https_port}:443@loadbalancer",
        "--timeout", CLUSTER_TIMEOUT,
        "--wait",
    ]


class K3dRuntime:
    """Cluster runtime backed by the k3d CLI."""

    def exists(self, name: str) -> bool:
        """Return True if a k3d cluster named *name* is registered.

        Raises:
            StepFailed: If the cluster list cannot be read.
        """
        try:
            output = sh.k3d("cluster", "list", "-o", "json")
        except sh.ErrorReturnCode as err:
            stderr = err.stderr.decode(errors="replace").strip() if err.stderr else str(err)
            raise StepFailed(f"Failed to list k3d clusters: {stderr[:200]}") from err
        try:
            clusters = json.loads(str(output) or "[]")
        except json.JSONDecodeError as err:
            raise StepFailed("Failed to list k3d clusters: k3d returned non-JSON output") from err
        return any(cluster.get("name") == name for cluster in clusters)

    def create(self, cfg: ClusterConfig) -> None:
        """Create the cluster once.

        Raises:
            sh.ErrorReturnCode: If k3d fails.
        """
        sh.k3d(*cluster_create_args(cfg))

    def delete(self, name: str) -> bool:
        """Delete the cluster, returning False if it was not found."""
        try:
            sh.k3d("cluster", "delete", name)
        except sh.ErrorReturnCode_1:
            return False
        return True

    def export_kubeconfig(self, name: str, path: Path) -> None:
        """Write the cluster's kubeconfig to *path*, replacing any previous file.

        Raises:
            sh.ErrorReturnCode: If k3d fails.
        """
        content = str(sh.k3d("kubeconfig", "get", name))
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        path.chmod(KUBECONFIG_FILE_MODE)


def delete_cluster(runtime: K3dRuntime, cfg: ClusterConfig) -> None:
    """Delete the k3d cluster.

    Args:
        runtime: Cluster runtime.
        cfg: k3d cluster configuration with the cluster name.
    """
    console.print(f"[yellow]\u2139\ufe0f  Deleting k3d cluster '{cfg.cluster_name}'...[/yellow]")
    if runtime.delete(cfg.cluster_name):
        console.print(f"[green]\u2705 Cluster '{cfg.cluster_name}' deleted[/green]")
    else:
        console.print(f"[yellow]\u26a0\ufe0f  Cluster '{cfg.cluster_name}' not found or already deleted[/yellow]")
