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

"""Environment lifecycle subcommands (up, down, reset, clean, export-kubeconfig)."""

from __future__ import annotations

from pathlib import Path

import typer

from grounds_dev.commands.options import cluster_config
from grounds_dev.config import KeycloakConfig, UpOptions
from grounds_dev.orchestrator import run_clean, run_down, run_export_kubeconfig, run_reset, run_up


def up(
    cluster_name: str | None = typer.Option(None, "--cluster-name", help="k3d cluster name"),
    project_dir: Path | None = typer.Option(
        None, "--project-dir", help="Directory holding .env, helmfile.yaml and the exported kubeconfig"),
    skip_charts: bool = typer.Option(
        False, "--skip-charts", help="Skip helmfile sync and the Agones CRD wait"),
    skip_dummy_server: bool = typer.Option(
        False, "--skip-dummy-server", help="Skip the dummy HTTP server"),
    skip_keycloak: bool = typer.Option(
        False, "--skip-keycloak", help="Skip the Keycloak operator and instance"),
) -> None:
    """Start the complete development environment.

    Safe to re-run: existing resources are detected and left in place.
    """
    options = UpOptions(
        skip_charts=skip_charts,
        skip_dummy_server=skip_dummy_server,
        skip_keycloak=skip_keycloak,
    )
    run_up(cluster_config(cluster_name, project_dir), KeycloakConfig(), options=options)


def down(
    cluster_name: str | None = typer.Option(None, "--cluster-name", help="k3d cluster name"),
) -> None:
    """Stop and delete the development environment."""
    run_down(cluster_config(cluster_name))


def reset(
    cluster_name: str | None = typer.Option(None, "--cluster-name", help="k3d cluster name"),
    project_dir: Path | None = typer.Option(
        None, "--project-dir", help="Directory holding .env, helmfile.yaml and the exported kubeconfig"),
) -> None:
    """Delete the environment and start a fresh one."""
    run_reset(cluster_config(cluster_name, project_dir), KeycloakConfig())


def clean(
    cluster_name: str | None = typer.Option(None, "--cluster-name", help="k3d cluster name"),
    project_dir: Path | None = typer.Option(
        None, "--project-dir", help="Directory holding the exported kubeconfig"),
) -> None:
    """Delete the cluster and its kubeconfig entries."""
    run_clean(cluster_config(cluster_name, project_dir))


def export_kubeconfig(
    cluster_name: str | None = typer.Option(None, "--cluster-name", help="k3d cluster name"),
    project_dir: Path | None = typer.Option(
        None, "--project-dir", help="Directory to write the kubeconfig to"),
) -> None:
    """Export the cluster's kubeconfig to the project directory."""
    run_export_kubeconfig(cluster_config(cluster_name, project_dir))
