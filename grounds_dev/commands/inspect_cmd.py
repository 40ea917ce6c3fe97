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

"""Read-only inspection subcommands (status, logs, check-prereqs)."""

from __future__ import annotations

import typer

from grounds_dev.commands.options import cluster_config
from grounds_dev.constants import LOG_TAIL_LINES
from grounds_dev.orchestrator import report_prerequisites, run_logs, run_status


def status(
    cluster_name: str | None = typer.Option(None, "--cluster-name", help="k3d cluster name"),
) -> None:
    """Show nodes, pods, services and ingresses."""
    if not run_status(cluster_config(cluster_name)):
        raise typer.Exit(code=1)


def logs(
    cluster_name: str | None = typer.Option(None, "--cluster-name", help="k3d cluster name"),
    tail: int = typer.Option(LOG_TAIL_LINES, "--tail", min=1, help="Log lines per service"),
) -> None:
    """Show recent logs of PostgreSQL, Agones, the dummy server and Keycloak."""
    run_logs(cluster_config(cluster_name), tail=tail)


def check_prereqs() -> None:
    """Check that the required tools are installed and Docker is running."""
    if report_prerequisites():
        raise typer.Exit(code=1)
