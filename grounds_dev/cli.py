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

"""
cli.py - CLI for the Grounds local development environment.

Commands:
    up                 Start the cluster and every platform component
    down               Delete the cluster
    reset              down, then up
    status             Show nodes, pods, services and ingresses
    logs               Show recent logs of the platform services
    clean              down, plus removal of the exported and merged kubeconfig entries
    export-kubeconfig  Export the cluster kubeconfig to the project directory
    deploy-keycloak    Deploy Keycloak on a running cluster
    check-prereqs      Check required tools and the Docker daemon

Examples:
    # Bring up the environment from the project directory
    grounds-dev up

    # Cluster only, without Helm releases or Keycloak
    grounds-dev up --skip-charts --skip-keycloak

    # Start over
    grounds-dev reset
"""

from __future__ import annotations

import logging
import sys

import typer

from grounds_dev import console
from grounds_dev.commands import inspect_cmd, install_cmd, lifecycle_cmd

app = typer.Typer(
    help="Grounds local development environment (k3d).",
    no_args_is_help=True,
)


@app.callback()
def _main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Initialize logging for all subcommands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


app.command("up")(lifecycle_cmd.up)
app.command("down")(lifecycle_cmd.down)
app.command("reset")(lifecycle_cmd.reset)
app.command("clean")(lifecycle_cmd.clean)
app.command("export-kubeconfig")(lifecycle_cmd.export_kubeconfig)
app.command("status")(inspect_cmd.status)
app.command("logs")(inspect_cmd.logs)
app.command("check-prereqs")(inspect_cmd.check_prereqs)
app.command("deploy-keycloak")(install_cmd.deploy_keycloak)


def main() -> None:
    try:
        app()
    except Exception as e:
        console.print(f"[red]\u274c {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
