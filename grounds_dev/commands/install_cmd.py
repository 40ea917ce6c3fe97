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

"""Component install subcommands (deploy-keycloak)."""

from __future__ import annotations

import typer

from grounds_dev.commands.options import cluster_config
from grounds_dev.config import KeycloakConfig
from grounds_dev.orchestrator import run_deploy_keycloak


def deploy_keycloak(
    cluster_name: str | None = typer.Option(None, "--cluster-name", help="k3d cluster name"),
    channel: str | None = typer.Option(None, "--channel", help="Keycloak operator subscription channel"),
) -> None:
    """Deploy the Keycloak operator and instance on a running cluster."""
    keycloak_cfg = KeycloakConfig()
    if channel is not None:
        keycloak_cfg = keycloak_cfg.model_copy(update={"channel": channel})
    run_deploy_keycloak(cluster_config(cluster_name), keycloak_cfg)
