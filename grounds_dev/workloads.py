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

"""Helm repositories, helmfile releases, and the smaller workloads."""

from __future__ import annotations

import base64
import secrets
from pathlib import Path

import sh
from rich.panel import Panel

from grounds_dev import console
from grounds_dev.constants import (
    AGONES_CRD_MAX_ATTEMPTS,
    AGONES_CRD_POLL_INTERVAL_SECONDS,
    FORWARDING_SECRET_BYTES,
    FORWARDING_SECRET_NAME,
    NS_GAMES,
    NS_INFRA,
    dep_value,
)
from grounds_dev.convergence import ConvergentAction, await_probe, converge
from grounds_dev.keycloak import crd_registered
from grounds_dev.kube import Kubectl
from grounds_dev.manifests import dummy_server_manifests, opaque_secret_manifest
from grounds_dev.waiter import RetryPolicy

AGONES_CRD_POLICY = RetryPolicy(AGONES_CRD_MAX_ATTEMPTS, AGONES_CRD_POLL_INTERVAL_SECONDS)


# ============================================================================
# Helm
# ============================================================================

def _helm(*args: str) -> bool:
    sh.helm(*args)
    return True


def _helmfile_sync(helmfile: Path) -> bool:
    sh.helmfile("--file", str(helmfile), "sync", _cwd=str(helmfile.parent))
    return True


def add_helm_repos(repos: dict[str, str] | None = None) -> None:
    """Register Helm repositories and refresh the local index.

    Args:
        repos: Mapping of repository name to URL, or None for the pinned set.

    Raises:
        StepFailed: If a repository cannot be added or the index refresh fails.
    """
    repos = repos if repos is not None else dep_value("helm_repos", default={})
    console.print(Panel.fit("Adding Helm repositories", style="bold blue"))
    for name, url in repos.items():
        converge(ConvergentAction(
            name=f"add Helm repository {name}",
            apply=lambda name=name, url=url: _helm("repo", "add", name, url, "--force-update"),
        ))
    console.print("[blue]\u2139\ufe0f  Updating Helm repository cache...[/blue]")
    converge(ConvergentAction(
        name="update Helm repositories",
        apply=lambda: _helm("repo", "update"),
    ))
    console.print("[green]\u2705 Helm repositories updated[/green]")


def sync_releases(helmfile: Path) -> bool:
    """Run ``helmfile sync`` for the project's release set.

    Args:
        helmfile: Path to helmfile.yaml.

    Returns:
        True if releases were synchronized, False if no helmfile exists.

    Raises:
        StepFailed: If helmfile sync fails.
    """
    console.print(Panel.fit("Deploying Helm releases", style="bold blue"))
    if not helmfile.exists():
        console.print(f"[yellow]\u26a0\ufe0f  {helmfile} not found, skipping Helm releases[/yellow]")
        return False
    converge(ConvergentAction(
        name="sync Helm releases",
        apply=lambda: _helmfile_sync(helmfile),
    ))
    console.print("[green]\u2705 Helm releases synchronized[/green]")
    return True


def wait_for_agones_crds(kube: Kubectl, crds: list[str] | None = None) -> None:
    """Wait until the Agones CRDs are registered.

    Raises:
        StepFailed: If any CRD is still missing after the retry budget.
    """
    crds = crds if crds is not None else dep_value("agones", "crds", default=[])
    console.print("[blue]\u2139\ufe0f  Waiting for Agones CRDs...[/blue]")
    for crd in crds:
        await_probe(f"CRD {crd}", lambda crd=crd: crd_registered(kube, crd), AGONES_CRD_POLICY)
        console.print(f"[green]\u2705 CRD {crd} is ready[/green]")


# ============================================================================
# Manifests
# ============================================================================

def deploy_dummy_server(kube: Kubectl, namespace: str = NS_INFRA) -> None:
    """Apply the dummy HTTP server.

    Raises:
        StepFailed: If the apply fails.
    """
    console.print("[blue]\u2139\ufe0f  Deploying dummy HTTP server...[/blue]")
    converge(ConvergentAction(
        name="deploy dummy HTTP server",
        apply=lambda: kube.apply(dummy_server_manifests(namespace)),
    ))
    console.print("[green]\u2705 Dummy HTTP server deployed[/green]")


def ensure_forwarding_secret(kube: Kubectl, namespace: str = NS_GAMES) -> bool:
    """Create the proxy forwarding secret if it does not exist yet.

    The value is random, so an existing secret is left alone to keep the
    proxy and game servers in agreement across runs.

    Returns:
        True if the secret was created, False if it already existed.

    Raises:
        StepFailed: If the secret cannot be created.
    """
    if kube.exists("secret", FORWARDING_SECRET_NAME, namespace):
        console.print(f"[blue]\u2139\ufe0f  Secret {FORWARDING_SECRET_NAME} already present in {namespace}[/blue]")
        return False
    value = base64.b64encode(secrets.token_bytes(FORWARDING_SECRET_BYTES)).decode()
    converge(ConvergentAction(
        name=f"create {FORWARDING_SECRET_NAME} in {namespace}",
        apply=lambda: kube.apply(opaque_secret_manifest(FORWARDING_SECRET_NAME, namespace, {"secret": value})),
    ))
    console.print(f"[green]\u2705 Secret {FORWARDING_SECRET_NAME} created[/green]")
    return True
