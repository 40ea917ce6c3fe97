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

"""Operator Lifecycle Manager installation."""

from __future__ import annotations

import tempfile
from collections.abc import Callable
from pathlib import Path

import sh
from rich.panel import Panel

from grounds_dev import console
from grounds_dev.constants import (
    NS_OLM,
    OLM_DEPLOYMENTS,
    OLM_READY_MAX_ATTEMPTS,
    OLM_READY_POLL_INTERVAL_SECONDS,
    dep_value,
)
from grounds_dev.convergence import ConvergentAction, FailurePolicy, await_probe, converge
from grounds_dev.kube import Kubectl
from grounds_dev.waiter import RetryPolicy, WaitOutcome

OLM_READY_POLICY = RetryPolicy(OLM_READY_MAX_ATTEMPTS, OLM_READY_POLL_INTERVAL_SECONDS)


def olm_install_url(version: str) -> str:
    """Build the release URL of the OLM install script.

    Args:
        version: OLM release tag (e.g. ``v0.35.0``).

    Returns:
        Full GitHub release download URL.
    """
    template = dep_value(
        "olm", "install_url",
        default="https://github.com/operator-framework/operator-lifecycle-manager/releases/download/{version}/install.sh",
    )
    return template.format(version=version)


def run_install_script(version: str) -> None:
    """Download the OLM install script and run it.

    Raises:
        sh.ErrorReturnCode: If the download or the script fails.
    """
    with tempfile.TemporaryDirectory() as tmp:
        script = Path(tmp) / "olm-install.sh"
        console.print(f"[blue]\u2139\ufe0f  Downloading OLM installation script ({version})...[/blue]")
        sh.curl("-fsSL", olm_install_url(version), "-o", str(script))
        script.chmod(0o755)
        sh.bash(str(script), version)


def olm_ready(kube: Kubectl) -> bool:
    """Probe: both OLM control-plane deployments exist and finished rolling out."""
    for deployment in OLM_DEPLOYMENTS:
        if not kube.exists("deployment", deployment, NS_OLM):
            return False
    return all(kube.rollout_complete(deployment, NS_OLM) for deployment in OLM_DEPLOYMENTS)


def install_olm(
    kube: Kubectl,
    version: str | None = None,
    installer: Callable[[str], None] = run_install_script,
) -> bool:
    """Install OLM unless it is already present, then wait for its deployments.

    Args:
        kube: kubectl wrapper.
        version: OLM release tag, or None for the pinned version.
        installer: Function running the install for a version.

    Returns:
        True if OLM is installed and ready, False if readiness timed out.

    Raises:
        StepFailed: If the install script fails.
    """
    version = version or dep_value("olm", "version", default="v0.35.0")
    console.print(Panel.fit(f"Installing OLM (Operator Lifecycle Manager) {version}", style="bold blue"))
    if kube.exists("deployment", OLM_DEPLOYMENTS[0], NS_OLM):
        console.print("[blue]\u2139\ufe0f  OLM is already installed, skipping installation[/blue]")
        return True

    converge(ConvergentAction(
        name=f"install OLM {version}",
        apply=lambda: installer(version) or True,
        policy=FailurePolicy.FATAL,
    ))

    console.print("[blue]\u2139\ufe0f  Waiting for OLM to be ready...[/blue]")
    outcome = await_probe(
        "OLM deployments", lambda: olm_ready(kube), OLM_READY_POLICY,
        on_timeout=FailurePolicy.BEST_EFFORT,
        hint="OLM installation may still be in progress, continuing...",
    )
    if outcome is WaitOutcome.READY:
        console.print("[green]\u2705 OLM installed and ready![/green]")
        return True
    return False
