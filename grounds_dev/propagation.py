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

"""Image-pull secret propagation across namespaces.

Each target namespace receives the registry secret and a reference to it on
its default service account. The broadcast is best-effort: a failure in one
namespace is reported and the remaining namespaces are still processed. The
next run picks up where this one stopped because existing links are detected
and never duplicated.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from rich.panel import Panel

from grounds_dev import console, logger
from grounds_dev.config import CredentialBundle
from grounds_dev.constants import (
    DEFAULT_SERVICE_ACCOUNT,
    NS_DEFAULT,
    PULL_SECRET_NAME,
    SERVICE_ACCOUNT_MAX_ATTEMPTS,
    SERVICE_ACCOUNT_POLL_INTERVAL_SECONDS,
)
from grounds_dev.kube import Kubectl
from grounds_dev.manifests import pull_secret_manifest
from grounds_dev.waiter import RetryPolicy, WaitOutcome, wait_for

SERVICE_ACCOUNT_POLICY = RetryPolicy(SERVICE_ACCOUNT_MAX_ATTEMPTS, SERVICE_ACCOUNT_POLL_INTERVAL_SECONDS)


class LinkResult(str, Enum):
    ALREADY_LINKED = "already-linked"
    LINKED = "linked"
    FAILED = "failed"


@dataclass
class PropagationReport:
    """What a propagation run did, per namespace.

    Attributes:
        secrets_applied: Namespaces where the secret was applied.
        links_added: Namespaces whose service account gained the link.
        already_linked: Namespaces whose service account already had the link.
        failed: Namespaces where the secret or the link could not be set.
    """

    secrets_applied: list[str] = field(default_factory=list)
    links_added: list[str] = field(default_factory=list)
    already_linked: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def configured(self) -> int:
        """Number of namespaces left with both the secret and the link."""
        return len(self.links_added) + len(self.already_linked)


def target_namespaces(namespaces: Sequence[str]) -> list[str]:
    """Return ``default`` followed by *namespaces*, in order, without duplicates."""
    ordered: list[str] = []
    for ns in (NS_DEFAULT, *namespaces):
        if ns not in ordered:
            ordered.append(ns)
    return ordered


def _linked_names(service_account: dict) -> list[str]:
    return [ref.get("name") for ref in service_account.get("imagePullSecrets") or []]


def link_pull_secret(
    kube: Kubectl,
    namespace: str,
    secret_name: str = PULL_SECRET_NAME,
    service_account: str = DEFAULT_SERVICE_ACCOUNT,
) -> LinkResult:
    """Ensure *service_account* references *secret_name* exactly once.

    The JSON patch ``add /imagePullSecrets/-`` fails when the field does not
    exist yet, so a missing list is initialized in a separate patch first.

    Args:
        kube: kubectl wrapper.
        namespace: Namespace of the service account.
        secret_name: Pull secret to reference.
        service_account: Service account name.

    Returns:
        ALREADY_LINKED, LINKED, or FAILED.
    """
    sa = kube.get_json("serviceaccount", service_account, namespace)
    if sa is None:
        logger.warning("Service account %s/%s not found", namespace, service_account)
        return LinkResult.FAILED

    if secret_name in _linked_names(sa):
        console.print(f"[blue]\u2139\ufe0f  {secret_name} already linked to {service_account} in namespace: {namespace}[/blue]")
        return LinkResult.ALREADY_LINKED

    console.print(f"[blue]\u2139\ufe0f  Patching {service_account} service account in namespace: {namespace}[/blue]")
    if sa.get("imagePullSecrets") is None:
        ok, _, stderr = kube.patch_json(
            "serviceaccount", service_account, namespace,
            [{"op": "add", "path": "/imagePullSecrets", "value": []}],
        )
        if not ok:
            logger.warning("Could not initialize imagePullSecrets in %s: %s", namespace, stderr.strip()[:200])

    ok, _, stderr = kube.patch_json(
        "serviceaccount", service_account, namespace,
        [{"op": "add", "path": "/imagePullSecrets/-", "value": {"name": secret_name}}],
    )
    if not ok:
        console.print(f"[red]\u274c Failed to link {secret_name} in namespace {namespace}: {stderr.strip()[:200]}[/red]")
        return LinkResult.FAILED
    console.print(f"[green]\u2705 {service_account} service account patched in namespace: {namespace}[/green]")
    return LinkResult.LINKED


def propagate_pull_secret(
    kube: Kubectl,
    credentials: CredentialBundle | None,
    namespaces: Sequence[str],
    secret_name: str = PULL_SECRET_NAME,
) -> PropagationReport:
    """Broadcast a registry pull secret and its service-account link.

    Args:
        kube: kubectl wrapper.
        credentials: Registry credentials; None skips the whole step.
        namespaces: Workload namespaces (``default`` is always handled first).
        secret_name: Name of the pull secret.

    Returns:
        Per-namespace report; ``report.configured`` is the configured count.
    """
    report = PropagationReport()
    if credentials is None:
        console.print("[yellow]\u26a0\ufe0f  GHCR credentials not found (GHCR_USERNAME or GHCR_TOKEN missing), "
                      "skipping pull secret creation[/yellow]")
        console.print("[blue]\u2139\ufe0f  To enable GHCR authentication, set GHCR_USERNAME and GHCR_TOKEN in .env[/blue]")
        return report

    console.print(Panel.fit(f"Configuring {secret_name}", style="bold blue"))
    for ns in target_namespaces(namespaces):
        ok, _, stderr = kube.apply(pull_secret_manifest(secret_name, ns, credentials))
        if not ok:
            console.print(f"[red]\u274c Failed to apply {secret_name} in namespace {ns}: {stderr.strip()[:200]}[/red]")
            report.failed.append(ns)
            continue
        report.secrets_applied.append(ns)

        outcome = wait_for(
            lambda ns=ns: kube.exists("serviceaccount", DEFAULT_SERVICE_ACCOUNT, ns),
            SERVICE_ACCOUNT_POLICY,
            f"service account {ns}/{DEFAULT_SERVICE_ACCOUNT}",
        )
        if outcome is not WaitOutcome.READY:
            report.failed.append(ns)
            continue

        result = link_pull_secret(kube, ns, secret_name)
        if result is LinkResult.LINKED:
            report.links_added.append(ns)
        elif result is LinkResult.ALREADY_LINKED:
            report.already_linked.append(ns)
        else:
            report.failed.append(ns)

    if report.failed:
        console.print(f"[yellow]\u26a0\ufe0f  {secret_name} not configured in: {', '.join(report.failed)} "
                      "(re-run to complete)[/yellow]")
    else:
        console.print(f"[green]\u2705 {secret_name} configured across {report.configured} namespaces[/green]")
    return report
