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

"""Keycloak operator subscription and instance deployment."""

from __future__ import annotations

from rich.panel import Panel

from grounds_dev import console
from grounds_dev.config import KeycloakConfig
from grounds_dev.constants import (
    CRD_CATALOG_SOURCES,
    CRD_MAX_ATTEMPTS,
    CRD_OPERATOR_GROUPS,
    CRD_POLL_INTERVAL_SECONDS,
    CRD_SUBSCRIPTIONS,
    CSV_MAX_ATTEMPTS,
    CSV_PHASE_FAILED,
    CSV_PHASE_SUCCEEDED,
    CSV_POLL_INTERVAL_SECONDS,
    KEYCLOAK_CSV_PREFIX,
    NS_OLM,
    OLM_OPERATOR_SELECTOR,
    OLM_POD_MAX_ATTEMPTS,
    OLM_POD_POLL_INTERVAL_SECONDS,
)
from grounds_dev.convergence import ConvergentAction, FailurePolicy, await_probe, converge
from grounds_dev.kube import Kubectl
from grounds_dev.manifests import (
    catalog_source_manifest,
    headers_middleware_manifest,
    keycloak_db_secret_manifest,
    keycloak_manifest,
    operator_group_manifest,
    subscription_manifest,
)
from grounds_dev.waiter import ProbeFailed, RetryPolicy

CRD_POLICY = RetryPolicy(CRD_MAX_ATTEMPTS, CRD_POLL_INTERVAL_SECONDS)
CSV_POLICY = RetryPolicy(CSV_MAX_ATTEMPTS, CSV_POLL_INTERVAL_SECONDS)
OLM_POD_POLICY = RetryPolicy(OLM_POD_MAX_ATTEMPTS, OLM_POD_POLL_INTERVAL_SECONDS)


def crd_registered(kube: Kubectl, crd: str) -> bool:
    return kube.exists("crd", crd)


def operator_succeeded(kube: Kubectl, namespace: str, prefix: str = KEYCLOAK_CSV_PREFIX) -> bool:
    """Probe: a ClusterServiceVersion named *prefix*... reached phase Succeeded.

    Args:
        kube: kubectl wrapper.
        namespace: Namespace holding the operator's CSV.
        prefix: CSV name prefix identifying the operator.

    Returns:
        True once the CSV succeeded, False while it is absent or installing.

    Raises:
        ProbeFailed: If the CSV reports phase Failed.
    """
    csvs = kube.get_json("csv", namespace=namespace)
    if not csvs:
        return False
    for item in csvs.get("items", []):
        name = item.get("metadata", {}).get("name", "")
        if not name.startswith(prefix):
            continue
        phase = item.get("status", {}).get("phase")
        if phase == CSV_PHASE_SUCCEEDED:
            return True
        if phase == CSV_PHASE_FAILED:
            reason = item.get("status", {}).get("message", "no message")
            raise ProbeFailed(f"ClusterServiceVersion {name} failed: {reason}")
    return False


def _wait_for_crds(kube: Kubectl) -> None:
    """Wait for the OLM CRDs; only the OperatorGroup CRD is required."""
    console.print("[blue]\u2139\ufe0f  Waiting for OLM CRDs to be available...[/blue]")
    await_probe(
        f"CRD {CRD_OPERATOR_GROUPS}", lambda: crd_registered(kube, CRD_OPERATOR_GROUPS), CRD_POLICY,
        on_timeout=FailurePolicy.FATAL,
    )
    console.print(f"[green]\u2705 CRD {CRD_OPERATOR_GROUPS} is ready[/green]")
    for crd, label in ((CRD_SUBSCRIPTIONS, "Subscription"), (CRD_CATALOG_SOURCES, "CatalogSource")):
        await_probe(
            f"CRD {crd}", lambda crd=crd: crd_registered(kube, crd), CRD_POLICY,
            on_timeout=FailurePolicy.BEST_EFFORT,
            hint=f"{label} CRD check failed, continuing...",
        )


def deploy_keycloak(kube: Kubectl, cfg: KeycloakConfig) -> None:
    """Deploy the Keycloak operator through OLM and create the Keycloak instance.

    Each step depends on the previous step's side effect, so the order is fixed.

    Args:
        kube: kubectl wrapper.
        cfg: Keycloak operator and instance settings.

    Raises:
        StepFailed: If a required CRD, the OperatorGroup, the Subscription,
            the operator install, the DB secret or the Keycloak instance fails.
    """
    console.print(Panel.fit("Deploying Keycloak operator and instance", style="bold blue"))

    console.print("[blue]\u2139\ufe0f  Checking if OLM is ready...[/blue]")
    await_probe(
        "OLM operator pods", lambda: kube.pods_ready(OLM_OPERATOR_SELECTOR, NS_OLM), OLM_POD_POLICY,
        on_timeout=FailurePolicy.BEST_EFFORT,
        hint="OLM may still be starting, continuing anyway...",
    )

    _wait_for_crds(kube)

    converge(ConvergentAction(
        name="create OperatorHub catalog source",
        apply=lambda: kube.apply(catalog_source_manifest(cfg)),
        policy=FailurePolicy.BEST_EFFORT,
        hint="Catalog source may already exist or OLM not fully ready",
    ))
    converge(ConvergentAction(
        name="create Keycloak operator group",
        apply=lambda: kube.apply(operator_group_manifest(cfg)),
    ))
    converge(ConvergentAction(
        name="create Keycloak operator subscription",
        apply=lambda: kube.apply(subscription_manifest(cfg)),
    ))
    console.print("[green]\u2705 Keycloak operator subscription created[/green]")

    console.print("[blue]\u2139\ufe0f  Waiting for Keycloak operator to be ready...[/blue]")
    await_probe(
        "Keycloak operator", lambda: operator_succeeded(kube, cfg.namespace), CSV_POLICY,
        on_timeout=FailurePolicy.FATAL,
    )
    console.print("[green]\u2705 Keycloak operator is ready![/green]")

    converge(ConvergentAction(
        name="create Keycloak database secret",
        apply=lambda: kube.apply(keycloak_db_secret_manifest(cfg)),
    ))
    converge(ConvergentAction(
        name="create Traefik middleware for X-Forwarded-* headers",
        apply=lambda: kube.apply(headers_middleware_manifest(cfg)),
        policy=FailurePolicy.BEST_EFFORT,
        hint="Traefik middleware may already exist or CRD not ready",
    ))
    converge(ConvergentAction(
        name="deploy Keycloak instance",
        apply=lambda: kube.apply(keycloak_manifest(cfg)),
    ))
    console.print("[green]\u2705 Keycloak instance deployment initiated[/green]")
    console.print(f"[blue]\u2139\ufe0f  Check status with: kubectl get keycloak -n {cfg.namespace}[/blue]")
