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

"""Orchestration functions that compose domain modules into workflows."""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum

from rich.panel import Panel

from grounds_dev import console, logger
from grounds_dev.cluster import K3dRuntime, delete_cluster
from grounds_dev.config import (
    ClusterConfig,
    CredentialBundle,
    KeycloakConfig,
    UpOptions,
    display_config,
    load_credentials,
)
from grounds_dev.constants import (
    BOOTSTRAP_TOOLS,
    CONTEXT_SWITCHER,
    LOG_TAIL_LINES,
    LOG_TARGETS,
    STATUS_QUERIES,
    UP_TOOLS,
    user_name,
)
from grounds_dev.convergence import ConvergentAction, FailurePolicy, StepFailed, await_probe, converge
from grounds_dev.keycloak import deploy_keycloak
from grounds_dev.kube import Kubectl
from grounds_dev.kubeconfig import merge_kubeconfig, remove_entries
from grounds_dev.manifests import namespace_manifest
from grounds_dev.olm import install_olm
from grounds_dev.propagation import propagate_pull_secret
from grounds_dev.utils import command_available, docker_daemon_running, require_command
from grounds_dev.waiter import RetryPolicy, WaitOutcome, wait_for
from grounds_dev.workloads import (
    add_helm_repos,
    deploy_dummy_server,
    ensure_forwarding_secret,
    sync_releases,
    wait_for_agones_crds,
)


class ClusterState(str, Enum):
    ABSENT = "absent"
    CREATING = "creating"
    HEALTH_CHECKING = "health-checking"
    UNHEALTHY = "unhealthy"
    RECREATING = "recreating"
    READY = "ready"


# ============================================================================
# Cluster lifecycle
# ============================================================================

class ClusterLifecycleController:
    """Drives the k3d cluster from unknown state to Ready.

    A missing cluster is created once and its readiness is left to the final
    readiness check of the bootstrap. A present cluster is health-probed; if
    the probe is exhausted the cluster is deleted and created again, at most
    once per run. If the probe is exhausted after that recreation, the
    controller gives up with StepFailed.

    Args:
        cfg: k3d cluster configuration.
        runtime: Cluster runtime (k3d).
        kube: kubectl wrapper bound to the cluster's context.
    """

    def __init__(
        self,
        cfg: ClusterConfig,
        runtime: K3dRuntime | None = None,
        kube: Kubectl | None = None,
    ) -> None:
        self.cfg = cfg
        self.runtime = runtime or K3dRuntime()
        self.kube = kube or Kubectl(context=cfg.context)
        self.health_policy = RetryPolicy(cfg.health_attempts, cfg.health_interval)
        self.state: ClusterState | None = None
        self.transitions: list[ClusterState] = []

    def _transition(self, state: ClusterState) -> None:
        logger.debug("Cluster '%s': %s -> %s", self.cfg.cluster_name,
                     self.state.value if self.state else "start", state.value)
        self.state = state
        self.transitions.append(state)

    def healthy(self) -> bool:
        """Probe: the API server answers and the node list can be retrieved."""
        return self.kube.api_reachable() and self.kube.nodes_listable()

    def _create(self) -> None:
        self._transition(ClusterState.CREATING)
        console.print(f"[magenta]\U0001f680 Creating k3d cluster '{self.cfg.cluster_name}'...[/magenta]")
        converge(ConvergentAction(
            name=f"create k3d cluster '{self.cfg.cluster_name}'",
            apply=lambda: self.runtime.create(self.cfg) or True,
        ))
        console.print(f"[green]\u2705 Cluster '{self.cfg.cluster_name}' created successfully[/green]")

    def ensure_cluster(self) -> ClusterState:
        """Create a missing cluster, or keep or recreate an existing one.

        Returns:
            ClusterState.READY.

        Raises:
            StepFailed: If creation fails or the recreated cluster stays unhealthy.
        """
        name = self.cfg.cluster_name
        console.print(Panel.fit(f"Ensuring k3d cluster '{name}'", style="bold blue"))
        if not self.runtime.exists(name):
            self._transition(ClusterState.ABSENT)
            self._create()
            self._transition(ClusterState.READY)
            return ClusterState.READY

        console.print(f"[yellow]\u26a0\ufe0f  Cluster '{name}' already exists, checking health...[/yellow]")
        if self._probe_health():
            console.print(f"[green]\u2705 Cluster '{name}' is healthy, skipping creation[/green]")
        else:
            self._transition(ClusterState.UNHEALTHY)
            console.print(f"[yellow]\u26a0\ufe0f  Cluster '{name}' exists but is unhealthy after "
                          f"{self.health_policy.max_attempts} attempts, recreating...[/yellow]")
            self._transition(ClusterState.RECREATING)
            self.runtime.delete(name)
            self._create()
            if not self._probe_health():
                raise StepFailed(
                    f"Cluster '{name}' is unhealthy after {self.health_policy.max_attempts} attempts "
                    "following recreation"
                )

        self._transition(ClusterState.READY)
        return ClusterState.READY

    def _probe_health(self) -> bool:
        self._transition(ClusterState.HEALTH_CHECKING)
        outcome = wait_for(self.healthy, self.health_policy, f"cluster '{self.cfg.cluster_name}' health")
        return outcome is WaitOutcome.READY

    def bind_context(self) -> bool:
        """Point kubectl at the cluster's context.

        Returns:
            True if the context was switched, False if it was already current.
        """
        context = self.cfg.context
        if self.kube.current_context() == context:
            console.print(f"[blue]\u2139\ufe0f  kubectl context already set to {context}[/blue]")
            return False
        converge(ConvergentAction(
            name=f"set kubectl context to {context}",
            apply=lambda: self.kube.use_context(context),
        ))
        console.print(f"[green]\u2705 kubectl context set to {context}[/green]")
        return True

    def export_credentials(self) -> None:
        """Write the cluster's kubeconfig to the project directory."""
        path = self.cfg.exported_kubeconfig
        converge(ConvergentAction(
            name=f"export kubeconfig to {path}",
            apply=lambda: self.runtime.export_kubeconfig(self.cfg.cluster_name, path) or True,
        ))
        console.print(f"[green]\u2705 Kubeconfig exported to {path}[/green]")

    def merge_credentials(self) -> bool:
        """Merge the exported kubeconfig into the global one when kubectx is installed.

        Returns:
            True if the global kubeconfig was updated.
        """
        if not command_available(CONTEXT_SWITCHER):
            console.print(f"[blue]\u2139\ufe0f  {CONTEXT_SWITCHER} not found, skipping kubeconfig installation to "
                          f"{self.cfg.global_kubeconfig.parent}[/blue]")
            return False

        global_path = self.cfg.global_kubeconfig
        console.print(f"[blue]\u2139\ufe0f  {CONTEXT_SWITCHER} detected, installing kubeconfig to {global_path}...[/blue]")
        try:
            merged = merge_kubeconfig(self.cfg.exported_kubeconfig, global_path)
        except (OSError, ValueError) as err:
            console.print(f"[yellow]\u26a0\ufe0f  Could not merge kubeconfig into {global_path}: {err}[/yellow]")
            return False
        if merged:
            console.print(f"[green]\u2705 {self.cfg.context} context merged into {global_path}[/green]")
        else:
            console.print(f"[green]\u2705 kubeconfig installed to {global_path}[/green]")
        console.print(f"[blue]\u2139\ufe0f  You can now use: {CONTEXT_SWITCHER} {self.cfg.context}[/blue]")
        return True

    def ensure_namespaces(self, namespaces: Sequence[str] | None = None) -> None:
        """Apply a Namespace document for every workload namespace."""
        namespaces = namespaces if namespaces is not None else self.cfg.namespaces
        console.print("[blue]\u2139\ufe0f  Creating namespaces...[/blue]")
        for ns in namespaces:
            converge(ConvergentAction(
                name=f"create namespace {ns}",
                apply=lambda ns=ns: self.kube.apply(namespace_manifest(ns)),
            ))
        console.print(f"[green]\u2705 Namespaces ready: {', '.join(namespaces)}[/green]")

    def bootstrap(self) -> ClusterState:
        """Run the whole lifecycle: cluster, context, credentials, namespaces.

        Raises:
            StepFailed: If any fatal step fails.
        """
        self.ensure_cluster()
        self.bind_context()
        self.export_credentials()
        self.merge_credentials()
        self.ensure_namespaces()
        return ClusterState.READY


# ============================================================================
# Internal helpers
# ============================================================================

def check_prerequisites(tools: Sequence[str] = UP_TOOLS) -> None:
    """Check CLI tools and the Docker daemon.

    Raises:
        RuntimeError: If a tool is missing or Docker is not running.
    """
    console.print(Panel.fit("Checking prerequisites", style="bold blue"))
    for cmd in tools:
        require_command(cmd)
    if "docker" in tools and not docker_daemon_running():
        raise RuntimeError("Docker daemon is not running. Please start Docker and try again.")
    console.print("[green]\u2705 All required tools are available[/green]")


def report_prerequisites(tools: Sequence[str] = UP_TOOLS) -> list[str]:
    """Return the missing prerequisites without raising."""
    missing = [cmd for cmd in tools if not command_available(cmd)]
    if "docker" in tools and "docker" not in missing and not docker_daemon_running():
        missing.append("docker (daemon not running)")
    if missing:
        console.print(f"[yellow]\u26a0\ufe0f  Missing prerequisites: {' '.join(missing)}[/yellow]")
    else:
        console.print("[green]\u2705 All prerequisites found[/green]")
    return missing


def _ensure_keycloak_namespace(kube: Kubectl, keycloak_cfg: KeycloakConfig) -> None:
    """Apply the Keycloak namespace, which may differ from the workload namespaces."""
    converge(ConvergentAction(
        name=f"create namespace {keycloak_cfg.namespace}",
        apply=lambda: kube.apply(namespace_manifest(keycloak_cfg.namespace)),
    ))


def _verify_cluster_ready(kube: Kubectl, cfg: ClusterConfig) -> None:
    """Final readiness probe; fatal on exhaustion."""
    console.print("[blue]\u2139\ufe0f  Verifying cluster readiness...[/blue]")
    await_probe(
        "cluster readiness", kube.nodes_listable,
        RetryPolicy(cfg.readiness_attempts, cfg.readiness_interval),
        on_timeout=FailurePolicy.FATAL,
    )
    ok, stdout, _ = kube.run(["get", "nodes"])
    if ok:
        console.print(stdout.rstrip())
    console.print("[green]\u2705 Cluster is ready![/green]")


# ============================================================================
# Workflows
# ============================================================================

def run_bootstrap(
    cluster_cfg: ClusterConfig,
    credentials: CredentialBundle | None,
    runtime: K3dRuntime | None = None,
    kube: Kubectl | None = None,
) -> Kubectl:
    """Bring the cluster and its shared infrastructure to Ready.

    Args:
        cluster_cfg: k3d cluster configuration.
        credentials: Registry credentials, or None to skip pull secrets.
        runtime: Cluster runtime override.
        kube: kubectl wrapper override.

    Returns:
        The kubectl wrapper bound to the cluster.

    Raises:
        StepFailed: If any fatal step fails.
    """
    controller = ClusterLifecycleController(cluster_cfg, runtime=runtime, kube=kube)
    controller.bootstrap()
    kube = controller.kube

    install_olm(kube)
    propagate_pull_secret(kube, credentials, cluster_cfg.namespaces)
    ensure_forwarding_secret(kube)
    add_helm_repos()
    _verify_cluster_ready(kube, cluster_cfg)
    return kube


def run_up(
    cluster_cfg: ClusterConfig,
    keycloak_cfg: KeycloakConfig,
    options: UpOptions | None = None,
    credentials: CredentialBundle | None = None,
    runtime: K3dRuntime | None = None,
    kube: Kubectl | None = None,
    check_tools: bool = True,
) -> None:
    """Start the complete development environment.

    Args:
        cluster_cfg: k3d cluster configuration.
        keycloak_cfg: Keycloak operator and instance settings.
        options: Steps to skip, or None for everything.
        credentials: Registry credentials; loaded from .env when None.
        runtime: Cluster runtime override.
        kube: kubectl wrapper override.
        check_tools: Whether to check prerequisites first.

    Raises:
        StepFailed: If any fatal step fails.
        RuntimeError: If a prerequisite is missing.
    """
    options = options or UpOptions()
    if credentials is None:
        credentials = load_credentials(cluster_cfg.project_dir)

    console.print("[magenta]\U0001f680 Starting Grounds Development Infrastructure environment...[/magenta]")
    display_config(cluster_cfg, credentials)
    if check_tools:
        check_prerequisites(UP_TOOLS if not options.skip_charts else (*BOOTSTRAP_TOOLS, "docker"))

    kube = run_bootstrap(cluster_cfg, credentials, runtime=runtime, kube=kube)

    if not options.skip_charts:
        sync_releases(cluster_cfg.helmfile)
    if not options.skip_dummy_server:
        deploy_dummy_server(kube)
    if not options.skip_charts:
        wait_for_agones_crds(kube)
    if not options.skip_keycloak:
        _ensure_keycloak_namespace(kube, keycloak_cfg)
        deploy_keycloak(kube, keycloak_cfg)

    console.print("[green]\u2705 Grounds Development Infrastructure environment is ready![/green]")
    console.print("[cyan]\U0001f4ca Run 'grounds-dev status' to check deployment status[/cyan]")


def run_down(cluster_cfg: ClusterConfig, runtime: K3dRuntime | None = None) -> None:
    """Stop and delete the development environment."""
    console.print("[yellow]\u26a0\ufe0f  Stopping Grounds Development Infrastructure environment...[/yellow]")
    delete_cluster(runtime or K3dRuntime(), cluster_cfg)
    console.print("[green]\u2705 Grounds Development Infrastructure environment stopped[/green]")


def run_reset(
    cluster_cfg: ClusterConfig,
    keycloak_cfg: KeycloakConfig,
    options: UpOptions | None = None,
    runtime: K3dRuntime | None = None,
    kube: Kubectl | None = None,
    check_tools: bool = True,
) -> None:
    """Tear down, then bring up a fresh environment."""
    runtime = runtime or K3dRuntime()
    run_down(cluster_cfg, runtime=runtime)
    run_up(cluster_cfg, keycloak_cfg, options=options, runtime=runtime, kube=kube, check_tools=check_tools)
    console.print("[green]\u2705 Environment reset completed[/green]")


def run_clean(cluster_cfg: ClusterConfig, runtime: K3dRuntime | None = None) -> None:
    """Delete the cluster and remove every credential artifact it left behind."""
    console.print("[yellow]\u26a0\ufe0f  Cleaning up all resources...[/yellow]")
    delete_cluster(runtime or K3dRuntime(), cluster_cfg)
    cluster_cfg.exported_kubeconfig.unlink(missing_ok=True)
    context = cluster_cfg.context
    if remove_entries(cluster_cfg.global_kubeconfig, context, context, user_name(cluster_cfg.cluster_name)):
        console.print(f"[green]\u2705 {context} context removed from {cluster_cfg.global_kubeconfig}[/green]")
    console.print("[green]\u2705 Cleanup completed[/green]")


def run_export_kubeconfig(cluster_cfg: ClusterConfig, runtime: K3dRuntime | None = None) -> None:
    """Export the cluster's kubeconfig to the project directory."""
    ClusterLifecycleController(cluster_cfg, runtime=runtime).export_credentials()
    console.print(f"[cyan]Use it with: export KUBECONFIG={cluster_cfg.exported_kubeconfig}[/cyan]")


def run_status(cluster_cfg: ClusterConfig, kube: Kubectl | None = None) -> bool:
    """Show nodes, pods, services and ingresses.

    Returns:
        False if the node list could not be retrieved.
    """
    kube = kube or Kubectl(context=cluster_cfg.context)
    console.print("[magenta]\U0001f4ca Cluster Status[/magenta]")
    reachable = True
    for title, args in STATUS_QUERIES:
        console.print(f"\n[cyan]{title}:[/cyan]")
        ok, stdout, stderr = kube.run(list(args))
        if ok:
            console.print(stdout.rstrip(), markup=False, highlight=False)
            continue
        console.print(f"[red]\u274c {stderr.strip()[:200]}[/red]")
        if args == ("get", "nodes"):
            reachable = False
    return reachable


def run_logs(cluster_cfg: ClusterConfig, tail: int = LOG_TAIL_LINES, kube: Kubectl | None = None) -> None:
    """Show the most recent log lines of every service."""
    kube = kube or Kubectl(context=cluster_cfg.context)
    console.print("[magenta]\U0001f4cb Service Logs[/magenta]")
    for title, namespace, selector in LOG_TARGETS:
        console.print(f"\n[cyan]{title} logs:[/cyan]")
        ok, stdout, stderr = kube.logs(selector, namespace, tail)
        if ok:
            console.print(stdout.rstrip(), markup=False, highlight=False)
        else:
            console.print(f"[yellow]\u26a0\ufe0f  No logs for {title}: {stderr.strip()[:200]}[/yellow]")


def run_deploy_keycloak(cluster_cfg: ClusterConfig, keycloak_cfg: KeycloakConfig, kube: Kubectl | None = None) -> None:
    """Deploy Keycloak on an existing cluster."""
    kube = kube or Kubectl(context=cluster_cfg.context)
    _ensure_keycloak_namespace(kube, keycloak_cfg)
    deploy_keycloak(kube, keycloak_cfg)
