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

"""Configuration classes and config models."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.panel import Panel

from grounds_dev import console
from grounds_dev.constants import (
    DEFAULT_AGENTS,
    DEFAULT_CLUSTER_NAME,
    DEFAULT_HTTP_PORT,
    DEFAULT_HTTPS_PORT,
    DEFAULT_K3S_IMAGE,
    DEFAULT_REGISTRY_HOST,
    DEFAULT_SERVERS,
    HEALTH_CHECK_INTERVAL_SECONDS,
    HEALTH_CHECK_MAX_ATTEMPTS,
    KEYCLOAK_CATALOG_NAME,
    NS_DATABASES,
    NS_KEYCLOAK,
    NS_OLM,
    READINESS_INTERVAL_SECONDS,
    READINESS_MAX_ATTEMPTS,
    REL_ENV_FILE,
    REL_EXPORTED_KUBECONFIG,
    REL_HELMFILE,
    REL_K3D_CONFIG,
    WORKLOAD_NAMESPACES,
    context_name,
    dep_value,
)


# ============================================================================
# Configuration classes
# ============================================================================

class ClusterConfig(BaseSettings):
    """k3d cluster configuration, auto-loaded from GROUNDS_* env vars.

    Attributes:
        cluster_name: Name of the k3d cluster.
        project_dir: Directory holding .env, helmfile.yaml and the exported kubeconfig.
        servers: Number of server nodes when no k3d config file is present.
        agents: Number of agent nodes when no k3d config file is present.
        k3s_image: K3s Docker image to use when no k3d config file is present.
        http_port: Host port mapped to the load balancer's port 80.
        https_port: Host port mapped to the load balancer's port 443.
        namespaces: Workload namespaces ensured after the cluster is ready.
        global_kubeconfig: User-wide kubeconfig merged into when kubectx is present.
        health_attempts: Health probe attempts for a pre-existing cluster.
        health_interval: Seconds between health probe attempts.
        readiness_attempts: Final readiness probe attempts.
        readiness_interval: Seconds between final readiness probe attempts.
    """

    model_config = SettingsConfigDict(env_prefix="GROUNDS_", extra="ignore")

    cluster_name: str = DEFAULT_CLUSTER_NAME
    project_dir: Path = Field(default_factory=Path.cwd)
    servers: int = Field(default=DEFAULT_SERVERS, ge=1, le=5)
    agents: int = Field(default=DEFAULT_AGENTS, ge=0, le=20)
    k3s_image: str = DEFAULT_K3S_IMAGE
    http_port: int = Field(default=DEFAULT_HTTP_PORT, ge=1, le=65535)
    https_port: int = Field(default=DEFAULT_HTTPS_PORT, ge=1, le=65535)
    namespaces: tuple[str, ...] = WORKLOAD_NAMESPACES
    global_kubeconfig: Path = Field(default_factory=lambda: Path.home() / ".kube" / "config")
    health_attempts: int = Field(default=HEALTH_CHECK_MAX_ATTEMPTS, ge=1)
    health_interval: float = Field(default=HEALTH_CHECK_INTERVAL_SECONDS, ge=0)
    readiness_attempts: int = Field(default=READINESS_MAX_ATTEMPTS, ge=1)
    readiness_interval: float = Field(default=READINESS_INTERVAL_SECONDS, ge=0)

    @property
    def context(self) -> str:
        return context_name(self.cluster_name)

    @property
    def exported_kubeconfig(self) -> Path:
        return self.project_dir / REL_EXPORTED_KUBECONFIG

    @property
    def k3d_config(self) -> Path:
        return self.project_dir / REL_K3D_CONFIG

    @property
    def helmfile(self) -> Path:
        return self.project_dir / REL_HELMFILE


class KeycloakConfig(BaseSettings):
    """Keycloak operator and instance settings, auto-loaded from GROUNDS_KEYCLOAK_* env vars.

    Attributes:
        namespace: Namespace for the operator group, subscription and instance.
        catalog_name: Name of the OLM CatalogSource.
        catalog_namespace: Namespace the CatalogSource lives in.
        catalog_image: Index image backing the CatalogSource.
        package: Operator package name in the catalog.
        channel: Subscription channel.
        db_host: PostgreSQL service host used by Keycloak.
        db_name: PostgreSQL database name.
        db_username: PostgreSQL user stored in the database secret.
        db_password: PostgreSQL password stored in the database secret.
        hostname: Public hostname served through the ingress.
        instances: Keycloak replica count.
    """

    model_config = SettingsConfigDict(env_prefix="GROUNDS_KEYCLOAK_", extra="ignore")

    namespace: str = NS_KEYCLOAK
    catalog_name: str = KEYCLOAK_CATALOG_NAME
    catalog_namespace: str = NS_OLM
    catalog_image: str = dep_value("keycloak_operator", "catalog_image", default="quay.io/operatorhubio/catalog:latest")
    package: str = dep_value("keycloak_operator", "package", default="keycloak-operator")
    channel: str = dep_value("keycloak_operator", "channel", default="fast")
    db_host: str = f"postgresql.{NS_DATABASES}.svc.cluster.local"
    db_name: str = "keycloak"
    db_username: str = "keycloak"
    db_password: str = "keycloak"
    hostname: str = "keycloak.localhost"
    instances: int = Field(default=1, ge=1)


class RegistryCredentials(BaseSettings):
    """GHCR credentials read from the project .env file or the environment.

    Attributes:
        ghcr_username: Registry user name (``GHCR_USERNAME``).
        ghcr_token: Registry token (``GHCR_TOKEN``).
        ghcr_registry: Registry host (``GHCR_REGISTRY``).
    """

    model_config = SettingsConfigDict(env_file=REL_ENV_FILE, env_file_encoding="utf-8", extra="ignore")

    ghcr_username: str | None = None
    ghcr_token: str | None = None
    ghcr_registry: str = DEFAULT_REGISTRY_HOST

    def to_bundle(self) -> CredentialBundle | None:
        """Return a CredentialBundle, or None when either value is missing."""
        if not self.ghcr_username or not self.ghcr_token:
            return None
        return CredentialBundle(
            registry_host=self.ghcr_registry,
            username=self.ghcr_username,
            token=self.ghcr_token,
        )


# ============================================================================
# Value objects
# ============================================================================

@dataclass(frozen=True)
class CredentialBundle:
    """Registry credentials propagated as an image-pull secret.

    Attributes:
        registry_host: Registry server (e.g. ``ghcr.io``).
        username: Registry user name.
        token: Registry password or token.
    """

    registry_host: str
    username: str
    token: str

    def __repr__(self) -> str:
        return f"CredentialBundle(registry_host={self.registry_host!r}, username={self.username!r}, token='***')"


def load_credentials(project_dir: Path) -> CredentialBundle | None:
    """Load registry credentials from ``<project_dir>/.env`` and the environment.

    Args:
        project_dir: Directory containing the optional .env file.

    Returns:
        The credential bundle, or None if GHCR_USERNAME or GHCR_TOKEN is missing.
    """
    return RegistryCredentials(_env_file=project_dir / REL_ENV_FILE).to_bundle()


@dataclass(frozen=True)
class UpOptions:
    """Steps of ``up`` that can be skipped from the CLI.

    Attributes:
        skip_charts: Skip ``helmfile sync`` and the Agones CRD wait.
        skip_dummy_server: Skip the dummy HTTP server manifests.
        skip_keycloak: Skip the Keycloak operator and instance.
    """

    skip_charts: bool = False
    skip_dummy_server: bool = False
    skip_keycloak: bool = False


# ============================================================================
# Display
# ============================================================================

def display_config(cluster_cfg: ClusterConfig, credentials: CredentialBundle | None) -> None:
    """Print the resolved configuration.

    Args:
        cluster_cfg: k3d cluster configuration.
        credentials: Registry credentials, or None when not configured.
    """
    console.print(Panel.fit("Configuration", style="bold blue"))
    console.print("[yellow]k3d cluster:[/yellow]")
    console.print(f"  cluster_name    : {cluster_cfg.cluster_name}")
    console.print(f"  context         : {cluster_cfg.context}")
    console.print(f"  project_dir     : {cluster_cfg.project_dir}")
    if cluster_cfg.k3d_config.exists():
        console.print(f"  k3d_config      : {cluster_cfg.k3d_config}")
    else:
        console.print(f"  servers/agents  : {cluster_cfg.servers}/{cluster_cfg.agents}")
        console.print(f"  k3s_image       : {cluster_cfg.k3s_image}")
    console.print(f"  namespaces      : {', '.join(cluster_cfg.namespaces)}")
    console.print("[yellow]Registry:[/yellow]")
    if credentials is None:
        console.print("  pull secret     : (disabled, GHCR_USERNAME/GHCR_TOKEN not set)")
    else:
        console.print(f"  pull secret     : {credentials.username}@{credentials.registry_host}")
