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

"""Constants, dependency loading, and dep_value helper."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

PACKAGE_DIR = Path(__file__).resolve().parent


def load_dependencies() -> dict:
    """Load dependency versions and sources from dependencies.yaml.

    Returns:
        Parsed YAML content as a nested dictionary.
    """
    deps_file = PACKAGE_DIR / "dependencies.yaml"
    with open(deps_file) as f:
        return yaml.safe_load(f)


DEPENDENCIES = load_dependencies()


def dep_value(*keys: str, default: Any = None) -> Any:
    """Safely traverse the DEPENDENCIES dict by key path.

    Args:
        *keys: Sequence of dictionary keys to traverse.
        default: Value to return if any key is missing.

    Returns:
        The value at the nested key path, or *default* if not found.
    """
    node = DEPENDENCIES
    for key in keys:
        if not isinstance(node, dict):
            return default
        node = node.get(key)
        if node is None:
            return default
    return node


# -- Cluster health --
HEALTH_CHECK_MAX_ATTEMPTS = 3
HEALTH_CHECK_INTERVAL_SECONDS = 5
READINESS_MAX_ATTEMPTS = 5
READINESS_INTERVAL_SECONDS = 10
CLUSTER_TIMEOUT = "120s"

# -- OLM --
OLM_READY_MAX_ATTEMPTS = 30
OLM_READY_POLL_INTERVAL_SECONDS = 10
OLM_POD_MAX_ATTEMPTS = 6
OLM_POD_POLL_INTERVAL_SECONDS = 10
OLM_DEPLOYMENTS = ("olm-operator", "catalog-operator")
OLM_OPERATOR_SELECTOR = "app=olm-operator"

# -- CRD / CSV waits --
CRD_MAX_ATTEMPTS = 60
CRD_POLL_INTERVAL_SECONDS = 2
AGONES_CRD_MAX_ATTEMPTS = 30
AGONES_CRD_POLL_INTERVAL_SECONDS = 2
CSV_MAX_ATTEMPTS = 30
CSV_POLL_INTERVAL_SECONDS = 10
CSV_PHASE_SUCCEEDED = "Succeeded"
CSV_PHASE_FAILED = "Failed"

CRD_OPERATOR_GROUPS = "operatorgroups.operators.coreos.com"
CRD_SUBSCRIPTIONS = "subscriptions.operators.coreos.com"
CRD_CATALOG_SOURCES = "catalogsources.operators.coreos.com"

# -- Service account waits --
SERVICE_ACCOUNT_MAX_ATTEMPTS = 5
SERVICE_ACCOUNT_POLL_INTERVAL_SECONDS = 2

# -- Namespaces --
NS_DEFAULT = "default"
NS_OLM = "olm"
NS_INFRA = "infra"
NS_DATABASES = "databases"
NS_GAMES = "games"
NS_API = "api"
NS_KEYCLOAK = "keycloak"
WORKLOAD_NAMESPACES = (NS_INFRA, NS_DATABASES, NS_GAMES, NS_API, NS_KEYCLOAK)

# -- Secrets --
PULL_SECRET_NAME = "ghcr-pull-secret"
DEFAULT_REGISTRY_HOST = "ghcr.io"
DEFAULT_SERVICE_ACCOUNT = "default"
FORWARDING_SECRET_NAME = "velocity-forwarding-secret"
FORWARDING_SECRET_BYTES = 32
KEYCLOAK_DB_SECRET_NAME = "keycloak-db-secret"

# -- Keycloak --
KEYCLOAK_NAME = "keycloak"
KEYCLOAK_CATALOG_NAME = "operatorhubio-catalog"
KEYCLOAK_OPERATOR_GROUP = "keycloak-operatorgroup"
KEYCLOAK_SUBSCRIPTION = "keycloak-operator"
KEYCLOAK_HEADERS_MIDDLEWARE = "keycloak-headers"
KEYCLOAK_CSV_PREFIX = "keycloak"

# -- Dummy HTTP server --
DUMMY_SERVER_NAME = "dummy-http-server"
DUMMY_SERVER_PATH = "/demo"
DUMMY_SERVER_PORT = 5678

# -- Files --
REL_EXPORTED_KUBECONFIG = "kubeconfig"
REL_K3D_CONFIG = "cluster/k3d.yaml"
REL_ENV_FILE = ".env"
REL_HELMFILE = "helmfile.yaml"
KUBECONFIG_FILE_MODE = 0o600

# -- Cluster defaults --
DEFAULT_CLUSTER_NAME = "dev"
DEFAULT_SERVERS = 1
DEFAULT_AGENTS = 2
DEFAULT_HTTP_PORT = 80
DEFAULT_HTTPS_PORT = 443
DEFAULT_K3S_IMAGE = dep_value("images", "k3s", default="rancher/k3s:v1.31.5-k3s1")

# -- Tools --
CONTEXT_SWITCHER = "kubectx"
BOOTSTRAP_TOOLS = ("k3d", "kubectl", "helm")
UP_TOOLS = (*BOOTSTRAP_TOOLS, "helmfile", "docker")

# -- Logs --
LOG_TAIL_LINES = 20
LOG_TARGETS = (
    ("PostgreSQL", NS_DATABASES, "app.kubernetes.io/name=postgresql"),
    ("Agones", NS_GAMES, "app.kubernetes.io/name=agones"),
    ("Dummy HTTP Server", NS_INFRA, f"app={DUMMY_SERVER_NAME}"),
    ("Keycloak", NS_KEYCLOAK, "app=keycloak"),
)
STATUS_QUERIES = (
    ("Nodes", ("get", "nodes")),
    ("Pods by namespace", ("get", "pods", "-A")),
    ("Services", ("get", "services", "-A")),
    ("Ingress", ("get", "ingress", "-A")),
)


def context_name(cluster_name: str) -> str:
    """Return the kubectl context name k3d registers for a cluster."""
    return f"k3d-{cluster_name}"


def user_name(cluster_name: str) -> str:
    """Return the kubeconfig user name k3d registers for a cluster."""
    return f"admin@k3d-{cluster_name}"
