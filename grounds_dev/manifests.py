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

"""Desired-state documents applied during bootstrap."""

from __future__ import annotations

import base64
import json

from grounds_dev.config import CredentialBundle, KeycloakConfig
from grounds_dev.constants import (
    DUMMY_SERVER_NAME,
    DUMMY_SERVER_PATH,
    DUMMY_SERVER_PORT,
    KEYCLOAK_DB_SECRET_NAME,
    KEYCLOAK_HEADERS_MIDDLEWARE,
    KEYCLOAK_NAME,
    KEYCLOAK_OPERATOR_GROUP,
    KEYCLOAK_SUBSCRIPTION,
    NS_INFRA,
    dep_value,
)


def _b64(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


# ============================================================================
# Core resources
# ============================================================================

def namespace_manifest(name: str) -> dict:
    return {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": name}}


def docker_config_json(credentials: CredentialBundle) -> str:
    """Build the ``.dockerconfigjson`` payload for a registry credential.

    Args:
        credentials: Registry host, user name and token.

    Returns:
        JSON string in the format kubelet expects for image-pull secrets.
    """
    auth = _b64(f"{credentials.username}:{credentials.token}")
    return json.dumps({
        "auths": {
            credentials.registry_host: {
                "username": credentials.username,
                "password": credentials.token,
                "auth": auth,
            }
        }
    }, sort_keys=True)


def pull_secret_manifest(name: str, namespace: str, credentials: CredentialBundle) -> dict:
    """Build a ``kubernetes.io/dockerconfigjson`` Secret.

    Args:
        name: Secret name.
        namespace: Target namespace.
        credentials: Registry credentials encoded into the secret.

    Returns:
        Kubernetes Secret resource as a dictionary.
    """
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "type": "kubernetes.io/dockerconfigjson",
        "metadata": {"name": name, "namespace": namespace},
        "data": {".dockerconfigjson": _b64(docker_config_json(credentials))},
    }


def opaque_secret_manifest(name: str, namespace: str, values: dict[str, str]) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "type": "Opaque",
        "metadata": {"name": name, "namespace": namespace},
        "stringData": dict(values),
    }


# ============================================================================
# Dummy HTTP server
# ============================================================================

def dummy_server_manifests(namespace: str = NS_INFRA) -> list[dict]:
    """Build the Deployment, Service and Ingress of the dummy HTTP server.

    Args:
        namespace: Namespace to deploy into.

    Returns:
        List of Kubernetes resources served at ``/demo`` through Traefik.
    """
    labels = {"app": DUMMY_SERVER_NAME}
    image = dep_value("images", "http_echo", default="hashicorp/http-echo:1.0")
    deployment = {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": DUMMY_SERVER_NAME, "namespace": namespace, "labels": labels},
        "spec": {
            "replicas": 1,
            "selector": {"matchLabels": labels},
            "template": {
                "metadata": {"labels": labels},
                "spec": {
                    "containers": [{
                        "name": DUMMY_SERVER_NAME,
                        "image": image,
                        "args": [f"-listen=:{DUMMY_SERVER_PORT}", "-text=Hello from grounds-dev"],
                        "ports": [{"containerPort": DUMMY_SERVER_PORT}],
                    }],
                },
            },
        },
    }
    service = {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": DUMMY_SERVER_NAME, "namespace": namespace, "labels": labels},
        "spec": {
            "selector": labels,
            "ports": [{"port": 80, "targetPort": DUMMY_SERVER_PORT}],
        },
    }
    ingress = {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "Ingress",
        "metadata": {"name": DUMMY_SERVER_NAME, "namespace": namespace},
        "spec": {
            "ingressClassName": "traefik",
            "rules": [{
                "http": {
                    "paths": [{
                        "path": DUMMY_SERVER_PATH,
                        "pathType": "Prefix",
                        "backend": {"service": {"name": DUMMY_SERVER_NAME, "port": {"number": 80}}},
                    }],
                },
            }],
        },
    }
    return [deployment, service, ingress]


# ============================================================================
# Keycloak (OLM)
# ============================================================================

def catalog_source_manifest(cfg: KeycloakConfig) -> dict:
    return {
        "apiVersion": "operators.coreos.com/v1alpha1",
        "kind": "CatalogSource",
        "metadata": {"name": cfg.catalog_name, "namespace": cfg.catalog_namespace},
        "spec": {
            "sourceType": "grpc",
            "image": cfg.catalog_image,
            "displayName": "Community Operators",
            "publisher": "OperatorHub.io",
            "updateStrategy": {"registryPoll": {"interval": "60m"}},
        },
    }


def operator_group_manifest(cfg: KeycloakConfig) -> dict:
    return {
        "apiVersion": "operators.coreos.com/v1",
        "kind": "OperatorGroup",
        "metadata": {"name": KEYCLOAK_OPERATOR_GROUP, "namespace": cfg.namespace},
        "spec": {"targetNamespaces": [cfg.namespace]},
    }


def subscription_manifest(cfg: KeycloakConfig) -> dict:
    return {
        "apiVersion": "operators.coreos.com/v1alpha1",
        "kind": "Subscription",
        "metadata": {"name": KEYCLOAK_SUBSCRIPTION, "namespace": cfg.namespace},
        "spec": {
            "channel": cfg.channel,
            "name": cfg.package,
            "source": cfg.catalog_name,
            "sourceNamespace": cfg.catalog_namespace,
            "installPlanApproval": "Automatic",
        },
    }


def keycloak_db_secret_manifest(cfg: KeycloakConfig) -> dict:
    return opaque_secret_manifest(
        KEYCLOAK_DB_SECRET_NAME,
        cfg.namespace,
        {"username": cfg.db_username, "password": cfg.db_password},
    )


def headers_middleware_manifest(cfg: KeycloakConfig) -> dict:
    """Build the Traefik middleware that sets X-Forwarded-* headers for Keycloak."""
    return {
        "apiVersion": "traefik.io/v1alpha1",
        "kind": "Middleware",
        "metadata": {"name": KEYCLOAK_HEADERS_MIDDLEWARE, "namespace": cfg.namespace},
        "spec": {
            "headers": {
                "customRequestHeaders": {
                    "X-Forwarded-Proto": "http",
                    "X-Forwarded-Port": "80",
                },
            },
        },
    }


def keycloak_manifest(cfg: KeycloakConfig) -> dict:
    """Build the Keycloak custom resource.

    The ingress references the headers middleware by its Traefik CRD name,
    ``<namespace>-<name>@kubernetescrd``.
    """
    middleware_ref = f"{cfg.namespace}-{KEYCLOAK_HEADERS_MIDDLEWARE}@kubernetescrd"
    return {
        "apiVersion": "k8s.keycloak.org/v2alpha1",
        "kind": "Keycloak",
        "metadata": {"name": KEYCLOAK_NAME, "namespace": cfg.namespace},
        "spec": {
            "instances": cfg.instances,
            "db": {
                "vendor": "postgres",
                "host": cfg.db_host,
                "database": cfg.db_name,
                "usernameSecret": {"name": KEYCLOAK_DB_SECRET_NAME, "key": "username"},
                "passwordSecret": {"name": KEYCLOAK_DB_SECRET_NAME, "key": "password"},
            },
            "http": {"httpEnabled": True},
            "hostname": {"hostname": cfg.hostname, "strict": False},
            "proxy": {"headers": "xforwarded"},
            "ingress": {
                "enabled": True,
                "className": "traefik",
                "annotations": {"traefik.ingress.kubernetes.io/router.middlewares": middleware_ref},
            },
        },
    }
