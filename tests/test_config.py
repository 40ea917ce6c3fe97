"""Tests for configuration loading."""

from __future__ import annotations

import pytest

from grounds_dev.config import ClusterConfig, CredentialBundle, KeycloakConfig, load_credentials


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("GHCR_USERNAME", "GHCR_TOKEN", "GHCR_REGISTRY", "GROUNDS_CLUSTER_NAME", "GROUNDS_KEYCLOAK_CHANNEL"):
        monkeypatch.delenv(name, raising=False)


def test_cluster_defaults(tmp_path):
    cfg = ClusterConfig(project_dir=tmp_path)

    assert cfg.cluster_name == "dev"
    assert cfg.context == "k3d-dev"
    assert cfg.exported_kubeconfig == tmp_path / "kubeconfig"
    assert cfg.namespaces == ("infra", "databases", "games", "api", "keycloak")


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("GROUNDS_CLUSTER_NAME", "sandbox")
    monkeypatch.setenv("GROUNDS_KEYCLOAK_CHANNEL", "stable")

    assert ClusterConfig().context == "k3d-sandbox"
    assert KeycloakConfig().channel == "stable"


def test_credentials_from_env_file(tmp_path):
    (tmp_path / ".env").write_text("GHCR_USERNAME=octocat\nGHCR_TOKEN=s3cret\n")

    assert load_credentials(tmp_path) == CredentialBundle("ghcr.io", "octocat", "s3cret")


def test_partial_credentials_disable_pull_secret(tmp_path):
    (tmp_path / ".env").write_text("GHCR_USERNAME=octocat\n")
    assert load_credentials(tmp_path) is None


def test_missing_env_file(tmp_path):
    assert load_credentials(tmp_path) is None


def test_credential_repr_masks_token():
    assert "s3cret" not in repr(CredentialBundle("ghcr.io", "octocat", "s3cret"))
