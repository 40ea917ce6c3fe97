"""Tests for Helm glue, the dummy server and the forwarding secret."""

from __future__ import annotations

import pytest
import sh

from grounds_dev import workloads
from grounds_dev.convergence import StepFailed
from grounds_dev.workloads import (
    add_helm_repos,
    deploy_dummy_server,
    ensure_forwarding_secret,
    sync_releases,
    wait_for_agones_crds,
)


@pytest.fixture
def helm_calls(monkeypatch):
    calls = []
    monkeypatch.setattr(workloads, "_helm", lambda *args: calls.append(args) or True)
    return calls


def test_add_helm_repos_adds_then_updates(helm_calls):
    add_helm_repos({"bitnami": "https://charts.bitnami.com/bitnami", "agones": "https://agones.dev/chart/stable"})

    assert helm_calls == [
        ("repo", "add", "bitnami", "https://charts.bitnami.com/bitnami", "--force-update"),
        ("repo", "add", "agones", "https://agones.dev/chart/stable", "--force-update"),
        ("repo", "update",),
    ]


def test_helm_failure_is_fatal(monkeypatch):
    def broken(*args):
        raise sh.ErrorReturnCode_1("helm repo update", b"", b"network unreachable")

    monkeypatch.setattr(workloads, "_helm", broken)
    with pytest.raises(StepFailed, match="network unreachable"):
        add_helm_repos({"bitnami": "https://charts.bitnami.com/bitnami"})


def test_sync_releases_skips_missing_helmfile(tmp_path, monkeypatch):
    monkeypatch.setattr(workloads, "_helmfile_sync", lambda path: pytest.fail("helmfile must not run"))
    assert sync_releases(tmp_path / "helmfile.yaml") is False


def test_sync_releases_runs_helmfile(tmp_path, monkeypatch):
    helmfile = tmp_path / "helmfile.yaml"
    helmfile.write_text("releases: []\n")
    synced = []
    monkeypatch.setattr(workloads, "_helmfile_sync", lambda path: synced.append(path) or True)

    assert sync_releases(helmfile) is True
    assert synced == [helmfile]


def test_agones_crds_wait_is_fatal(kube, fake_cluster):
    fake_cluster.crds.add("fleets.agones.dev")

    with pytest.raises(StepFailed, match="gameservers.agones.dev"):
        wait_for_agones_crds(kube, ["fleets.agones.dev", "gameservers.agones.dev"])


def test_agones_crds_present(kube, fake_cluster, no_sleep):
    fake_cluster.crds |= {"fleets.agones.dev", "gameservers.agones.dev"}
    wait_for_agones_crds(kube)
    assert no_sleep == []


def test_dummy_server_is_applied(kube, fake_cluster):
    deploy_dummy_server(kube)

    for kind in ("deployment", "service", "ingress"):
        assert fake_cluster.get(kind, "dummy-http-server", "infra") is not None


def test_forwarding_secret_is_created_once(kube, fake_cluster):
    assert ensure_forwarding_secret(kube) is True
    first = fake_cluster.get("secret", "velocity-forwarding-secret", "games")

    assert ensure_forwarding_secret(kube) is False
    assert fake_cluster.get("secret", "velocity-forwarding-secret", "games") == first
    assert len(first["stringData"]["secret"]) == 44
