"""Tests for the cluster lifecycle controller and the workflows."""

from __future__ import annotations

import pytest
import yaml

from conftest import FakeRuntime
from grounds_dev import orchestrator
from grounds_dev.config import KeycloakConfig, UpOptions
from grounds_dev.convergence import StepFailed
from grounds_dev.orchestrator import ClusterLifecycleController, ClusterState, run_status


@pytest.fixture
def no_kubectx(monkeypatch):
    monkeypatch.setattr(orchestrator, "command_available", lambda cmd: False)


def _controller(cluster_cfg, runtime, kube):
    return ClusterLifecycleController(cluster_cfg, runtime=runtime, kube=kube)


def test_absent_cluster_is_created_once(cluster_cfg, runtime, kube):
    controller = _controller(cluster_cfg, runtime, kube)

    assert controller.ensure_cluster() is ClusterState.READY
    assert runtime.calls == ["exists", "create"]
    assert controller.transitions == [ClusterState.ABSENT, ClusterState.CREATING, ClusterState.READY]


def test_healthy_cluster_is_kept(cluster_cfg, runtime, kube):
    runtime.present = True
    controller = _controller(cluster_cfg, runtime, kube)

    controller.ensure_cluster()

    assert runtime.calls == ["exists"]
    assert controller.transitions == [ClusterState.HEALTH_CHECKING, ClusterState.READY]


def test_unhealthy_cluster_is_recreated_exactly_once(cluster_cfg, fake_cluster, kube):
    fake_cluster.healthy = False
    runtime = FakeRuntime(fake_cluster, present=True)
    controller = _controller(cluster_cfg, runtime, kube)

    controller.ensure_cluster()

    assert runtime.calls == ["exists", "delete", "create"]
    assert controller.transitions == [
        ClusterState.HEALTH_CHECKING, ClusterState.UNHEALTHY, ClusterState.RECREATING,
        ClusterState.CREATING, ClusterState.HEALTH_CHECKING, ClusterState.READY,
    ]


def test_recreated_cluster_that_stays_unhealthy_is_fatal(cluster_cfg, fake_cluster, kube, no_sleep):
    fake_cluster.healthy = False
    runtime = FakeRuntime(fake_cluster, present=True, heal_on_create=False)
    controller = _controller(cluster_cfg, runtime, kube)

    with pytest.raises(StepFailed, match="unhealthy"):
        controller.ensure_cluster()

    assert runtime.calls.count("delete") == 1
    assert runtime.calls.count("create") == 1
    # two exhausted probes of three attempts each
    assert len(no_sleep) == 4


def test_fresh_cluster_is_not_health_checked(cluster_cfg, fake_cluster, kube):
    fake_cluster.healthy = False
    runtime = FakeRuntime(fake_cluster, heal_on_create=False)

    assert _controller(cluster_cfg, runtime, kube).ensure_cluster() is ClusterState.READY
    assert runtime.calls == ["exists", "create"]
    assert ["cluster-info"] not in fake_cluster.calls


def test_fresh_cluster_that_never_becomes_ready_fails_final_readiness(cluster_cfg, fake_cluster, kube,
                                                                      stub_external, no_kubectx):
    fake_cluster.healthy = False
    runtime = FakeRuntime(fake_cluster, heal_on_create=False)

    with pytest.raises(StepFailed, match="cluster readiness"):
        orchestrator.run_bootstrap(cluster_cfg, None, runtime=runtime, kube=kube)
    assert runtime.calls.count("create") == 1
    assert "delete" not in runtime.calls


def test_creation_failure_is_fatal(cluster_cfg, runtime, kube):
    runtime.fail_create = True

    with pytest.raises(StepFailed, match="port 80 already allocated"):
        _controller(cluster_cfg, runtime, kube).ensure_cluster()


def test_bind_context_is_a_no_op_when_current(cluster_cfg, runtime, kube, fake_cluster):
    fake_cluster.current_context = "k3d-dev"

    assert _controller(cluster_cfg, runtime, kube).bind_context() is False
    assert ["config", "use-context", "k3d-dev"] not in fake_cluster.calls


def test_bind_context_switches(cluster_cfg, runtime, kube, fake_cluster):
    fake_cluster.current_context = "prod"

    assert _controller(cluster_cfg, runtime, kube).bind_context() is True
    assert fake_cluster.current_context == "k3d-dev"


def test_merge_skipped_without_kubectx(cluster_cfg, runtime, kube, no_kubectx):
    controller = _controller(cluster_cfg, runtime, kube)
    controller.export_credentials()

    assert controller.merge_credentials() is False
    assert not cluster_cfg.global_kubeconfig.exists()


def test_merge_with_kubectx_installs_global_store(cluster_cfg, runtime, kube, monkeypatch):
    monkeypatch.setattr(orchestrator, "command_available", lambda cmd: True)
    controller = _controller(cluster_cfg, runtime, kube)
    controller.export_credentials()

    assert controller.merge_credentials() is True
    stored = yaml.safe_load(cluster_cfg.global_kubeconfig.read_text())
    assert stored["current-context"] == "k3d-dev"


def test_merge_failure_is_not_fatal(cluster_cfg, runtime, kube, monkeypatch):
    monkeypatch.setattr(orchestrator, "command_available", lambda cmd: True)
    cluster_cfg.global_kubeconfig.parent.mkdir(parents=True)
    cluster_cfg.global_kubeconfig.write_text("- not\n- a mapping\n")
    controller = _controller(cluster_cfg, runtime, kube)
    controller.export_credentials()

    assert controller.merge_credentials() is False


def test_merge_malformed_store_is_a_warning(cluster_cfg, runtime, kube, monkeypatch):
    monkeypatch.setattr(orchestrator, "command_available", lambda cmd: True)
    cluster_cfg.global_kubeconfig.parent.mkdir(parents=True)
    cluster_cfg.global_kubeconfig.write_text("clusters: [\n  - name: a\n bad")
    controller = _controller(cluster_cfg, runtime, kube)
    controller.export_credentials()

    assert controller.merge_credentials() is False
    assert cluster_cfg.global_kubeconfig.read_text() == "clusters: [\n  - name: a\n bad"


def test_ensure_namespaces_applies_each(cluster_cfg, runtime, kube, fake_cluster):
    _controller(cluster_cfg, runtime, kube).ensure_namespaces()

    for ns in cluster_cfg.namespaces:
        assert fake_cluster.get("namespace", ns) is not None


def test_namespace_failure_is_fatal(cluster_cfg, runtime, kube, fake_cluster):
    fake_cluster.fail_apply_kinds.add("Namespace")

    with pytest.raises(StepFailed, match="create namespace infra"):
        _controller(cluster_cfg, runtime, kube).ensure_namespaces()


def test_bootstrap_exports_kubeconfig(cluster_cfg, runtime, kube, no_kubectx):
    _controller(cluster_cfg, runtime, kube).bootstrap()

    exported = yaml.safe_load(cluster_cfg.exported_kubeconfig.read_text())
    assert exported["current-context"] == "k3d-dev"


# -- workflows --


@pytest.fixture
def stub_external(monkeypatch):
    """Replace the helm/helmfile/OLM installer collaborators with recorders."""
    calls = []
    monkeypatch.setattr(orchestrator, "install_olm", lambda kube: calls.append("olm") or True)
    monkeypatch.setattr(orchestrator, "add_helm_repos", lambda: calls.append("helm-repos"))
    monkeypatch.setattr(orchestrator, "sync_releases", lambda helmfile: calls.append("helmfile") or True)
    monkeypatch.setattr(orchestrator, "wait_for_agones_crds", lambda kube: calls.append("agones-crds"))
    monkeypatch.setattr(orchestrator, "deploy_keycloak", lambda kube, cfg: calls.append("keycloak"))
    return calls


def test_up_runs_steps_in_order(cluster_cfg, runtime, kube, fake_cluster, credentials, stub_external, no_kubectx):
    orchestrator.run_up(
        cluster_cfg, KeycloakConfig(), credentials=credentials, runtime=runtime, kube=kube, check_tools=False,
    )

    assert stub_external == ["olm", "helm-repos", "helmfile", "agones-crds", "keycloak"]
    assert fake_cluster.get("secret", "ghcr-pull-secret", "games") is not None
    assert fake_cluster.get("secret", "velocity-forwarding-secret", "games") is not None
    assert fake_cluster.get("deployment", "dummy-http-server", "infra") is not None


def test_up_twice_is_idempotent(cluster_cfg, runtime, kube, fake_cluster, credentials, stub_external, no_kubectx):
    kwargs = dict(credentials=credentials, runtime=runtime, kube=kube, check_tools=False)
    orchestrator.run_up(cluster_cfg, KeycloakConfig(), **kwargs)
    secret = fake_cluster.get("secret", "velocity-forwarding-secret", "games")
    fake_cluster.patches.clear()

    orchestrator.run_up(cluster_cfg, KeycloakConfig(), **kwargs)

    assert runtime.calls.count("create") == 1
    assert fake_cluster.patches == []
    assert fake_cluster.get("secret", "velocity-forwarding-secret", "games") == secret


def test_up_skip_options(cluster_cfg, runtime, kube, fake_cluster, credentials, stub_external, no_kubectx):
    options = UpOptions(skip_charts=True, skip_dummy_server=True, skip_keycloak=True)
    orchestrator.run_up(
        cluster_cfg, KeycloakConfig(), options=options, credentials=credentials,
        runtime=runtime, kube=kube, check_tools=False,
    )

    assert stub_external == ["olm", "helm-repos"]
    assert fake_cluster.get("deployment", "dummy-http-server", "infra") is None


def test_final_readiness_exhaustion_is_fatal(cluster_cfg, runtime, kube, fake_cluster, stub_external,
                                             no_kubectx, monkeypatch):
    def break_cluster():
        stub_external.append("helm-repos")
        fake_cluster.healthy = False

    monkeypatch.setattr(orchestrator, "add_helm_repos", break_cluster)

    with pytest.raises(StepFailed, match="cluster readiness"):
        orchestrator.run_bootstrap(cluster_cfg, None, runtime=runtime, kube=kube)
    assert "helmfile" not in stub_external


def test_up_creates_custom_keycloak_namespace(cluster_cfg, runtime, kube, fake_cluster, credentials,
                                             stub_external, no_kubectx):
    orchestrator.run_up(
        cluster_cfg, KeycloakConfig(namespace="auth"), credentials=credentials,
        runtime=runtime, kube=kube, check_tools=False,
    )

    assert "auth" not in cluster_cfg.namespaces
    assert fake_cluster.get("namespace", "auth") is not None
    assert stub_external[-1] == "keycloak"


def test_reset_tears_down_then_brings_up(cluster_cfg, runtime, kube, fake_cluster, stub_external,
                                         no_kubectx, monkeypatch):
    monkeypatch.delenv("GHCR_USERNAME", raising=False)
    monkeypatch.delenv("GHCR_TOKEN", raising=False)
    (cluster_cfg.project_dir / ".env").write_text("GHCR_USERNAME=octocat\nGHCR_TOKEN=s3cret\n")
    runtime.present = True

    orchestrator.run_reset(cluster_cfg, KeycloakConfig(), runtime=runtime, kube=kube, check_tools=False)

    assert runtime.calls[:3] == ["delete", "exists", "create"]
    assert runtime.calls.count("delete") == 1
    assert runtime.present
    assert stub_external == ["olm", "helm-repos", "helmfile", "agones-crds", "keycloak"]
    for ns in cluster_cfg.namespaces:
        assert fake_cluster.get("namespace", ns) is not None
        assert fake_cluster.get("secret", "ghcr-pull-secret", ns) is not None

def test_status_fails_when_nodes_unreachable(cluster_cfg, kube, fake_cluster):
    assert run_status(cluster_cfg, kube=kube) is True
    fake_cluster.healthy = False
    assert run_status(cluster_cfg, kube=kube) is False


def test_clean_removes_artifacts(cluster_cfg, runtime, kube, no_kubectx, tmp_path):
    runtime.present = True
    controller = _controller(cluster_cfg, runtime, kube)
    controller.export_credentials()
    cluster_cfg.global_kubeconfig.parent.mkdir(parents=True)
    cluster_cfg.global_kubeconfig.write_text(cluster_cfg.exported_kubeconfig.read_text())

    orchestrator.run_clean(cluster_cfg, runtime=runtime)

    assert "delete" in runtime.calls
    assert not cluster_cfg.exported_kubeconfig.exists()
    stored = yaml.safe_load(cluster_cfg.global_kubeconfig.read_text())
    assert stored["contexts"] == []


def test_check_prerequisites_reports_missing_tool(monkeypatch):
    def require(cmd):
        if cmd == "helmfile":
            raise RuntimeError(f"Required command '{cmd}' not found. Please install it first.")

    monkeypatch.setattr(orchestrator, "require_command", require)
    with pytest.raises(RuntimeError, match="helmfile"):
        orchestrator.check_prerequisites()


def test_check_prerequisites_requires_docker_daemon(monkeypatch):
    monkeypatch.setattr(orchestrator, "require_command", lambda cmd: None)
    monkeypatch.setattr(orchestrator, "docker_daemon_running", lambda: False)
    with pytest.raises(RuntimeError, match="Docker daemon is not running"):
        orchestrator.check_prerequisites()
