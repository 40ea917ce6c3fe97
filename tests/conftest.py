"""Shared fixtures: an in-memory kubectl backend and a fake k3d runtime."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import sh
import yaml

from grounds_dev.config import ClusterConfig, CredentialBundle
from grounds_dev.kube import Kubectl
from grounds_dev.utils import KubectlResult

NAMESPACED_KINDS = {"serviceaccount", "secret", "deployment", "service", "ingress", "csv", "pod"}


def _kind_key(kind: str) -> str:
    kind = kind.lower()
    return {"clusterserviceversion": "csv", "serviceaccounts": "serviceaccount", "sa": "serviceaccount"}.get(kind, kind)


class FakeCluster:
    """kubectl stand-in keeping objects in memory.

    Objects are stored by (kind, namespace, name). Applying a Namespace also
    creates its ``default`` service account, as the service-account controller
    would. Every invocation is recorded in ``calls``.
    """

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str, str], dict] = {}
        self.crds: set[str] = set()
        self.calls: list[list[str]] = []
        self.applied: list[dict] = []
        self.patches: list[tuple[str, list[dict]]] = []
        self.healthy = True
        self.rollouts_ok = True
        self.pods_ok = True
        self.current_context: str | None = None
        self.fail_apply_kinds: set[str] = set()
        self.fail_apply_namespaces: set[str] = set()
        self.fail_patch_namespaces: set[str] = set()
        self.auto_service_accounts = True
        self.add_namespace("default")

    # -- helpers for tests --

    def add_namespace(self, name: str) -> None:
        self.objects[("namespace", "", name)] = {"kind": "Namespace", "metadata": {"name": name}}
        if self.auto_service_accounts:
            self.objects.setdefault(
                ("serviceaccount", name, "default"),
                {"kind": "ServiceAccount", "metadata": {"name": "default", "namespace": name}},
            )

    def get(self, kind: str, name: str, namespace: str = "") -> dict | None:
        return self.objects.get((_kind_key(kind), namespace, name))

    def mutating_calls(self) -> list[list[str]]:
        return [c for c in self.calls if c and c[0] in ("apply", "patch", "create", "delete")]

    # -- runner protocol --

    def __call__(self, args: list[str], timeout: int = 30, input_text: str | None = None) -> KubectlResult:
        args = list(args)
        if args[:1] == ["--context"]:
            args = args[2:]
        self.calls.append(args)
        verb = args[0]
        handler = getattr(self, f"_do_{verb.replace('-', '_')}", None)
        if handler is None:
            return KubectlResult(False, "", f"unsupported verb {verb}")
        return handler(args[1:], input_text)

    @staticmethod
    def _namespace(args: list[str]) -> str:
        return args[args.index("-n") + 1] if "-n" in args else ""

    def _do_cluster_info(self, args, _input):
        return KubectlResult(self.healthy, "Kubernetes control plane is running", "" if self.healthy else "refused")

    def _do_get(self, args, _input):
        kind = _kind_key(args[0])
        if kind == "nodes":
            return KubectlResult(self.healthy, "NAME STATUS\nk3d-dev-server-0 Ready\n", "" if self.healthy else "refused")
        if kind == "crd":
            ok = args[1] in self.crds
            return KubectlResult(ok, args[1] if ok else "", "" if ok else "NotFound")
        ns = self._namespace(args)
        name = args[1] if len(args) > 1 and not args[1].startswith("-") else None
        if name is None:
            items = [obj for (k, n, _), obj in self.objects.items() if k == kind and n == ns]
            return KubectlResult(True, json.dumps({"items": items}), "")
        obj = self.objects.get((kind, ns if kind in NAMESPACED_KINDS else "", name))
        if obj is None:
            return KubectlResult(False, "", f'Error from server (NotFound): {kind} "{name}" not found')
        return KubectlResult(True, json.dumps(obj), "")

    def _do_apply(self, args, input_text):
        docs = [d for d in yaml.safe_load_all(input_text or "") if d]
        for doc in docs:
            kind = doc["kind"]
            ns = doc["metadata"].get("namespace", "")
            if kind in self.fail_apply_kinds or ns in self.fail_apply_namespaces:
                return KubectlResult(False, "", f"error applying {kind}")
        for doc in docs:
            self.applied.append(doc)
            kind = _kind_key(doc["kind"])
            name = doc["metadata"]["name"]
            if kind == "namespace":
                self.add_namespace(name)
                continue
            ns = doc["metadata"].get("namespace", "")
            self.objects[(kind, ns, name)] = doc
        return KubectlResult(True, "configured", "")

    def _do_patch(self, args, _input):
        kind, name = _kind_key(args[0]), args[1]
        ns = self._namespace(args)
        ops = json.loads(args[args.index("-p") + 1])
        obj = self.objects.get((kind, ns, name))
        if obj is None:
            return KubectlResult(False, "", "NotFound")
        if ns in self.fail_patch_namespaces:
            return KubectlResult(False, "", "the server rejected the patch")
        self.patches.append((ns, ops))
        for op in ops:
            path = op["path"]
            if path == "/imagePullSecrets":
                obj["imagePullSecrets"] = list(op["value"])
            elif path == "/imagePullSecrets/-":
                if "imagePullSecrets" not in obj:
                    return KubectlResult(False, "", "jsonpatch add operation does not apply: doc is missing path")
                obj["imagePullSecrets"].append(op["value"])
            else:
                return KubectlResult(False, "", f"unsupported path {path}")
        return KubectlResult(True, "patched", "")

    def _do_rollout(self, args, _input):
        return KubectlResult(self.rollouts_ok, "", "" if self.rollouts_ok else "timed out")

    def _do_wait(self, args, _input):
        return KubectlResult(self.pods_ok, "", "" if self.pods_ok else "timed out")

    def _do_logs(self, args, _input):
        return KubectlResult(True, "log line\n", "")

    def _do_config(self, args, _input):
        if args[0] == "current-context":
            ok = self.current_context is not None
            return KubectlResult(ok, f"{self.current_context}\n" if ok else "", "" if ok else "not set")
        if args[0] == "use-context":
            self.current_context = args[1]
            return KubectlResult(True, f'Switched to context "{args[1]}".', "")
        return KubectlResult(False, "", "unsupported")


class FakeRuntime:
    """k3d stand-in recording lifecycle calls."""

    def __init__(self, cluster: FakeCluster, present: bool = False, heal_on_create: bool = True) -> None:
        self.cluster = cluster
        self.present = present
        self.heal_on_create = heal_on_create
        self.fail_create = False
        self.calls: list[str] = []

    def exists(self, name: str) -> bool:
        self.calls.append("exists")
        return self.present

    def create(self, cfg: ClusterConfig) -> None:
        self.calls.append("create")
        if self.fail_create:
            raise sh.ErrorReturnCode_1("k3d cluster create dev", b"", b"port 80 already allocated")
        self.present = True
        if self.heal_on_create:
            self.cluster.healthy = True

    def delete(self, name: str) -> bool:
        self.calls.append("delete")
        existed = self.present
        self.present = False
        return existed

    def export_kubeconfig(self, name: str, path: Path) -> None:
        self.calls.append("export")
        path.write_text(yaml.safe_dump(exported_kubeconfig(f"k3d-{name}")))


def exported_kubeconfig(context: str) -> dict:
    user = f"admin@{context}"
    return {
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [{"name": context, "cluster": {"server": "https://0.0.0.0:6443"}}],
        "contexts": [{"name": context, "context": {"cluster": context, "user": user}}],
        "users": [{"name": user, "user": {"token": "abc"}}],
        "current-context": context,
    }


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    """Record sleeps instead of performing them."""
    slept: list[float] = []
    monkeypatch.setattr("grounds_dev.waiter._sleep", slept.append)
    return slept


@pytest.fixture
def fake_cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def kube(fake_cluster) -> Kubectl:
    return Kubectl(context="k3d-dev", runner=fake_cluster)


@pytest.fixture
def credentials() -> CredentialBundle:
    return CredentialBundle(registry_host="ghcr.io", username="octocat", token="s3cret")


@pytest.fixture
def cluster_cfg(tmp_path) -> ClusterConfig:
    return ClusterConfig(
        project_dir=tmp_path,
        global_kubeconfig=tmp_path / "home" / ".kube" / "config",
        health_interval=0,
        readiness_interval=0,
    )


@pytest.fixture
def runtime(fake_cluster) -> FakeRuntime:
    return FakeRuntime(fake_cluster)
