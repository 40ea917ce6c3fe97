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

"""Thin kubectl wrapper bound to a kubeconfig context."""

from __future__ import annotations

import json
from collections.abc import Callable

import yaml

from grounds_dev import logger
from grounds_dev.utils import KubectlResult, run_kubectl

Runner = Callable[..., KubectlResult]


class Kubectl:
    """kubectl operations used by the bootstrap steps.

    Every method returns a value instead of raising, so callers decide what a
    failure means. Reads that hit a missing resource return None/False.

    Args:
        context: kubeconfig context passed as ``--context``, or None for the current one.
        runner: Function executing kubectl; defaults to ``run_kubectl``.
    """

    def __init__(self, context: str | None = None, runner: Runner = run_kubectl) -> None:
        self.context = context
        self._runner = runner

    def run(self, args: list[str], timeout: int = 30, input_text: str | None = None) -> KubectlResult:
        """Run kubectl with the bound context prepended."""
        prefix = ["--context", self.context] if self.context else []
        return self._runner([*prefix, *args], timeout=timeout, input_text=input_text)

    # -- Reads --

    def exists(self, kind: str, name: str, namespace: str | None = None) -> bool:
        args = ["get", kind, name]
        if namespace:
            args += ["-n", namespace]
        return self.run(args).ok

    def get_json(self, kind: str, name: str | None = None, namespace: str | None = None) -> dict | None:
        """Return the resource (or list, when *name* is None) as a dict, or None if unavailable."""
        args = ["get", kind]
        if name:
            args.append(name)
        if namespace:
            args += ["-n", namespace]
        args += ["-o", "json"]
        ok, stdout, stderr = self.run(args)
        if not ok:
            logger.debug("kubectl get %s %s failed: %s", kind, name or "", stderr.strip()[:200])
            return None
        try:
            return json.loads(stdout)
        except json.JSONDecodeError:
            logger.debug("kubectl get %s %s returned non-JSON output", kind, name or "")
            return None

    def api_reachable(self) -> bool:
        return self.run(["cluster-info"]).ok

    def nodes_listable(self) -> bool:
        return self.run(["get", "nodes"]).ok

    def rollout_complete(self, deployment: str, namespace: str, timeout_seconds: int = 10) -> bool:
        return self.run(
            ["rollout", "status", f"deployment/{deployment}", "-n", namespace, f"--timeout={timeout_seconds}s"],
            timeout=timeout_seconds + 10,
        ).ok

    def pods_ready(self, selector: str, namespace: str, timeout_seconds: int = 10) -> bool:
        return self.run(
            ["wait", "--for=condition=ready", "pod", "-l", selector, "-n", namespace,
             f"--timeout={timeout_seconds}s"],
            timeout=timeout_seconds + 10,
        ).ok

    def logs(self, selector: str, namespace: str, tail: int) -> KubectlResult:
        return self.run(["logs", "-n", namespace, "-l", selector, f"--tail={tail}"], timeout=60)

    # -- Writes --

    def apply(self, manifest: dict | list[dict]) -> KubectlResult:
        """Apply one or more declared documents via ``kubectl apply -f -``."""
        documents = manifest if isinstance(manifest, list) else [manifest]
        text = yaml.safe_dump_all(documents, default_flow_style=False, sort_keys=False)
        return self.run(["apply", "-f", "-"], timeout=60, input_text=text)

    def patch_json(self, kind: str, name: str, namespace: str, operations: list[dict]) -> KubectlResult:
        """Apply an RFC 6902 JSON patch to a namespaced resource."""
        return self.run(
            ["patch", kind, name, "-n", namespace, "--type=json", "-p", json.dumps(operations)]
        )

    # -- kubeconfig --

    def current_context(self) -> str | None:
        ok, stdout, _ = self._runner(["config", "current-context"], timeout=10, input_text=None)
        if not ok:
            return None
        return stdout.strip() or None

    def use_context(self, name: str) -> KubectlResult:
        return self._runner(["config", "use-context", name], timeout=10, input_text=None)
