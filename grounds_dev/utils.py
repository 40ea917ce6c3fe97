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

"""Utility functions for kubectl invocation and command checks."""

from __future__ import annotations

import subprocess
from typing import NamedTuple

import docker
import sh


class KubectlResult(NamedTuple):
    """Outcome of a single kubectl invocation."""

    ok: bool
    stdout: str
    stderr: str


def command_available(cmd: str) -> bool:
    """Return True if *cmd* is on the system PATH."""
    try:
        sh.which(cmd)
    except sh.ErrorReturnCode:
        return False
    return True


def require_command(cmd: str) -> None:
    """Check if a command exists on the system PATH.

    Args:
        cmd: Name of the CLI command to check.

    Raises:
        RuntimeError: If the command is not found.
    """
    if not command_available(cmd):
        raise RuntimeError(f"Required command '{cmd}' not found. Please install it first.")


def docker_daemon_running() -> bool:
    """Return True if the local Docker daemon answers a ping."""
    try:
        client = docker.from_env()
    except docker.errors.DockerException:
        return False
    try:
        return bool(client.ping())
    except docker.errors.DockerException:
        return False
    finally:
        client.close()


def run_kubectl(args: list[str], timeout: int = 30, input_text: str | None = None) -> KubectlResult:
    """Run a kubectl command via subprocess and return (success, stdout, stderr).

    Uses subprocess instead of sh because probes need stdout and stderr kept
    apart (jsonpath output vs. NotFound errors) and a non-zero exit must be
    a value, not an exception.

    Args:
        args: kubectl arguments (e.g. ``["get", "pods", "-n", "default"]``).
        timeout: Maximum seconds to wait for the command to complete.
        input_text: Optional text piped to stdin (for ``apply -f -``).

    Returns:
        KubectlResult of (ok, stdout, stderr).
    """
    try:
        result = subprocess.run(
            ["kubectl", *args],
            capture_output=True,
            text=True,
            timeout=timeout,
            input=input_text,
        )
        return KubectlResult(result.returncode == 0, result.stdout, result.stderr)
    except (subprocess.SubprocessError, OSError) as exc:
        return KubectlResult(False, "", str(exc))
