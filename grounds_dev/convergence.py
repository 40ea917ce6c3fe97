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

"""Convergent actions and declarative failure policies."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import sh

from grounds_dev import console, logger
from grounds_dev.utils import KubectlResult
from grounds_dev.waiter import Probe, RetryPolicy, WaitOutcome, wait_for


class FailurePolicy(str, Enum):
    FATAL = "fatal"
    BEST_EFFORT = "best-effort"


class StepFailed(RuntimeError):
    """A fatal bootstrap step failed; the run cannot continue."""


@dataclass(frozen=True)
class ConvergentAction:
    """An idempotent "ensure R is in state D" step.

    Attributes:
        name: Human-readable description of the desired state.
        apply: Callable performing the mutation; returns a bool or KubectlResult.
        policy: What a failed apply means for the run.
        hint: Warning text printed when a best-effort apply fails.
    """

    name: str
    apply: Callable[[], bool | KubectlResult]
    policy: FailurePolicy = FailurePolicy.FATAL
    hint: str | None = None


def converge(action: ConvergentAction) -> bool:
    """Run a convergent action and apply its failure policy.

    Args:
        action: The action to run.

    Returns:
        True if the apply succeeded, False if it failed under BEST_EFFORT.

    Raises:
        StepFailed: If the apply failed under FATAL.
    """
    detail = ""
    try:
        result = action.apply()
    except sh.ErrorReturnCode as err:
        ok = False
        detail = err.stderr.decode(errors="replace").strip() if err.stderr else str(err)
    else:
        if isinstance(result, KubectlResult):
            ok, detail = result.ok, result.stderr.strip()
        else:
            ok = bool(result)

    if ok:
        logger.debug("Converged: %s", action.name)
        return True
    if detail:
        logger.debug("%s: %s", action.name, detail[:500])
    if action.policy is FailurePolicy.FATAL:
        raise StepFailed(f"Failed to {action.name}" + (f": {detail[:200]}" if detail else ""))
    console.print(f"[yellow]\u26a0\ufe0f  {action.hint or f'Could not {action.name}, continuing'}[/yellow]")
    return False


def await_probe(
    description: str,
    probe: Probe,
    policy: RetryPolicy,
    on_timeout: FailurePolicy = FailurePolicy.FATAL,
    hint: str | None = None,
) -> WaitOutcome:
    """Wait for a probe and apply *on_timeout* to anything but READY.

    Args:
        description: Name of the awaited condition.
        probe: Read-only check.
        policy: Attempt budget and interval.
        on_timeout: What exhaustion or explicit failure means for the run.
        hint: Warning text printed when a best-effort wait does not succeed.

    Returns:
        The wait outcome (always READY under FATAL).

    Raises:
        StepFailed: If the wait did not succeed under FATAL.
    """
    outcome = wait_for(probe, policy, description)
    if outcome is WaitOutcome.READY:
        return outcome
    if on_timeout is FailurePolicy.FATAL:
        if outcome is WaitOutcome.FAILED:
            raise StepFailed(f"{description} reported failure")
        raise StepFailed(f"Timed out waiting for {description} after {policy.max_attempts} attempts")
    console.print(f"[yellow]\u26a0\ufe0f  {hint or f'{description} not ready, continuing'}[/yellow]")
    return outcome
