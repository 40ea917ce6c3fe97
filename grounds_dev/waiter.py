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

"""Probes and the bounded fixed-interval polling loop.

A probe is a read-only boolean check against external state. ``wait_for``
evaluates it until it reports True or the attempt budget of its
``RetryPolicy`` runs out, and returns the outcome as a value: running out of
attempts is an expected result, not an error. A probe that observes an
explicit failure status (as opposed to absence) raises ``ProbeFailed`` to
stop the wait early.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from tenacity import RetryCallState, RetryError, Retrying, retry_if_result, stop_after_attempt, wait_fixed

from grounds_dev import logger

Probe = Callable[[], bool]


class ProbeFailed(Exception):
    """Raised by a probe that observed an explicit, terminal failure status."""


class WaitOutcome(str, Enum):
    READY = "ready"
    TIMED_OUT = "timed-out"
    FAILED = "failed"


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget for a polling wait.

    Attributes:
        max_attempts: Number of probe evaluations before giving up (>= 1).
        interval: Seconds slept between two failed evaluations.
    """

    max_attempts: int
    interval: float

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.interval < 0:
            raise ValueError(f"interval must be >= 0, got {self.interval}")

    @property
    def ceiling(self) -> float:
        """Upper bound on the time spent sleeping."""
        return self.max_attempts * self.interval


def _sleep(seconds: float) -> None:
    time.sleep(seconds)


def wait_for(
    probe: Probe,
    policy: RetryPolicy,
    description: str,
    sleep: Callable[[float], None] | None = None,
) -> WaitOutcome:
    """Evaluate *probe* until it succeeds or *policy* is exhausted.

    Args:
        probe: Read-only check returning True when the condition holds.
        policy: Attempt budget and interval.
        description: Human-readable name of the condition, used in log lines.
        sleep: Sleep function override; defaults to ``time.sleep``.

    Returns:
        READY if the probe succeeded, TIMED_OUT if every attempt returned
        False, FAILED if the probe raised ProbeFailed.
    """
    sleeper = sleep if sleep is not None else _sleep

    def _log_attempt(retry_state: RetryCallState) -> None:
        logger.info(
            "Waiting for %s (attempt %d/%d), retrying in %ss...",
            description, retry_state.attempt_number, policy.max_attempts, policy.interval,
        )

    retrying = Retrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_fixed(policy.interval),
        retry=retry_if_result(lambda ok: not ok),
        before_sleep=_log_attempt,
        sleep=sleeper,
    )
    try:
        retrying(probe)
    except RetryError:
        logger.warning("Gave up waiting for %s after %d attempts", description, policy.max_attempts)
        return WaitOutcome.TIMED_OUT
    except ProbeFailed as err:
        logger.error("%s reported failure: %s", description, err)
        return WaitOutcome.FAILED
    return WaitOutcome.READY
