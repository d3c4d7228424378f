"""Convergence polling over repeated config snapshots.

A poll samples the proxy's ``config_dump`` until the caller's predicate
accepts it, the predicate gives up, a fetch fails under an ``abort`` policy,
the retry budget runs out, or the caller cancels. Each invocation owns all of
its state, so independent polls can run in parallel threads.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from enum import Enum
from typing import Protocol

from proxyprobe.core.errors import (
    AdminQueryError,
    ConvergenceCancelledError,
    ConvergenceTimeoutError,
    PredicatePermanentError,
)
from proxyprobe.core.model import (
    Accept,
    AttemptFailureMode,
    ConfigSnapshot,
    PermanentFailure,
    Predicate,
    ProxyTarget,
    Retry,
    RetryPolicy,
)

LOGGER = logging.getLogger(__name__)


class CancelSignal(Protocol):
    def is_set(self) -> bool: ...

    def wait(self, timeout: float | None = None) -> bool: ...


class PollState(str, Enum):
    SAMPLING = "sampling"
    WAITING = "waiting"
    ACCEPTED = "accepted"
    FATAL_ERROR = "fatal_error"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset(
    {PollState.ACCEPTED, PollState.FATAL_ERROR, PollState.TIMED_OUT, PollState.CANCELLED}
)


class ConvergencePoller:
    """Single-use driver for one wait-for-convergence invocation."""

    def __init__(
        self,
        fetch: Callable[[], ConfigSnapshot],
        predicate: Predicate,
        policy: RetryPolicy,
        *,
        target: ProxyTarget | None = None,
        cancel: CancelSignal | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.fetch = fetch
        self.predicate = predicate
        self.policy = policy
        self.target = target
        self.cancel = cancel if cancel is not None else threading.Event()
        self.clock = clock

        self.state = PollState.SAMPLING
        self.attempts = 0
        self.last_snapshot: ConfigSnapshot | None = None
        self.last_error: AdminQueryError | None = None
        self.last_reason = ""
        self._started: float | None = None

    @property
    def elapsed_s(self) -> float:
        if self._started is None:
            return 0.0
        return self.clock() - self._started

    def _transition(self, state: PollState) -> None:
        if state is not self.state:
            LOGGER.debug(
                "Poll of %s: %s -> %s (attempt %d)",
                self.target or "proxy",
                self.state.value,
                state.value,
                self.attempts,
            )
        self.state = state

    def _budget_exhausted(self) -> bool:
        if self.policy.max_attempts is not None and self.attempts >= self.policy.max_attempts:
            return True
        if self.policy.max_duration_s is not None and self.attempts > 0:
            return self.elapsed_s >= self.policy.max_duration_s
        return False

    def _next_delay(self) -> float:
        delay = self.policy.interval_s
        if self.policy.max_duration_s is not None:
            delay = min(delay, max(0.0, self.policy.max_duration_s - self.elapsed_s))
        return delay

    def _cancelled(self) -> ConvergenceCancelledError:
        self._transition(PollState.CANCELLED)
        return ConvergenceCancelledError(target=self.target, attempts=self.attempts)

    def run(self) -> ConfigSnapshot:
        if self.state in TERMINAL_STATES or self._started is not None:
            raise RuntimeError("ConvergencePoller instances are single-use")
        self._started = self.clock()

        while True:
            if self.cancel.is_set():
                raise self._cancelled()
            if self._budget_exhausted():
                break

            self._transition(PollState.SAMPLING)
            self.attempts += 1
            try:
                snapshot = self.fetch()
            except AdminQueryError as exc:
                if self.policy.on_attempt_failure is AttemptFailureMode.ABORT:
                    self._transition(PollState.FATAL_ERROR)
                    raise
                LOGGER.warning(
                    "Attempt %d on %s failed, retrying: %s",
                    self.attempts,
                    self.target or "proxy",
                    exc,
                )
                self.last_error = exc
            else:
                self.last_snapshot = snapshot
                self.last_error = None
                try:
                    verdict = self.predicate(snapshot)
                except Exception:
                    self._transition(PollState.FATAL_ERROR)
                    raise
                if isinstance(verdict, Accept):
                    self._transition(PollState.ACCEPTED)
                    LOGGER.info(
                        "Config of %s converged after %d attempt(s)",
                        self.target or "proxy",
                        self.attempts,
                    )
                    return snapshot
                if isinstance(verdict, PermanentFailure):
                    self._transition(PollState.FATAL_ERROR)
                    raise PredicatePermanentError(
                        verdict.reason,
                        target=self.target,
                        attempts=self.attempts,
                        snapshot=snapshot,
                    )
                if not isinstance(verdict, Retry):
                    self._transition(PollState.FATAL_ERROR)
                    raise TypeError(
                        "Predicate must return Accept, Retry or PermanentFailure, "
                        f"got {type(verdict).__name__}"
                    )
                self.last_reason = verdict.reason

            if self._budget_exhausted():
                break
            self._transition(PollState.WAITING)
            if self.cancel.wait(self._next_delay()):
                raise self._cancelled()

        self._transition(PollState.TIMED_OUT)
        raise ConvergenceTimeoutError(
            target=self.target,
            attempts=self.attempts,
            elapsed_s=self.elapsed_s,
            last_snapshot=self.last_snapshot,
            last_error=self.last_error,
            last_reason=self.last_reason,
        )


def wait_for_convergence(
    fetch: Callable[[], ConfigSnapshot],
    predicate: Predicate,
    policy: RetryPolicy | None = None,
    *,
    target: ProxyTarget | None = None,
    cancel: CancelSignal | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> ConfigSnapshot:
    """Block until ``predicate`` accepts a snapshot returned by ``fetch``.

    Raises ``ConvergenceTimeoutError`` when the policy's budget is exhausted,
    ``PredicatePermanentError`` when the predicate gives up,
    ``ConvergenceCancelledError`` when ``cancel`` is set, and re-raises fetch
    errors immediately unless the policy tolerates them.
    """
    poller = ConvergencePoller(
        fetch,
        predicate,
        policy or RetryPolicy(),
        target=target,
        cancel=cancel,
        clock=clock,
    )
    return poller.run()
