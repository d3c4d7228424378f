from __future__ import annotations

import threading
import time

import pytest

from proxyprobe.core.errors import (
    ConvergenceCancelledError,
    ConvergenceTimeoutError,
    DecodeError,
    PredicatePermanentError,
    RemoteExecutionError,
    TransportCommandError,
)
from proxyprobe.core.model import (
    ACCEPT,
    AttemptFailureMode,
    ConfigSection,
    ConfigSnapshot,
    PermanentFailure,
    ProxyTarget,
    Retry,
    RetryPolicy,
)
from proxyprobe.core.poller import ConvergencePoller, PollState, wait_for_convergence

TARGET = ProxyTarget(namespace="failover-eds", pod="a-v1-xyz")


def _snapshot(version: int) -> ConfigSnapshot:
    return ConfigSnapshot(
        sections=(
            ConfigSection(
                type_url="type.googleapis.com/envoy.admin.v2alpha.ClustersConfigDump",
                body={"version_info": str(version)},
            ),
        )
    )


class FakeFetch:
    def __init__(self, results: list[ConfigSnapshot | Exception] | None = None) -> None:
        self.results = list(results or [])
        self.calls = 0

    def __call__(self) -> ConfigSnapshot:
        self.calls += 1
        if self.results:
            result = self.results.pop(0)
        else:
            result = _snapshot(self.calls)
        if isinstance(result, Exception):
            raise result
        return result


class RecordingEvent:
    """Cancel signal that never fires and records requested waits."""

    def __init__(self) -> None:
        self.waits: list[float] = []

    def is_set(self) -> bool:
        return False

    def wait(self, timeout: float | None = None) -> bool:
        self.waits.append(timeout)
        return False


def _exec_error() -> RemoteExecutionError:
    return RemoteExecutionError(
        TARGET,
        "curl -s http://127.0.0.1:15000/config_dump",
        "error: unable to upgrade connection",
        TransportCommandError("exit 1", returncode=1),
    )


def test_accepting_first_snapshot_makes_one_call() -> None:
    fetch = FakeFetch()
    cancel = RecordingEvent()

    snapshot = wait_for_convergence(fetch, lambda s: ACCEPT, RetryPolicy(interval_s=1), cancel=cancel)

    assert fetch.calls == 1
    assert snapshot.sections[0].body["version_info"] == "1"
    assert cancel.waits == []


def test_never_accepting_exhausts_attempts_and_carries_last_snapshot() -> None:
    fetch = FakeFetch()
    cancel = RecordingEvent()
    policy = RetryPolicy(interval_s=1, max_attempts=3, max_duration_s=None)

    with pytest.raises(ConvergenceTimeoutError) as exc:
        wait_for_convergence(
            fetch, lambda s: Retry("cluster not present"), policy, target=TARGET, cancel=cancel
        )

    err = exc.value
    assert fetch.calls == 3
    assert err.attempts == 3
    assert err.last_snapshot.sections[0].body["version_info"] == "3"
    assert err.last_reason == "cluster not present"
    assert cancel.waits == [1, 1]
    assert "failover-eds/a-v1-xyz" in str(err)
    assert "3 attempt(s)" in str(err)
    assert "last snapshot: config_dump: clusters=0" in str(err)


def test_tolerated_failure_then_match_succeeds_on_second_attempt() -> None:
    expected = _snapshot(42)
    fetch = FakeFetch([_exec_error(), expected])
    policy = RetryPolicy(interval_s=0, max_attempts=5, on_attempt_failure=AttemptFailureMode.TOLERATE)

    snapshot = wait_for_convergence(fetch, lambda s: ACCEPT, policy, cancel=RecordingEvent())

    assert snapshot is expected
    assert fetch.calls == 2


def test_aborting_failure_raises_immediately() -> None:
    fetch = FakeFetch([_exec_error()])
    policy = RetryPolicy(interval_s=0, max_attempts=5, on_attempt_failure=AttemptFailureMode.ABORT)
    poller = ConvergencePoller(fetch, lambda s: ACCEPT, policy, cancel=RecordingEvent())

    with pytest.raises(RemoteExecutionError):
        poller.run()

    assert fetch.calls == 1
    assert poller.state is PollState.FATAL_ERROR


def test_decode_errors_follow_the_same_abort_rule() -> None:
    fetch = FakeFetch([DecodeError("config_dump", "invalid JSON", "{")])

    with pytest.raises(DecodeError):
        wait_for_convergence(fetch, lambda s: ACCEPT, RetryPolicy(interval_s=0), cancel=RecordingEvent())
    assert fetch.calls == 1


def test_timeout_after_only_failures_carries_last_error() -> None:
    fetch = FakeFetch([_exec_error(), _exec_error()])
    policy = RetryPolicy(interval_s=0, max_attempts=2, on_attempt_failure="tolerate")

    with pytest.raises(ConvergenceTimeoutError) as exc:
        wait_for_convergence(fetch, lambda s: ACCEPT, policy, cancel=RecordingEvent())

    assert exc.value.last_snapshot is None
    assert isinstance(exc.value.last_error, RemoteExecutionError)
    assert "unable to upgrade connection" in str(exc.value)


def test_permanent_failure_stops_without_further_attempts() -> None:
    fetch = FakeFetch()
    poller = ConvergencePoller(
        fetch,
        lambda s: PermanentFailure("expected locality set is empty"),
        RetryPolicy(interval_s=0),
        target=TARGET,
        cancel=RecordingEvent(),
    )

    with pytest.raises(PredicatePermanentError) as exc:
        poller.run()

    assert fetch.calls == 1
    assert exc.value.reason == "expected locality set is empty"
    assert exc.value.snapshot.sections[0].body["version_info"] == "1"
    assert poller.state is PollState.FATAL_ERROR


def test_predicate_must_return_a_verdict() -> None:
    poller = ConvergencePoller(FakeFetch(), lambda s: True, RetryPolicy(interval_s=0), cancel=RecordingEvent())

    with pytest.raises(TypeError):
        poller.run()
    assert poller.state is PollState.FATAL_ERROR


def test_raising_predicate_ends_in_fatal_state() -> None:
    def predicate(snapshot: ConfigSnapshot):
        raise KeyError("clusters")

    fetch = FakeFetch()
    poller = ConvergencePoller(fetch, predicate, RetryPolicy(interval_s=0), cancel=RecordingEvent())

    with pytest.raises(KeyError):
        poller.run()
    assert poller.state is PollState.FATAL_ERROR
    assert fetch.calls == 1


def test_retry_then_accept_reports_accepted_state() -> None:
    verdicts = [Retry("not yet"), Retry("not yet"), ACCEPT]
    fetch = FakeFetch()
    poller = ConvergencePoller(
        fetch, lambda s: verdicts.pop(0), RetryPolicy(interval_s=0.5), cancel=RecordingEvent()
    )

    poller.run()

    assert fetch.calls == 3
    assert poller.state is PollState.ACCEPTED


def test_duration_budget_stops_polling_and_clips_wait() -> None:
    now = [0.0]

    def clock() -> float:
        return now[0]

    class AdvancingEvent(RecordingEvent):
        def wait(self, timeout: float | None = None) -> bool:
            super().wait(timeout)
            now[0] += timeout
            return False

    cancel = AdvancingEvent()
    fetch = FakeFetch()
    policy = RetryPolicy(interval_s=2, max_attempts=None, max_duration_s=5)

    with pytest.raises(ConvergenceTimeoutError) as exc:
        wait_for_convergence(fetch, lambda s: Retry(), policy, cancel=cancel, clock=clock)

    assert cancel.waits == [2, 2, 1]
    assert fetch.calls == 3
    assert exc.value.elapsed_s == 5


def test_cancel_before_first_attempt() -> None:
    cancel = threading.Event()
    cancel.set()
    fetch = FakeFetch()

    with pytest.raises(ConvergenceCancelledError) as exc:
        wait_for_convergence(fetch, lambda s: ACCEPT, RetryPolicy(), cancel=cancel)

    assert fetch.calls == 0
    assert exc.value.attempts == 0


def test_cancel_during_wait_returns_promptly() -> None:
    cancel = threading.Event()
    fetch = FakeFetch()
    timer = threading.Timer(0.05, cancel.set)
    timer.start()
    started = time.monotonic()
    try:
        with pytest.raises(ConvergenceCancelledError):
            wait_for_convergence(
                fetch, lambda s: Retry(), RetryPolicy(interval_s=30, max_attempts=10), cancel=cancel
            )
    finally:
        timer.cancel()

    assert time.monotonic() - started < 5
    assert fetch.calls == 1


def test_poller_is_single_use() -> None:
    poller = ConvergencePoller(FakeFetch(), lambda s: ACCEPT, RetryPolicy(), cancel=RecordingEvent())
    poller.run()
    with pytest.raises(RuntimeError):
        poller.run()


def test_parallel_polls_are_independent() -> None:
    results: dict[str, ConfigSnapshot] = {}

    def poll(name: str, accept_on: int) -> None:
        fetch = FakeFetch()
        results[name] = wait_for_convergence(
            fetch,
            lambda s: ACCEPT if s.sections[0].body["version_info"] == str(accept_on) else Retry(),
            RetryPolicy(interval_s=0.01, max_attempts=10),
        )

    threads = [threading.Thread(target=poll, args=(f"t{i}", i)) for i in range(1, 5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert {name: s.sections[0].body["version_info"] for name, s in results.items()} == {
        "t1": "1",
        "t2": "2",
        "t3": "3",
        "t4": "4",
    }
