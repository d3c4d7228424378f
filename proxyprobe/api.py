"""Stable public API for mesh tests built on top of proxyprobe.

This module is the supported integration surface for test suites and fixtures.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from proxyprobe.core.errors import (
    AdminQueryError,
    ConvergenceCancelledError,
    ConvergenceError,
    ConvergenceTimeoutError,
    DecodeError,
    PolicyLoadError,
    PolicySelectionError,
    PolicyValidationError,
    PredicatePermanentError,
    ProxyprobeError,
    RemoteExecutionError,
    TransportCommandError,
    TransportError,
    TransportTimeoutError,
    TransportUnavailableError,
)
from proxyprobe.core.model import (
    ACCEPT,
    PROXY_CONTAINER_NAME,
    Accept,
    AttemptFailureMode,
    ConfigSection,
    ConfigSnapshot,
    Locality,
    PermanentFailure,
    Predicate,
    ProxyTarget,
    Retry,
    RetryPolicy,
    ServerInfo,
    Verdict,
)
from proxyprobe.core.naming import HostnameSequence
from proxyprobe.core.poller import CancelSignal, wait_for_convergence
from proxyprobe.core.service import ProbeService
from proxyprobe.transports.base import Executor
from proxyprobe.transports.kubectl import KubectlExecutor

__all__ = [
    "ProxyprobeError",
    "AdminQueryError",
    "RemoteExecutionError",
    "DecodeError",
    "ConvergenceError",
    "ConvergenceTimeoutError",
    "ConvergenceCancelledError",
    "PredicatePermanentError",
    "PolicyLoadError",
    "PolicySelectionError",
    "PolicyValidationError",
    "TransportError",
    "TransportCommandError",
    "TransportTimeoutError",
    "TransportUnavailableError",
    "ACCEPT",
    "PROXY_CONTAINER_NAME",
    "Accept",
    "AttemptFailureMode",
    "ConfigSection",
    "ConfigSnapshot",
    "Locality",
    "PermanentFailure",
    "Predicate",
    "ProxyTarget",
    "Retry",
    "RetryPolicy",
    "ServerInfo",
    "Verdict",
    "HostnameSequence",
    "Executor",
    "KubectlExecutor",
    "wait_for_convergence",
    "Client",
    "Sidecar",
]


class Sidecar:
    """A client bound to one running proxy instance.

    The target is owned by the test; the sidecar only reads from it.
    """

    def __init__(self, service: ProbeService, target: ProxyTarget) -> None:
        self._service = service
        self.target = target

    def info(self) -> ServerInfo:
        return self._service.server_info(self.target)

    def config(self) -> ConfigSnapshot:
        return self._service.config_snapshot(self.target)

    def wait_for_config(
        self,
        accept: Predicate,
        policy: RetryPolicy | str | None = None,
        *,
        cancel: CancelSignal | None = None,
    ) -> ConfigSnapshot:
        return self._service.wait_for_config(self.target, accept, policy, cancel=cancel)


class Client:
    """Public client for introspecting sidecar proxies.

    A `Client` wraps policy loading, admin queries, and convergence polling
    behind a stable API. Pass an ``executor`` to run admin requests through
    something other than ``kubectl exec`` (an in-memory fake in unit tests).
    """

    def __init__(self, *, executor: Executor | None = None) -> None:
        self._service = ProbeService(executor=executor)

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    @property
    def runtime_warnings(self) -> tuple[str, ...]:
        return self._service.runtime_warnings

    def list_policies(self) -> list[tuple[str, RetryPolicy]]:
        return self._service.list_policies()

    def get_policy(self, policy: str | None = None) -> RetryPolicy:
        return self._service.resolve_policy(policy)

    def sidecar(
        self,
        namespace: str,
        pod: str,
        *,
        container: str = PROXY_CONTAINER_NAME,
    ) -> Sidecar:
        return Sidecar(self._service, ProxyTarget(namespace=namespace, pod=pod, container=container))

    def fetch_server_info(self, target: ProxyTarget) -> ServerInfo:
        return self._service.server_info(target)

    def fetch_config_snapshot(self, target: ProxyTarget) -> ConfigSnapshot:
        return self._service.config_snapshot(target)

    def wait_for_convergence(
        self,
        target: ProxyTarget,
        predicate: Predicate,
        policy: RetryPolicy | str | None = None,
        *,
        cancel: CancelSignal | None = None,
    ) -> ConfigSnapshot:
        return self._service.wait_for_config(target, predicate, policy, cancel=cancel)
