"""Service layer used by the public API, the CLI, and test fixtures."""

from __future__ import annotations

import shutil

from proxyprobe.core.admin import AdminClient
from proxyprobe.core.errors import PolicySelectionError
from proxyprobe.core.model import ConfigSnapshot, Predicate, ProxyTarget, RetryPolicy, ServerInfo
from proxyprobe.core.policy_loader import load_policies
from proxyprobe.core.poller import CancelSignal, wait_for_convergence
from proxyprobe.transports.base import Executor
from proxyprobe.transports.kubectl import KubectlExecutor

DEFAULT_POLICY_ID = "default"


class ProbeService:
    def __init__(self, *, executor: Executor | None = None) -> None:
        loaded = load_policies()
        self.policies = loaded.policies
        self.load_warnings = loaded.warnings
        self.executor = executor or KubectlExecutor()
        self.runtime_warnings = _runtime_warnings(self.executor)
        self.admin = AdminClient(self.executor)

    def list_policies(self) -> list[tuple[str, RetryPolicy]]:
        return sorted(self.policies.items())

    def resolve_policy(self, policy: RetryPolicy | str | None = None) -> RetryPolicy:
        if isinstance(policy, RetryPolicy):
            return policy
        policy_id = policy or DEFAULT_POLICY_ID
        resolved = self.policies.get(policy_id)
        if resolved is None:
            if policy is None:
                return RetryPolicy()
            available = ", ".join(sorted(self.policies))
            raise PolicySelectionError(
                f"Unknown retry policy '{policy_id}'. Available: {available}"
            )
        return resolved

    def server_info(self, target: ProxyTarget) -> ServerInfo:
        return self.admin.fetch_server_info(target)

    def config_snapshot(self, target: ProxyTarget) -> ConfigSnapshot:
        return self.admin.fetch_config_snapshot(target)

    def wait_for_config(
        self,
        target: ProxyTarget,
        predicate: Predicate,
        policy: RetryPolicy | str | None = None,
        *,
        cancel: CancelSignal | None = None,
    ) -> ConfigSnapshot:
        return wait_for_convergence(
            lambda: self.admin.fetch_config_snapshot(target),
            predicate,
            self.resolve_policy(policy),
            target=target,
            cancel=cancel,
        )


def _runtime_warnings(executor: Executor) -> tuple[str, ...]:
    warnings: list[str] = []
    if isinstance(executor, KubectlExecutor) and shutil.which(executor.kubectl) is None:
        warnings.append(
            f"'{executor.kubectl}' not found on PATH; admin queries through kubectl exec will fail."
        )
    return tuple(warnings)
