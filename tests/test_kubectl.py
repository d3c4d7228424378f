from __future__ import annotations

import subprocess

import pytest

from proxyprobe.core.errors import (
    TransportCommandError,
    TransportTimeoutError,
    TransportUnavailableError,
)
from proxyprobe.transports.kubectl import KubectlExecutor


def _cp(cmd: list[str], rc: int, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(cmd, rc, stdout=stdout, stderr=stderr)


def test_exec_builds_kubectl_command(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[list[str]] = []

    def fake_run(cmd, check, capture_output, text, timeout):
        seen.append(cmd)
        assert timeout == 10.0
        return _cp(cmd, 0, stdout='{"configs": []}', stderr="progress noise")

    monkeypatch.setattr(subprocess, "run", fake_run)

    executor = KubectlExecutor(context="kind-mesh", kubeconfig="/tmp/kubeconfig", timeout_s=10.0)
    output = executor.exec("failover-eds", "a-v1-xyz", "istio-proxy", "curl -s http://127.0.0.1:15000/config_dump")

    assert output == '{"configs": []}'
    assert seen == [
        [
            "kubectl",
            "--kubeconfig",
            "/tmp/kubeconfig",
            "--context",
            "kind-mesh",
            "exec",
            "-n",
            "failover-eds",
            "a-v1-xyz",
            "-c",
            "istio-proxy",
            "--",
            "sh",
            "-c",
            "curl -s http://127.0.0.1:15000/config_dump",
        ]
    ]


def test_non_zero_exit_carries_combined_output(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(cmd, check, capture_output, text, timeout):
        return _cp(cmd, 1, stdout="partial", stderr='Error from server (NotFound): pods "a" not found')

    monkeypatch.setattr(subprocess, "run", fake_run)

    with pytest.raises(TransportCommandError) as exc:
        KubectlExecutor().exec("ns", "a", "istio-proxy", "true")

    assert exc.value.returncode == 1
    assert exc.value.output.startswith("partial")
    assert "NotFound" in exc.value.output


def test_missing_kubectl_raises_clean_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(cmd, check, capture_output, text, timeout):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(subprocess, "run", fake_run)

    with pytest.raises(TransportUnavailableError):
        KubectlExecutor(kubectl="/nonexistent/kubectl").exec("ns", "a", "istio-proxy", "true")


def test_timeout_raises_transport_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(cmd, check, capture_output, text, timeout):
        raise subprocess.TimeoutExpired(cmd, timeout, output=b"half a resp")

    monkeypatch.setattr(subprocess, "run", fake_run)

    with pytest.raises(TransportTimeoutError) as exc:
        KubectlExecutor(timeout_s=1.0).exec("ns", "a", "istio-proxy", "sleep 5")

    assert exc.value.output == "half a resp"


def test_other_os_errors_raise_transport_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(cmd, check, capture_output, text, timeout):
        raise PermissionError(13, "Permission denied", cmd[0])

    monkeypatch.setattr(subprocess, "run", fake_run)

    with pytest.raises(TransportUnavailableError) as exc:
        KubectlExecutor().exec("ns", "a", "istio-proxy", "true")

    assert "Permission denied" in str(exc.value)
