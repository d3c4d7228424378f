"""kubectl exec transport implementation."""

from __future__ import annotations

import subprocess

from proxyprobe.core.errors import (
    TransportCommandError,
    TransportTimeoutError,
    TransportUnavailableError,
)


class KubectlExecutor:
    def __init__(
        self,
        *,
        kubectl: str = "kubectl",
        context: str | None = None,
        kubeconfig: str | None = None,
        timeout_s: float = 30.0,
    ) -> None:
        self.kubectl = kubectl
        self.context = context
        self.kubeconfig = kubeconfig
        self.timeout_s = timeout_s

    def build_command(self, namespace: str, pod: str, container: str, command: str) -> list[str]:
        cmd = [self.kubectl]
        if self.kubeconfig:
            cmd += ["--kubeconfig", self.kubeconfig]
        if self.context:
            cmd += ["--context", self.context]
        cmd += ["exec", "-n", namespace, pod, "-c", container, "--", "sh", "-c", command]
        return cmd

    def exec(self, namespace: str, pod: str, container: str, command: str) -> str:
        cmd = self.build_command(namespace, pod, container, command)
        try:
            result = subprocess.run(
                cmd,
                check=False,
                capture_output=True,
                text=True,
                timeout=self.timeout_s,
            )
        except FileNotFoundError as exc:
            raise TransportUnavailableError(
                f"'{self.kubectl}' not found. Install kubectl or pass the path to the binary."
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise TransportTimeoutError(
                f"kubectl exec into {namespace}/{pod} timed out after {self.timeout_s}s",
                output=_as_text(exc.stdout) + _as_text(exc.stderr),
            ) from exc
        except OSError as exc:
            raise TransportUnavailableError(f"Could not start '{self.kubectl}': {exc}") from exc

        if result.returncode != 0:
            raise TransportCommandError(
                f"kubectl exec into {namespace}/{pod} exited with status {result.returncode}",
                output=(result.stdout or "") + (result.stderr or ""),
                returncode=result.returncode,
            )
        return result.stdout or ""


def _as_text(data: str | bytes | None) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data
