"""Domain-specific errors for proxyprobe."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from proxyprobe.core.model import ConfigSnapshot, ProxyTarget

_MAX_RAW_IN_MESSAGE = 2048


def _clip(text: str) -> str:
    if len(text) <= _MAX_RAW_IN_MESSAGE:
        return text
    return f"{text[:_MAX_RAW_IN_MESSAGE]}... ({len(text) - _MAX_RAW_IN_MESSAGE} more bytes)"


class ProxyprobeError(Exception):
    """Base error for proxyprobe."""


class PolicyValidationError(ProxyprobeError):
    """Raised when a retry policy does not conform to schema or semantics."""


class PolicyLoadError(ProxyprobeError):
    """Raised when reading retry policy files fails."""


class PolicySelectionError(ProxyprobeError):
    """Raised when a named retry policy cannot be resolved."""


class TransportError(ProxyprobeError):
    """Base transport error. Carries whatever output the command produced."""

    def __init__(self, message: str, *, output: str = "") -> None:
        super().__init__(message)
        self.output = output


class TransportUnavailableError(TransportError):
    """Raised when the execution backend cannot be started at all."""


class TransportCommandError(TransportError):
    """Raised when the remote command exits with a non-zero status."""

    def __init__(self, message: str, *, output: str = "", returncode: int | None = None) -> None:
        super().__init__(message, output=output)
        self.returncode = returncode


class TransportTimeoutError(TransportError):
    """Raised when the remote command does not finish in time."""


class AdminQueryError(ProxyprobeError):
    """Base error for a single failed admin interface query."""


class RemoteExecutionError(AdminQueryError):
    """Raised when the admin request could not be executed inside the proxy container."""

    def __init__(self, target: ProxyTarget, command: str, output: str, cause: Exception) -> None:
        self.target = target
        self.command = command
        self.output = output
        self.cause = cause
        super().__init__(
            f"failed exec on pod {target.namespace}/{target.pod} (container {target.container}): "
            f"{cause}. Command: {command}. Output:\n{_clip(output)}"
        )


class DecodeError(AdminQueryError):
    """Raised when an admin response does not decode into the expected structure."""

    def __init__(self, resource: str, reason: str, raw: str) -> None:
        self.resource = resource
        self.reason = reason
        self.raw = raw
        super().__init__(
            f"failed parsing proxy admin response from '/{resource}': {reason}\n"
            f"Response: {_clip(raw)}"
        )


class ConvergenceError(ProxyprobeError):
    """Base error for a poll that ended without acceptance."""


class ConvergenceTimeoutError(ConvergenceError):
    """Raised when the retry budget runs out before the predicate accepts."""

    def __init__(
        self,
        *,
        target: ProxyTarget | None,
        attempts: int,
        elapsed_s: float,
        last_snapshot: ConfigSnapshot | None,
        last_error: AdminQueryError | None = None,
        last_reason: str = "",
    ) -> None:
        self.target = target
        self.attempts = attempts
        self.elapsed_s = elapsed_s
        self.last_snapshot = last_snapshot
        self.last_error = last_error
        self.last_reason = last_reason

        where = f"proxy {target}" if target is not None else "proxy"
        lines = [
            f"{where} did not converge on config_dump after {attempts} attempt(s) in {elapsed_s:.1f}s"
        ]
        if last_reason:
            lines.append(f"last verdict: {last_reason}")
        if last_error is not None:
            lines.append(f"last error: {last_error}")
        if last_snapshot is not None:
            lines.append(f"last snapshot: {last_snapshot.summary()}")
        super().__init__("\n".join(lines))


class PredicatePermanentError(ConvergenceError):
    """Raised when the acceptance predicate reports a state retries cannot fix."""

    def __init__(
        self,
        reason: str,
        *,
        target: ProxyTarget | None,
        attempts: int,
        snapshot: ConfigSnapshot,
    ) -> None:
        self.reason = reason
        self.target = target
        self.attempts = attempts
        self.snapshot = snapshot
        where = f"proxy {target}" if target is not None else "proxy"
        super().__init__(
            f"predicate rejected config_dump of {where} permanently on attempt {attempts}: {reason}"
        )


class ConvergenceCancelledError(ConvergenceError):
    """Raised when the caller cancels an in-flight poll."""

    def __init__(self, *, target: ProxyTarget | None, attempts: int) -> None:
        self.target = target
        self.attempts = attempts
        where = f"proxy {target}" if target is not None else "proxy"
        super().__init__(f"poll of {where} cancelled after {attempts} attempt(s)")
