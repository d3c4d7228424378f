"""Transport interfaces."""

from __future__ import annotations

from typing import Protocol


class Executor(Protocol):
    def exec(self, namespace: str, pod: str, container: str, command: str) -> str:
        """Run a shell command inside a pod's container and return its output.

        Implementations raise ``TransportError`` (with any captured output) when
        the command cannot be run or exits unsuccessfully.
        """
