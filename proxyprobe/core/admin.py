"""Single-shot queries against a sidecar proxy's local admin interface."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar

from proxyprobe.core.decode import (
    CONFIG_DUMP_RESOURCE,
    SERVER_INFO_RESOURCE,
    decode_config_snapshot,
    decode_server_info,
)
from proxyprobe.core.errors import RemoteExecutionError, TransportError
from proxyprobe.core.model import ConfigSnapshot, ProxyTarget, ServerInfo
from proxyprobe.transports.base import Executor

PROXY_ADMIN_PORT = 15000
LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def admin_command(resource: str) -> str:
    return f"curl -s http://127.0.0.1:{PROXY_ADMIN_PORT}/{resource}"


class AdminClient:
    """Reads the admin interface of a proxy through an injected executor.

    Every call is exactly one remote round trip. Nothing is retried or cached
    here; failures propagate as ``RemoteExecutionError`` or ``DecodeError``.
    """

    def __init__(self, executor: Executor) -> None:
        self.executor = executor

    def fetch_server_info(self, target: ProxyTarget) -> ServerInfo:
        return self._fetch_and_decode(target, SERVER_INFO_RESOURCE, decode_server_info)

    def fetch_config_snapshot(self, target: ProxyTarget) -> ConfigSnapshot:
        return self._fetch_and_decode(target, CONFIG_DUMP_RESOURCE, decode_config_snapshot)

    def _fetch_and_decode(
        self,
        target: ProxyTarget,
        resource: str,
        decoder: Callable[..., T],
    ) -> T:
        command = admin_command(resource)
        try:
            response = self.executor.exec(target.namespace, target.pod, target.container, command)
        except TransportError as exc:
            raise RemoteExecutionError(target, command, exc.output, exc) from exc
        except Exception as exc:
            raise RemoteExecutionError(target, command, "", exc) from exc

        LOGGER.debug("Fetched /%s from %s (%d bytes)", resource, target, len(response))
        return decoder(response, resource=resource)
