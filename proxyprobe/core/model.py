"""Core data models used across decode, admin client, poller, and CLI."""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

from proxyprobe.core.errors import PolicyValidationError

PROXY_CONTAINER_NAME = "istio-proxy"

_CAMEL_BOUNDARY_RE = re.compile(r"(?<!^)(?=[A-Z])")


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [_thaw(item) for item in value]
    return value


@dataclass(frozen=True)
class ProxyTarget:
    namespace: str
    pod: str
    container: str = PROXY_CONTAINER_NAME

    def __str__(self) -> str:
        return f"{self.namespace}/{self.pod}[{self.container}]"


@dataclass(frozen=True)
class Locality:
    region: str = ""
    zone: str = ""
    sub_zone: str = ""

    @classmethod
    def parse(cls, value: str) -> Locality:
        """Parse a ``region/zone/subzone`` label; trailing levels may be omitted."""
        parts = value.strip().split("/")
        if len(parts) > 3:
            raise ValueError(f"Locality '{value}' has more than three levels")
        parts += [""] * (3 - len(parts))
        return cls(region=parts[0], zone=parts[1], sub_zone=parts[2])

    @classmethod
    def from_envoy(cls, data: Mapping[str, Any] | None) -> Locality:
        data = data or {}
        return cls(
            region=data.get("region", ""),
            zone=data.get("zone", ""),
            sub_zone=data.get("sub_zone", ""),
        )

    def __str__(self) -> str:
        return "/".join((self.region, self.zone, self.sub_zone)).rstrip("/")


@dataclass(frozen=True)
class ServerInfo:
    version: str
    state: str
    uptime_current_epoch: str | None = None
    uptime_all_epochs: str | None = None
    hot_restart_version: str | None = None
    command_line_options: dict[str, Any] | None = None
    node: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"version": self.version, "state": self.state}
        for key in (
            "uptime_current_epoch",
            "uptime_all_epochs",
            "hot_restart_version",
            "command_line_options",
            "node",
        ):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        return out


@dataclass(frozen=True)
class ConfigSection:
    """One entry of ``configs``. The body is frozen: read-only mappings and tuples."""

    type_url: str
    body: Mapping[str, Any]

    def __post_init__(self) -> None:
        object.__setattr__(self, "body", _freeze(self.body))

    @property
    def kind(self) -> str:
        """Short name of the section, e.g. ``clusters`` for ``...ClustersConfigDump``."""
        message = self.type_url.rsplit("/", 1)[-1].rsplit(".", 1)[-1]
        if message.endswith("ConfigDump"):
            message = message[: -len("ConfigDump")]
        return _CAMEL_BOUNDARY_RE.sub("_", message).lower()

    def to_dict(self) -> dict[str, Any]:
        return {"@type": self.type_url, **_thaw(self.body)}


@dataclass(frozen=True)
class ConfigSnapshot:
    """One decoded ``config_dump`` response.

    Accessors understand both the v2alpha (``dynamic_active_*``) and v3
    (``dynamic_listeners[].active_state``) layouts. Warming and draining
    resources are not reported as active.
    """

    sections: tuple[ConfigSection, ...] = field(default_factory=tuple)

    def section(self, kind: str) -> ConfigSection | None:
        for section in self.sections:
            if section.kind == kind:
                return section
        return None

    def _items(self, kind: str, groups: tuple[str, ...], key: str) -> list[Mapping[str, Any]]:
        section = self.section(kind)
        if section is None:
            return []
        items: list[Mapping[str, Any]] = []
        for group in groups:
            for entry in section.body.get(group, ()):
                if "active_state" in entry:
                    entry = entry["active_state"] or {}
                item = entry.get(key)
                if item is not None:
                    items.append(item)
        return items

    def listeners(self) -> list[Mapping[str, Any]]:
        return self._items(
            "listeners",
            ("static_listeners", "dynamic_active_listeners", "dynamic_listeners"),
            "listener",
        )

    def clusters(self) -> list[Mapping[str, Any]]:
        return self._items("clusters", ("static_clusters", "dynamic_active_clusters"), "cluster")

    def routes(self) -> list[Mapping[str, Any]]:
        return self._items(
            "routes", ("static_route_configs", "dynamic_route_configs"), "route_config"
        )

    def endpoint_configs(self) -> list[Mapping[str, Any]]:
        return self._items(
            "endpoints",
            ("static_endpoint_configs", "dynamic_endpoint_configs"),
            "endpoint_config",
        )

    def cluster(self, name: str) -> Mapping[str, Any] | None:
        return next((c for c in self.clusters() if c.get("name") == name), None)

    def listener(self, name: str) -> Mapping[str, Any] | None:
        return next((lst for lst in self.listeners() if lst.get("name") == name), None)

    def route(self, name: str) -> Mapping[str, Any] | None:
        return next((r for r in self.routes() if r.get("name") == name), None)

    def endpoints(self, cluster_name: str) -> list[Mapping[str, Any]] | None:
        """Locality endpoint groups for a cluster, or None if the cluster is unknown.

        EDS-delivered assignments take precedence over the cluster's inline
        ``load_assignment`` (used by DNS/STATIC clusters).
        """
        for config in self.endpoint_configs():
            if config.get("cluster_name") == cluster_name:
                return list(config.get("endpoints", ()))
        cluster = self.cluster(cluster_name)
        if cluster is None:
            return None
        return list((cluster.get("load_assignment") or {}).get("endpoints", ()))

    def summary(self) -> str:
        if not self.sections:
            return "config_dump with no sections"
        counts = {
            "listeners": len(self.listeners()),
            "clusters": len(self.clusters()),
            "routes": len(self.routes()),
            "endpoints": len(self.endpoint_configs()),
        }
        parts = []
        for section in self.sections:
            if section.kind in counts:
                parts.append(f"{section.kind}={counts[section.kind]}")
            else:
                parts.append(section.kind)
        return "config_dump: " + ", ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        return {"configs": [section.to_dict() for section in self.sections]}


@dataclass(frozen=True)
class Accept:
    pass


@dataclass(frozen=True)
class Retry:
    reason: str = ""


@dataclass(frozen=True)
class PermanentFailure:
    reason: str


ACCEPT = Accept()

Verdict = Accept | Retry | PermanentFailure
Predicate = Callable[[ConfigSnapshot], Verdict]


class AttemptFailureMode(str, Enum):
    ABORT = "abort"
    TOLERATE = "tolerate"


@dataclass(frozen=True)
class RetryPolicy:
    """Polling cadence and budget.

    Defaults: one attempt per second, give up after 30 attempts or 60 seconds,
    whichever comes first, and abort on the first failed fetch. Either budget
    may be disabled with None, but not both.
    """

    interval_s: float = 1.0
    max_attempts: int | None = 30
    max_duration_s: float | None = 60.0
    on_attempt_failure: AttemptFailureMode = AttemptFailureMode.ABORT

    def __post_init__(self) -> None:
        if self.interval_s < 0:
            raise PolicyValidationError("interval_s must be >= 0")
        if self.max_attempts is None and self.max_duration_s is None:
            raise PolicyValidationError("At least one of max_attempts or max_duration_s must be set")
        if self.max_attempts is not None and self.max_attempts < 1:
            raise PolicyValidationError("max_attempts must be >= 1")
        if self.max_duration_s is not None and self.max_duration_s <= 0:
            raise PolicyValidationError("max_duration_s must be > 0")
        if not isinstance(self.on_attempt_failure, AttemptFailureMode):
            try:
                mode = AttemptFailureMode(self.on_attempt_failure)
            except ValueError as exc:
                raise PolicyValidationError(
                    f"on_attempt_failure must be one of: abort, tolerate (got {self.on_attempt_failure!r})"
                ) from exc
            object.__setattr__(self, "on_attempt_failure", mode)
