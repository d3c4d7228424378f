"""Acceptance predicates for common convergence checks."""

from __future__ import annotations

from collections.abc import Callable, Mapping

from proxyprobe.core.errors import ProxyprobeError
from proxyprobe.core.model import (
    ACCEPT,
    Accept,
    ConfigSnapshot,
    Locality,
    PermanentFailure,
    Predicate,
    Retry,
    Verdict,
)


def has_cluster(name: str) -> Predicate:
    def _check(snapshot: ConfigSnapshot) -> Verdict:
        if snapshot.cluster(name) is None:
            return Retry(f"cluster '{name}' not present")
        return ACCEPT

    return _check


def has_listener(name: str) -> Predicate:
    def _check(snapshot: ConfigSnapshot) -> Verdict:
        if snapshot.listener(name) is None:
            return Retry(f"listener '{name}' not present")
        return ACCEPT

    return _check


def has_route(name: str) -> Predicate:
    def _check(snapshot: ConfigSnapshot) -> Verdict:
        if snapshot.route(name) is None:
            return Retry(f"route config '{name}' not present")
        return ACCEPT

    return _check


def observed_localities(snapshot: ConfigSnapshot, cluster: str) -> dict[Locality, int] | None:
    """Locality -> priority for a cluster's endpoint groups, None if the cluster is unknown.

    A locality listed more than once keeps the priority of its last group; use
    ``conflicting_priorities`` to find such localities.
    """
    groups = snapshot.endpoints(cluster)
    if groups is None:
        return None
    return {
        Locality.from_envoy(group.get("locality")): int(group.get("priority", 0))
        for group in groups
    }


def conflicting_priorities(snapshot: ConfigSnapshot, cluster: str) -> dict[Locality, list[int]]:
    """Localities that appear in several endpoint groups at different priorities."""
    seen: dict[Locality, set[int]] = {}
    for group in snapshot.endpoints(cluster) or ():
        locality = Locality.from_envoy(group.get("locality"))
        seen.setdefault(locality, set()).add(int(group.get("priority", 0)))
    return {locality: sorted(prios) for locality, prios in seen.items() if len(prios) > 1}


def cluster_localities(cluster: str, expected: Mapping[str | Locality, int]) -> Predicate:
    """Accept once ``cluster`` carries exactly the ``expected`` locality priorities."""
    wanted: dict[Locality, int] = {}
    problem = ""
    if not expected:
        problem = "expected localities must not be empty"
    for key, priority in expected.items():
        locality = key if isinstance(key, Locality) else Locality.parse(key)
        if priority < 0:
            problem = f"priority for locality '{locality}' must be >= 0, got {priority}"
        wanted[locality] = priority

    def _check(snapshot: ConfigSnapshot) -> Verdict:
        if problem:
            return PermanentFailure(problem)
        observed = observed_localities(snapshot, cluster)
        if observed is None:
            return Retry(f"cluster '{cluster}' not present")
        conflicts = conflicting_priorities(snapshot, cluster)
        if conflicts:
            locality, prios = next(iter(conflicts.items()))
            return Retry(
                f"cluster '{cluster}' lists locality '{locality or '<none>'}' at several priorities {prios}"
            )
        if observed != wanted:
            return Retry(
                f"cluster '{cluster}' localities {_describe(observed)} != expected {_describe(wanted)}"
            )
        return ACCEPT

    return _check


def all_of(*predicates: Predicate) -> Predicate:
    def _check(snapshot: ConfigSnapshot) -> Verdict:
        for predicate in predicates:
            verdict = predicate(snapshot)
            if not isinstance(verdict, Accept):
                return verdict
        return ACCEPT

    return _check


def from_check(check: Callable[[ConfigSnapshot], bool]) -> Predicate:
    """Adapt a boolean check.

    A failed assertion or ``ProxyprobeError`` raised by the check becomes a
    permanent failure carrying its message.
    """

    def _check(snapshot: ConfigSnapshot) -> Verdict:
        try:
            accepted = check(snapshot)
        except (AssertionError, ProxyprobeError) as exc:
            return PermanentFailure(str(exc))
        if accepted:
            return ACCEPT
        return Retry(f"{getattr(check, '__name__', 'check')} returned false")

    return _check


def _describe(localities: Mapping[Locality, int]) -> str:
    items = sorted(localities.items(), key=lambda item: (item[1], str(item[0])))
    return "{" + ", ".join(f"{loc or '<none>'}: {prio}" for loc, prio in items) + "}"
