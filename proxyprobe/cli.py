"""Typer CLI entrypoint."""

from __future__ import annotations

import json
import logging

import typer

from proxyprobe.core.errors import ProxyprobeError
from proxyprobe.core.model import PROXY_CONTAINER_NAME, Locality, ProxyTarget
from proxyprobe.core.predicates import all_of, cluster_localities, has_cluster, has_listener
from proxyprobe.core.service import ProbeService
from proxyprobe.transports.kubectl import KubectlExecutor

app = typer.Typer(help="Sidecar proxy introspection and config convergence checks")


@app.callback()
def main(
    ctx: typer.Context,
    context: str | None = typer.Option(None, "--context", help="kubectl context"),
    kubeconfig: str | None = typer.Option(None, "--kubeconfig", help="Path to kubeconfig"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log poll attempts"),
) -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    ctx.obj = {"context": context, "kubeconfig": kubeconfig}


def _build_service(ctx: typer.Context) -> ProbeService:
    options = ctx.obj or {}
    service = ProbeService(
        executor=KubectlExecutor(context=options.get("context"), kubeconfig=options.get("kubeconfig"))
    )
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    for warning in getattr(service, "runtime_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


def _parse_locality(value: str) -> tuple[Locality, int]:
    label, sep, priority = value.rpartition("=")
    if not sep or not label:
        raise typer.BadParameter(f"'{value}' is not in LOCALITY=PRIORITY form", param_hint="--locality")
    try:
        return Locality.parse(label), int(priority)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--locality") from None


@app.command("policies")
def list_policies(ctx: typer.Context) -> None:
    """List available retry policies."""
    try:
        service = _build_service(ctx)
        for policy_id, policy in service.list_policies():
            typer.echo(
                f"{policy_id}: interval={policy.interval_s}s max_attempts={policy.max_attempts} "
                f"max_duration={policy.max_duration_s}s on_attempt_failure={policy.on_attempt_failure.value}"
            )
    except ProxyprobeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("info")
def server_info(
    ctx: typer.Context,
    namespace: str,
    pod: str,
    container: str = typer.Option(PROXY_CONTAINER_NAME, "--container", help="Proxy container name"),
) -> None:
    """Show the proxy's server_info."""
    try:
        service = _build_service(ctx)
        info = service.server_info(ProxyTarget(namespace=namespace, pod=pod, container=container))
        typer.echo(f"Version: {info.version}")
        typer.echo(f"State: {info.state}")
        if info.uptime_current_epoch is not None:
            typer.echo(f"Uptime: {info.uptime_current_epoch} (all epochs {info.uptime_all_epochs})")
    except ProxyprobeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("config")
def config_dump(
    ctx: typer.Context,
    namespace: str,
    pod: str,
    container: str = typer.Option(PROXY_CONTAINER_NAME, "--container", help="Proxy container name"),
    section: str | None = typer.Option(None, "--section", help="Only this section, e.g. clusters"),
    as_json: bool = typer.Option(False, "--json", help="Print the decoded payload as JSON"),
) -> None:
    """Show the proxy's active configuration."""
    try:
        service = _build_service(ctx)
        snapshot = service.config_snapshot(ProxyTarget(namespace=namespace, pod=pod, container=container))
        if section is not None:
            found = snapshot.section(section)
            if found is None:
                available = ", ".join(s.kind for s in snapshot.sections)
                typer.echo(f"Error: No section '{section}'. Available: {available}", err=True)
                raise typer.Exit(code=1)
            payload = found.to_dict()
        else:
            payload = snapshot.to_dict()

        if as_json:
            typer.echo(json.dumps(payload, indent=2, sort_keys=True))
            return

        typer.echo(snapshot.summary())
        listings = {
            "listeners": snapshot.listeners,
            "clusters": snapshot.clusters,
            "routes": snapshot.routes,
        }
        for kind, items in listings.items():
            if section is not None and kind != section:
                continue
            names = sorted(item.get("name", "<unnamed>") for item in items())
            if names:
                typer.echo(f"  {kind}: {', '.join(names)}")
    except ProxyprobeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("wait")
def wait(
    ctx: typer.Context,
    namespace: str,
    pod: str,
    container: str = typer.Option(PROXY_CONTAINER_NAME, "--container", help="Proxy container name"),
    cluster: list[str] | None = typer.Option(None, "--cluster", help="Cluster that must be present"),
    listener: list[str] | None = typer.Option(None, "--listener", help="Listener that must be present"),
    locality_cluster: str | None = typer.Option(
        None, "--locality-cluster", help="Cluster whose endpoint localities are checked"
    ),
    locality: list[str] | None = typer.Option(
        None, "--locality", help="Expected REGION/ZONE/SUBZONE=PRIORITY (repeatable)"
    ),
    policy: str | None = typer.Option(None, "--policy", help="Retry policy ID"),
) -> None:
    """Block until the proxy's configuration contains the expected resources."""
    predicates = [has_cluster(name) for name in cluster or ()]
    predicates += [has_listener(name) for name in listener or ()]
    if locality:
        if not locality_cluster:
            raise typer.BadParameter("--locality requires --locality-cluster", param_hint="--locality")
        predicates.append(cluster_localities(locality_cluster, dict(_parse_locality(v) for v in locality)))
    if not predicates:
        raise typer.BadParameter("Nothing to wait for: pass --cluster, --listener or --locality")

    try:
        service = _build_service(ctx)
        snapshot = service.wait_for_config(
            ProxyTarget(namespace=namespace, pod=pod, container=container),
            all_of(*predicates),
            policy,
        )
        typer.echo(f"Converged: {snapshot.summary()}")
    except ProxyprobeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
