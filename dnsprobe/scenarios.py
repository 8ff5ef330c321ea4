"""Canned name-resolution scenarios built on the probe runner.

Each scenario compiles one batch per configured execution variant, runs
them side by side in a single sandbox and validates the results.  The
scenarios that need services create them through the cluster's
named-resource calls and delete them again afterwards.
"""

import inspect
import logging
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager

from dnsprobe.cluster import ClusterError, service_manifest
from dnsprobe.compiler import compile_probe, compile_targeted_probe
from dnsprobe.dns import host_fqdn, service_fqdn
from dnsprobe.errors import DeploymentError
from dnsprobe.models import HostAlias, PollResult, ProbeBatch, TargetedProbe
from dnsprobe.runner import ProbeContext, expectations_for, run_and_validate
from dnsprobe.sandbox import DEFAULT_HOSTNAME, DEFAULT_SUBDOMAIN, SandboxSpec, sandbox_for

logger = logging.getLogger(__name__)

REGULAR_SERVICE = "test-service-2"
HOSTNAME_SERVICE = "dns-test-service-2"
HOSTNAME_POD = "dns-querier-2"
EXTERNAL_NAME_SERVICE = "dns-test-service-3"

INJECTED_NAME = "notexistname"
INJECTED_ADDRESS = "1.1.1.1"
CUSTOM_SEARCH_DOMAIN = "resolv.conf.local"

_SERVICE_SELECTOR = {"dns-test": "true"}
_HOSTNAME_SELECTOR = {"dns-test-hostname-attribute": "true"}


def cluster_dns(ctx: ProbeContext, extra_names: Sequence[str] = ()) -> PollResult:
    """The cluster's API service resolves by its fully-qualified name.

    Args:
        extra_names: Additional names to require, e.g. ``"google.com"``
            on providers where external resolution is expected.
    """
    names = [service_fqdn("kubernetes", "default", ctx.cluster_domain), *extra_names]
    return _run_batches(ctx, names)


def partial_cluster_names(
    ctx: ProbeContext, extra_names: Sequence[str] = ()
) -> PollResult:
    """Partially-qualified names resolve through the search path."""
    names = ["kubernetes.default", "kubernetes.default.svc", *extra_names]
    return _run_batches(ctx, names, _own_host_entries(ctx))


def hosts_entries(ctx: ProbeContext) -> PollResult:
    """The sandbox's hosts file lists its own hostname and FQDN."""
    return _run_batches(ctx, [], _own_host_entries(ctx))


def services_dns(ctx: ProbeContext, partial: bool = False) -> PollResult:
    """Headless and regular services resolve by A, SRV and PTR records.

    Args:
        partial: Use partially-qualified names instead of FQDNs.
    """
    headless = service_manifest(
        DEFAULT_SUBDOMAIN, headless=True, selector=_SERVICE_SELECTOR
    )
    regular = service_manifest(REGULAR_SERVICE, selector=_SERVICE_SELECTOR)
    with _named_resources(ctx, headless, regular) as (_, created_regular):
        cluster_ip = created_regular.get("spec", {}).get("clusterIP", "")
        ns = ctx.namespace
        if partial:
            names = [
                DEFAULT_SUBDOMAIN,
                f"{DEFAULT_SUBDOMAIN}.{ns}",
                f"{DEFAULT_SUBDOMAIN}.{ns}.svc",
                f"_http._tcp.{DEFAULT_SUBDOMAIN}.{ns}.svc",
                f"_http._tcp.{REGULAR_SERVICE}.{ns}.svc",
            ]
        else:
            domain = ctx.cluster_domain
            names = [
                service_fqdn(DEFAULT_SUBDOMAIN, ns, domain),
                "_http._tcp." + service_fqdn(DEFAULT_SUBDOMAIN, ns, domain),
                "_http._tcp." + service_fqdn(REGULAR_SERVICE, ns, domain),
            ]
        return _run_batches(ctx, names, server_ip=cluster_ip, labels=_SERVICE_SELECTOR)


def _services_partial(ctx: ProbeContext) -> PollResult:
    """Headless and regular services resolve by partially-qualified names."""
    return services_dns(ctx, partial=True)


def pod_hostname(ctx: ProbeContext) -> PollResult:
    """A sandbox with hostname and subdomain sees both in its hosts file."""
    fqdn = host_fqdn(HOSTNAME_POD, HOSTNAME_SERVICE, ctx.namespace, ctx.cluster_domain)
    with _hostname_service(ctx):
        return _run_batches(
            ctx,
            [],
            [fqdn, HOSTNAME_POD],
            labels=_HOSTNAME_SELECTOR,
            hostname=HOSTNAME_POD,
            subdomain=HOSTNAME_SERVICE,
        )


def pod_subdomain(ctx: ProbeContext) -> PollResult:
    """A sandbox behind a headless service resolves by its subdomain FQDN."""
    fqdn = host_fqdn(HOSTNAME_POD, HOSTNAME_SERVICE, ctx.namespace, ctx.cluster_domain)
    with _hostname_service(ctx):
        return _run_batches(
            ctx,
            [fqdn],
            labels=_HOSTNAME_SELECTOR,
            hostname=HOSTNAME_POD,
            subdomain=HOSTNAME_SERVICE,
        )


def external_name(ctx: ProbeContext) -> list[PollResult]:
    """An ExternalName service answers with a CNAME that follows updates.

    Checks the CNAME to ``foo.example.com.``, changes the external name to
    ``bar.example.com`` and checks again, then turns the service into a
    ClusterIP service and expects its A record.  A fresh sandbox is used
    for every step.  Resolvers may keep serving the previous answer for a
    while after an update, so each step re-reads its artifacts until they
    hold the new value or the poll deadline passes.
    """
    manifest = service_manifest(EXTERNAL_NAME_SERVICE, external_name="foo.example.com")
    fqdn = service_fqdn(EXTERNAL_NAME_SERVICE, ctx.namespace, ctx.cluster_domain)
    results: list[PollResult] = []
    with _named_resources(ctx, manifest):
        results.append(_run_targeted(ctx, fqdn, "CNAME", "foo.example.com."))

        logger.info("Changing the externalName to bar.example.com")
        _update_service(ctx, EXTERNAL_NAME_SERVICE, _set_external_name("bar.example.com"))
        results.append(_run_targeted(ctx, fqdn, "CNAME", "bar.example.com."))

        logger.info("Changing the service to type=ClusterIP")
        updated = _update_service(ctx, EXTERNAL_NAME_SERVICE, _to_cluster_ip)
        cluster_ip = updated.get("spec", {}).get("clusterIP")
        if not cluster_ip:
            raise DeploymentError(
                f"Service {EXTERNAL_NAME_SERVICE} has no cluster IP after the update"
            )
        results.append(_run_targeted(ctx, fqdn, "A", cluster_ip))
    return results


def custom_nameserver(
    ctx: ProbeContext,
    server_ip: str | None = None,
    injected_name: str = INJECTED_NAME,
    search: str = CUSTOM_SEARCH_DOMAIN,
    expected: str = INJECTED_ADDRESS,
) -> PollResult:
    """A sandbox with ``dnsPolicy: None`` uses only its own resolver config.

    The sandbox's resolver points at *server_ip* with *search* as its only
    search domain and ``ndots:2``.  Looking up the bare *injected_name*
    with ``dig +search`` must then return the record *server_ip* serves for
    ``<injected_name>.<search>``, which the cluster resolver does not know.

    Args:
        server_ip: Nameserver to use; defaults to ``config.nameserver``.

    Raises:
        ValueError: If no nameserver was given or configured.
    """
    server_ip = server_ip or ctx.config.nameserver
    if not server_ip:
        raise ValueError(
            "The custom-nameserver scenario needs a nameserver IP "
            "(set 'nameserver' in the config)"
        )

    dns_config = {
        "nameservers": [server_ip],
        "searches": [search],
        "options": [{"name": "ndots", "value": "2"}],
    }
    logger.info(
        "Resolving %s through nameserver %s with search path %s",
        injected_name,
        server_ip,
        search,
    )
    return _run_targeted(
        ctx,
        injected_name,
        "A",
        expected,
        search=True,
        dns_policy="None",
        dns_config=dns_config,
    )


_SCENARIOS: dict[str, Callable[[ProbeContext], object]] = {
    "cluster": cluster_dns,
    "cluster-partial": partial_cluster_names,
    "hosts": hosts_entries,
    "services": services_dns,
    "services-partial": _services_partial,
    "pod-hostname": pod_hostname,
    "pod-subdomain": pod_subdomain,
    "external-name": external_name,
    "custom-nameserver": custom_nameserver,
}


def get_scenario(name: str) -> Callable[[ProbeContext], object]:
    """Look up a scenario by name.

    Raises:
        ValueError: If *name* is not a known scenario.
    """
    scenario = _SCENARIOS.get(name)
    if scenario is None:
        known = ", ".join(sorted(_SCENARIOS))
        raise ValueError(f"Unknown scenario {name!r}. Known scenarios: {known}")
    return scenario


def registered_scenarios() -> list[str]:
    """Return a sorted list of all scenario names."""
    return sorted(_SCENARIOS)


def scenario_summary(name: str) -> str:
    """First line of the scenario's docstring."""
    doc = inspect.getdoc(get_scenario(name)) or ""
    return doc.splitlines()[0] if doc else ""


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------


def _own_host_entries(ctx: ProbeContext) -> list[str]:
    fqdn = host_fqdn(DEFAULT_HOSTNAME, DEFAULT_SUBDOMAIN, ctx.namespace, ctx.cluster_domain)
    return [fqdn, DEFAULT_HOSTNAME]


def _compile_batches(
    ctx: ProbeContext,
    names: Sequence[str],
    host_entries: Sequence[str | HostAlias],
    server_ip: str,
) -> list[ProbeBatch]:
    cfg = ctx.config
    batches = [
        compile_probe(
            names,
            host_entries,
            server_ip,
            variant,
            ctx.namespace,
            cfg.cluster_domain,
            transports=cfg.transports,
            ipv6=cfg.ipv6,
            pod_record=cfg.pod_record,
            results_dir=cfg.results_dir,
        )
        for variant in cfg.variants
    ]
    for batch in batches:
        logger.info("Running these commands on %s: %s", batch.variant, batch.script)
    return batches


def _sandbox(
    ctx: ProbeContext, probes: Sequence[ProbeBatch | TargetedProbe], **overrides: object
) -> SandboxSpec:
    cfg = ctx.config
    return sandbox_for(
        probes,
        namespace=ctx.namespace,
        images=cfg.variant_images,
        webserver_image=cfg.webserver_image,
        results_dir=cfg.results_dir,
        **overrides,  # type: ignore[arg-type]
    )


def _run_batches(
    ctx: ProbeContext,
    names: Sequence[str],
    host_entries: Sequence[str | HostAlias] = (),
    server_ip: str = "",
    **sandbox_overrides: object,
) -> PollResult:
    batches = _compile_batches(ctx, names, host_entries, server_ip)
    sandbox = _sandbox(ctx, batches, **sandbox_overrides)
    return run_and_validate(ctx, sandbox, expectations_for(batches), "presence")


def _run_targeted(
    ctx: ProbeContext,
    fqdn: str,
    record_type: str,
    expected: str,
    search: bool = False,
    **sandbox_overrides: object,
) -> PollResult:
    cfg = ctx.config
    probes = [
        compile_targeted_probe(
            fqdn, record_type, variant, results_dir=cfg.results_dir, search=search
        )
        for variant in cfg.variants
    ]
    for probe in probes:
        logger.info("Running these commands on %s: %s", probe.variant, probe.script)
    sandbox = _sandbox(ctx, probes, **sandbox_overrides)
    return run_and_validate(ctx, sandbox, expectations_for(probes, expected), "targeted")


@contextmanager
def _named_resources(ctx: ProbeContext, *manifests: Mapping) -> Iterator[list[dict]]:
    """Create services for the duration of a ``with`` block."""
    created: list[str] = []
    resources: list[dict] = []
    try:
        for manifest in manifests:
            name = manifest["metadata"]["name"]
            logger.info("Creating test service %s", name)
            try:
                resources.append(ctx.cluster.create_named_resource(manifest))
            except ClusterError as exc:
                raise DeploymentError(f"Failed to create service {name}: {exc}") from exc
            created.append(name)
        yield resources
    finally:
        for name in reversed(created):
            logger.info("Deleting test service %s", name)
            try:
                ctx.cluster.delete_named_resource(name)
            except ClusterError as exc:
                logger.warning("Failed to delete service %s: %s", name, exc)


@contextmanager
def _hostname_service(ctx: ProbeContext) -> Iterator[list[dict]]:
    manifest = service_manifest(HOSTNAME_SERVICE, headless=True, selector=_HOSTNAME_SELECTOR)
    with _named_resources(ctx, manifest) as resources:
        yield resources


def _update_service(ctx: ProbeContext, name: str, mutator: Callable[[dict], None]) -> dict:
    try:
        return ctx.cluster.update_named_resource(name, mutator)
    except ClusterError as exc:
        raise DeploymentError(f"Failed to update service {name}: {exc}") from exc


def _set_external_name(target: str) -> Callable[[dict], None]:
    def mutate(service: dict) -> None:
        service.setdefault("spec", {})["externalName"] = target

    return mutate


def _to_cluster_ip(service: dict) -> None:
    spec = service.setdefault("spec", {})
    spec["type"] = "ClusterIP"
    spec.pop("externalName", None)
    spec["ports"] = [{"port": 80, "name": "http", "protocol": "TCP"}]
