"""Sandbox deployer: pod manifest rendering, creation and readiness wait."""

import logging
import uuid
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field

from dnsprobe.cluster import Cluster, ClusterError, SandboxHandle
from dnsprobe.compiler import DEFAULT_RESULTS_DIR
from dnsprobe.errors import CompilationError, DeploymentError
from dnsprobe.models import ProbeBatch, TargetedProbe

logger = logging.getLogger(__name__)

DEFAULT_WEBSERVER_IMAGE = "gcr.io/kubernetes-e2e-test-images/test-webserver:1.0"
DEFAULT_VARIANT_IMAGES: dict[str, str] = {
    "wheezy": "gcr.io/kubernetes-e2e-test-images/dnsutils:1.1",
    "jessie": "gcr.io/kubernetes-e2e-test-images/jessie-dnsutils:1.0",
}
# Used for variants without an entry in ``SandboxSpec.images``.
DEFAULT_QUERIER_IMAGE = DEFAULT_VARIANT_IMAGES["wheezy"]

DEFAULT_HOSTNAME = "dns-querier-1"
DEFAULT_SUBDOMAIN = "dns-test-service"

_RESULTS_VOLUME = "results"


@dataclass
class SandboxSpec:
    """Everything needed to render the probe sandbox.

    Attributes:
        name: Sandbox (pod) name.
        namespace: Namespace to create it in.
        scripts: Execution variant → compiled script.  Every variant gets
            its own container; all of them share one results volume.
        hostname: Hostname of the sandbox, if any.
        subdomain: Subdomain (headless service name), if any.
        labels: Labels, e.g. to match a service selector.
        images: Execution variant → container image.
        webserver_image: Image serving the results volume over HTTP.
        results_dir: Mount path of the results volume.
        http_port: Port the web server listens on.
        dns_policy: Pod DNS policy, e.g. ``"None"`` to ignore the cluster
            resolver entirely.  Omitted from the manifest when unset.
        dns_config: Resolver settings with optional ``nameservers``,
            ``searches`` and ``options`` keys, rendered as ``dnsConfig``.
    """

    name: str
    namespace: str
    scripts: dict[str, str]
    hostname: str | None = DEFAULT_HOSTNAME
    subdomain: str | None = DEFAULT_SUBDOMAIN
    labels: dict[str, str] = field(default_factory=dict)
    images: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_VARIANT_IMAGES))
    webserver_image: str = DEFAULT_WEBSERVER_IMAGE
    results_dir: str = DEFAULT_RESULTS_DIR
    http_port: int = 80
    dns_policy: str | None = None
    dns_config: dict | None = None


def sandbox_for(
    probes: Iterable[ProbeBatch | TargetedProbe],
    *,
    namespace: str,
    name: str | None = None,
    hostname: str | None = DEFAULT_HOSTNAME,
    subdomain: str | None = DEFAULT_SUBDOMAIN,
    labels: Mapping[str, str] | None = None,
    images: Mapping[str, str] | None = None,
    webserver_image: str = DEFAULT_WEBSERVER_IMAGE,
    results_dir: str = DEFAULT_RESULTS_DIR,
    dns_policy: str | None = None,
    dns_config: Mapping | None = None,
) -> SandboxSpec:
    """Build a ``SandboxSpec`` running one compiled script per variant.

    Args:
        probes: Compiled batches or targeted probes, one per variant.
        namespace: Namespace to deploy into.
        name: Sandbox name; defaults to ``dns-test-<uuid4>``.

    Raises:
        CompilationError: If no probes are given, two share a variant,
            *dns_config* is malformed, or *dns_policy* is ``"None"``
            without any nameserver.
    """
    scripts: dict[str, str] = {}
    for probe in probes:
        if probe.variant in scripts:
            raise CompilationError(
                f"More than one script for execution variant {probe.variant!r}"
            )
        scripts[probe.variant] = probe.script
    if not scripts:
        raise CompilationError("A sandbox needs at least one compiled script")

    if dns_policy == "None" and not (dns_config or {}).get("nameservers"):
        raise CompilationError('dnsPolicy "None" needs at least one nameserver')

    merged_images = dict(DEFAULT_VARIANT_IMAGES)
    merged_images.update(images or {})
    return SandboxSpec(
        name=name or f"dns-test-{uuid.uuid4()}",
        namespace=namespace,
        scripts=scripts,
        hostname=hostname,
        subdomain=subdomain,
        labels=dict(labels or {}),
        images=merged_images,
        webserver_image=webserver_image,
        results_dir=results_dir,
        dns_policy=dns_policy,
        dns_config=_dns_config(dns_config) if dns_config is not None else None,
    )


def build_manifest(spec: SandboxSpec) -> dict:
    """Render *spec* as a pod manifest dict.

    The web server container serves the results volume; each variant
    runs its script with ``sh -c`` and writes into the same volume.
    """
    mounts = [{"name": _RESULTS_VOLUME, "mountPath": spec.results_dir}]
    containers: list[dict] = [
        {
            "name": "webserver",
            "image": spec.webserver_image,
            "ports": [{"name": "http", "containerPort": spec.http_port}],
            "volumeMounts": mounts,
        }
    ]
    for variant, script in spec.scripts.items():
        containers.append(
            {
                "name": f"{variant}-querier",
                "image": spec.images.get(variant, DEFAULT_QUERIER_IMAGE),
                "command": ["sh", "-c", escape_script(script)],
                "volumeMounts": mounts,
            }
        )

    metadata: dict = {"name": spec.name, "namespace": spec.namespace}
    if spec.labels:
        metadata["labels"] = dict(spec.labels)

    pod_spec: dict = {
        "volumes": [{"name": _RESULTS_VOLUME, "emptyDir": {}}],
        "containers": containers,
    }
    if spec.hostname:
        pod_spec["hostname"] = spec.hostname
    if spec.subdomain:
        pod_spec["subdomain"] = spec.subdomain
    if spec.dns_policy:
        pod_spec["dnsPolicy"] = spec.dns_policy
    if spec.dns_config is not None:
        pod_spec["dnsConfig"] = _dns_config(spec.dns_config)

    return {"apiVersion": "v1", "kind": "Pod", "metadata": metadata, "spec": pod_spec}


def escape_script(script: str) -> str:
    """Escape ``$`` as ``$$`` so ``$(VAR)`` expansion leaves the script alone."""
    return script.replace("$", "$$")


def deploy_sandbox(
    cluster: Cluster, spec: SandboxSpec, *, ready_timeout: float
) -> SandboxHandle:
    """Create the sandbox and wait for it to be running.

    A sandbox that was created but never became ready is deleted before
    the error is raised.

    Raises:
        DeploymentError: If creation is rejected or the sandbox is not
            running within *ready_timeout* seconds.
    """
    manifest = build_manifest(spec)
    logger.info("Creating probe sandbox %s/%s", spec.namespace, spec.name)
    try:
        handle = cluster.create_sandbox(manifest)
    except ClusterError as exc:
        raise DeploymentError(
            f"Failed to create sandbox {spec.namespace}/{spec.name}: {exc}"
        ) from exc

    try:
        cluster.wait_until_running(handle, ready_timeout)
    except (ClusterError, TimeoutError) as exc:
        delete_sandbox(cluster, handle)
        raise DeploymentError(
            f"Sandbox {handle.namespace}/{handle.name} was not running "
            f"within {ready_timeout:g}s: {exc}"
        ) from exc

    logger.info("Probe sandbox %s/%s is running", handle.namespace, handle.name)
    return handle


def delete_sandbox(cluster: Cluster, handle: SandboxHandle) -> None:
    """Delete the sandbox, logging rather than raising on failure."""
    logger.debug("Deleting probe sandbox %s/%s", handle.namespace, handle.name)
    try:
        cluster.delete_sandbox(handle)
    except ClusterError as exc:
        logger.warning(
            "Failed to delete sandbox %s/%s: %s", handle.namespace, handle.name, exc
        )


@contextmanager
def sandbox_session(
    cluster: Cluster, spec: SandboxSpec, *, ready_timeout: float
) -> Iterator[SandboxHandle]:
    """Deploy the sandbox for the duration of a ``with`` block."""
    handle = deploy_sandbox(cluster, spec, ready_timeout=ready_timeout)
    try:
        yield handle
    finally:
        delete_sandbox(cluster, handle)


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------

_DNS_CONFIG_KEYS = ("nameservers", "searches", "options")


def _dns_config(config: Mapping) -> dict:
    """Normalise a resolver config into the pod ``dnsConfig`` shape.

    Raises:
        CompilationError: On an unknown key or an option without a name.
    """
    unknown = sorted(set(config) - set(_DNS_CONFIG_KEYS))
    if unknown:
        raise CompilationError(f"Unknown dnsConfig key(s): {', '.join(unknown)}")

    rendered: dict = {}
    for key in ("nameservers", "searches"):
        if config.get(key):
            rendered[key] = [str(v) for v in config[key]]
    options = []
    for option in config.get("options") or ():
        if not option.get("name"):
            raise CompilationError(f"dnsConfig option without a name: {option!r}")
        entry = {"name": str(option["name"])}
        if option.get("value") is not None:
            entry["value"] = str(option["value"])
        options.append(entry)
    if options:
        rendered["options"] = options
    return rendered
