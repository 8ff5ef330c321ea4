"""Probe script compilers: batches of lookups and single targeted queries."""

import logging
from collections.abc import Iterable, Sequence

from dnsprobe.dns import is_srv_name, is_valid_name, is_valid_variant, reverse_addr
from dnsprobe.errors import CompilationError
from dnsprobe.models import (
    RECORD_TYPES,
    TRANSPORTS,
    HostAlias,
    ProbeBatch,
    TargetedProbe,
)
from dnsprobe.probes import Lookup, artifact_path
from dnsprobe.probes.dig import DigLookup
from dnsprobe.probes.hosts import HostsLookup
from dnsprobe.probes.short import ShortLookup

logger = logging.getLogger(__name__)

DEFAULT_RESULTS_DIR = "/results"

# One pass per second; the batch loop outlives any reasonable poll
# deadline, the targeted loop only needs to settle on one answer.
DEFAULT_BATCH_ITERATIONS = 600
DEFAULT_TARGETED_ITERATIONS = 30

POD_RECORD_LABEL = "PodARecord"


def compile_probe(
    names: Iterable[str] | None,
    host_entries: Iterable[str | HostAlias] | None,
    server_ip: str,
    variant: str,
    namespace: str,
    cluster_domain: str,
    *,
    transports: Sequence[str] = ("udp",),
    ipv6: bool = False,
    pod_record: bool = False,
    results_dir: str = DEFAULT_RESULTS_DIR,
    iterations: int = DEFAULT_BATCH_ITERATIONS,
) -> ProbeBatch:
    """Compile names, host aliases and an optional reverse lookup into a script.

    The result is a pure function of the arguments: compiling the same
    inputs twice gives the same script and the same artifact order, so
    the caller knows up front exactly which artifacts to poll for.

    Args:
        names: Names to resolve.  One lookup per transport is emitted for
            each; names starting with ``_`` are queried as SRV records.
        host_entries: Aliases checked through ``getent hosts``.  A bare
            string ``s`` means ``HostAlias(s, s)``.
        server_ip: When non-empty, the PTR record of this address is
            looked up once per transport.
        variant: Execution variant tag (e.g. ``"wheezy"``), embedded in
            every artifact identifier.
        namespace: Namespace of the sandbox; used for its pod A record.
        cluster_domain: Cluster DNS domain (e.g. ``"cluster.local"``).
        transports: Transports to query names over (``"udp"``, ``"tcp"``).
        ipv6: Query ``AAAA`` instead of ``A`` records.
        pod_record: Also look up the sandbox's own pod A record.
        results_dir: Directory inside the sandbox holding artifacts.
        iterations: Number of one-second passes the script makes.

    Returns:
        A ``ProbeBatch``.  With nothing to look up the script is a bare
        loop and ``artifact_ids`` is empty.

    Raises:
        CompilationError: If any input is empty where required or
            malformed, or two lookups would share an artifact.
    """
    if not is_valid_variant(variant):
        raise CompilationError(f"Invalid execution variant {variant!r}")
    _check_transports(transports)
    if iterations < 1:
        raise CompilationError(f"iterations must be positive, got {iterations}")

    address_type = "AAAA" if ipv6 else "A"
    lookups: list[Lookup] = []
    preamble: list[str] = []

    for name in names or ():
        _check_name(name, "name to resolve")
        record_type = "SRV" if is_srv_name(name) else address_type
        for transport in transports:
            lookups.append(DigLookup(name, record_type, transport))

    for entry in host_entries or ():
        alias = HostAlias.of(entry)
        _check_name(alias.name, "host entry")
        _check_name(alias.expected, "expected host alias")
        lookups.append(HostsLookup(alias))

    if pod_record:
        if not is_valid_name(namespace) or not is_valid_name(cluster_domain):
            raise CompilationError(
                "namespace and cluster_domain are required for the pod A record "
                f"(got {namespace!r}, {cluster_domain!r})"
            )
        preamble.append(_pod_record_assignment(namespace, cluster_domain, ipv6))
        for transport in transports:
            lookups.append(
                DigLookup("${podARec}", address_type, transport, label=POD_RECORD_LABEL)
            )

    if server_ip:
        try:
            ptr = reverse_addr(server_ip)
        except ValueError as exc:
            raise CompilationError(
                f"Unable to build a reverse record for {server_ip!r}: {exc}"
            ) from exc
        for transport in transports:
            lookups.append(
                DigLookup(ptr, "PTR", transport, label=f"{server_ip.strip()}_PTR")
            )

    artifact_ids: list[str] = []
    expectations: dict[str, str | None] = {}
    commands: list[str] = []
    for lookup in lookups:
        artifact_id = lookup.artifact_id(variant)
        if artifact_id in expectations:
            raise CompilationError(f"Duplicate artifact {artifact_id!r} in probe batch")
        if preamble and getattr(lookup, "label", None) == POD_RECORD_LABEL:
            # podARec has to be assigned before its first lookup.
            commands.extend(preamble)
            preamble = []
        artifact_ids.append(artifact_id)
        expectations[artifact_id] = lookup.expected
        commands.append(lookup.command(artifact_path(results_dir, artifact_id)))

    script = _loop(commands, iterations)
    logger.debug(
        "Compiled %s probe with %d artifact(s)", variant, len(artifact_ids)
    )
    return ProbeBatch(
        variant=variant,
        script=script,
        artifact_ids=tuple(artifact_ids),
        expectations=expectations,
    )


def compile_targeted_probe(
    fqdn: str,
    record_type: str,
    variant: str,
    *,
    results_dir: str = DEFAULT_RESULTS_DIR,
    iterations: int = DEFAULT_TARGETED_ITERATIONS,
    search: bool = False,
) -> TargetedProbe:
    """Compile a single typed query whose raw answer becomes the artifact.

    Args:
        fqdn: Name to query.
        record_type: One of ``RECORD_TYPES`` (case-insensitive).
        variant: Execution variant tag.
        results_dir: Directory inside the sandbox holding artifacts.
        iterations: Number of one-second passes; the artifact is rewritten
            on each pass.
        search: Expand *fqdn* through the sandbox resolver's search list
            (``dig +search``).  Used for bare names such as
            ``notexistname``.

    Raises:
        CompilationError: On an unknown record type or malformed input.
    """
    if not is_valid_variant(variant):
        raise CompilationError(f"Invalid execution variant {variant!r}")
    _check_name(fqdn, "targeted name")
    rtype = (record_type or "").upper()
    if rtype not in RECORD_TYPES:
        raise CompilationError(
            f"Unsupported record type {record_type!r}. "
            f"Supported: {', '.join(RECORD_TYPES)}"
        )
    if iterations < 1:
        raise CompilationError(f"iterations must be positive, got {iterations}")

    lookup = ShortLookup(fqdn, rtype, search)  # type: ignore[arg-type]
    artifact_id = lookup.artifact_id(variant)
    script = _loop([lookup.command(artifact_path(results_dir, artifact_id))], iterations)
    return TargetedProbe(
        fqdn=fqdn,
        record_type=rtype,  # type: ignore[arg-type]
        variant=variant,
        script=script,
        artifact_id=artifact_id,
    )


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------


def _check_name(name: str, what: str) -> None:
    if not isinstance(name, str) or not is_valid_name(name):
        raise CompilationError(f"Invalid {what}: {name!r}")


def _check_transports(transports: Sequence[str]) -> None:
    if not transports:
        raise CompilationError("At least one transport is required")
    unknown = [t for t in transports if t not in TRANSPORTS]
    if unknown:
        raise CompilationError(
            f"Unknown transport(s) {', '.join(map(repr, unknown))}. "
            f"Supported: {', '.join(TRANSPORTS)}"
        )
    if len(set(transports)) != len(transports):
        raise CompilationError(f"Duplicate transports in {list(transports)}")


def _pod_record_assignment(namespace: str, cluster_domain: str, ipv6: bool) -> str:
    """Shell assignment deriving the sandbox's own pod A-record name."""
    suffix = f"{namespace}.pod.{cluster_domain}"
    if ipv6:
        return f"podARec=\"$(hostname -i | sed -e 's/:/-/g').{suffix}\";"
    return (
        "podARec=$(hostname -i | awk -F. "
        f"'{{print $1\"-\"$2\"-\"$3\"-\"$4\".{suffix}\"}}');"
    )


def _loop(commands: list[str], iterations: int) -> str:
    body = " ".join([*commands, "sleep 1;"])
    return f"for i in $(seq 1 {iterations}); do {body} done"
