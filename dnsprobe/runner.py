"""Deploy a probe sandbox, poll its artifacts and validate them."""

import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from dnsprobe.cluster import Cluster
from dnsprobe.config import ProbeConfig
from dnsprobe.models import PollResult, ProbeBatch, TargetedProbe, ValidationMode
from dnsprobe.poller import Clock, poll_artifacts
from dnsprobe.sandbox import SandboxSpec, sandbox_session
from dnsprobe.validator import check, validate_presence, validate_targeted

logger = logging.getLogger(__name__)


@dataclass
class ProbeContext:
    """State shared by every step of one probe run.

    Passed explicitly to the runner and scenarios instead of living in
    module globals, so concurrent runs never see each other's namespace
    or timings.

    Attributes:
        cluster: Cluster the sandbox and test services are created in.
        config: Loaded configuration.
        namespace: Namespace override; defaults to ``config.namespace``.
        clock: Time source for polling; ``None`` means the system clock.
        cancel: Event that stops polling early when set.
    """

    cluster: Cluster
    config: ProbeConfig = field(default_factory=ProbeConfig)
    namespace: str | None = None
    clock: Clock | None = None
    cancel: threading.Event | None = None

    def __post_init__(self) -> None:
        if self.namespace is None:
            self.namespace = self.config.namespace

    @property
    def cluster_domain(self) -> str:
        return self.config.cluster_domain


def expectations_for(
    probes: Iterable[ProbeBatch | TargetedProbe], expected: str | None = None
) -> dict[str, str | None]:
    """Merge artifact expectations of several compiled probes.

    Batches contribute their own expectations.  Targeted probes map
    their artifact to *expected*.
    """
    merged: dict[str, str | None] = {}
    for probe in probes:
        if isinstance(probe, TargetedProbe):
            merged[probe.artifact_id] = expected
        else:
            merged.update(probe.expectations)
    return merged


def run_and_validate(
    ctx: ProbeContext,
    sandbox: SandboxSpec,
    expected: Mapping[str, str | None],
    mode: ValidationMode = "presence",
) -> PollResult:
    """Deploy *sandbox*, wait for every expected artifact and validate it.

    Args:
        ctx: Probe context (cluster, timings, clock).
        sandbox: Sandbox running the compiled scripts.
        expected: Artifact identifier → expected payload (``None`` for
            "any non-empty content").  Its keys are what gets polled.
        mode: ``"presence"`` for name-resolution batches, ``"targeted"``
            for single-value assertions.  In targeted mode every
            expectation must be a string.

    Returns:
        The complete ``PollResult``.

    Raises:
        DeploymentError: If the sandbox could not be started.
        ProbeTimeoutError: If artifacts were still missing at the deadline.
            In targeted mode this includes artifacts that only ever held
            a wrong value; the message names the last value read.
        ProbeAbortedError: If ``ctx.cancel`` was set.
        ValidationError: With every mismatching artifact.
        ValueError: On an unknown *mode* or a targeted expectation of
            ``None``.
    """
    if mode not in ("presence", "targeted"):
        raise ValueError(f"Unknown validation mode {mode!r}")
    if mode == "targeted" and any(v is None for v in expected.values()):
        raise ValueError("Targeted validation needs an expected value for every artifact")

    accept = None
    if mode == "targeted":
        # Resolvers may still serve the previous answer for a while, so a
        # wrong value keeps the artifact pending instead of failing it.
        def accept(artifact_id: str, payload: str) -> bool:
            return payload.strip() == expected[artifact_id]

    cfg = ctx.config
    with sandbox_session(
        ctx.cluster, sandbox, ready_timeout=cfg.ready_timeout
    ) as handle:
        logger.info("Looking for results of %d probe(s)", len(expected))
        result = poll_artifacts(
            ctx.cluster,
            handle,
            list(expected),
            interval=cfg.poll_interval,
            timeout=cfg.poll_timeout,
            clock=ctx.clock,
            cancel=ctx.cancel,
            accept=accept,
        )

    if mode == "presence":
        failures = validate_presence(result, expected)
    else:
        failures = []
        for artifact_id, value in expected.items():
            failures.extend(validate_targeted(result, [artifact_id], value))  # type: ignore[arg-type]
    check(failures)

    logger.info("DNS probes using %s/%s succeeded", handle.namespace, handle.name)
    return result
