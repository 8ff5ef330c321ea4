"""Result poller: fetch pending artifacts until all are present or time runs out."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Protocol

from dnsprobe.cluster import ArtifactReader, SandboxHandle
from dnsprobe.errors import ProbeAbortedError, ProbeTimeoutError, TransientFetchError
from dnsprobe.models import PollResult

logger = logging.getLogger(__name__)

AcceptFn = Callable[[str, str], bool]


class Clock(Protocol):
    """Time source for the poll loop."""

    def now(self) -> float:
        """Return a monotonic timestamp in seconds."""
        ...

    def sleep(self, seconds: float) -> None: ...


class SystemClock:
    """Wall-clock implementation backed by ``time.monotonic``."""

    def now(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


class PollState:
    """Pending / satisfied bookkeeping for one probe batch.

    Only ``apply`` mutates the state, and it only ever moves artifacts
    from pending to satisfied.

    Args:
        artifact_ids: Artifacts to wait for.
        accept: Optional ``accept(artifact_id, payload)`` predicate.  A
            non-empty payload it rejects is remembered in ``last_seen``
            but leaves the artifact pending, so it is fetched again.
    """

    def __init__(
        self, artifact_ids: Iterable[str], accept: AcceptFn | None = None
    ) -> None:
        # dict.fromkeys keeps the caller's order while dropping repeats.
        self.result = PollResult(expected_ids=tuple(dict.fromkeys(artifact_ids)))
        self.accept = accept

    @property
    def pending(self) -> list[str]:
        return self.result.pending

    @property
    def done(self) -> bool:
        return self.result.complete

    def apply(self, contents: Mapping[str, str]) -> list[str]:
        """Record every pending artifact with an acceptable payload.

        Entries for satisfied or unknown artifacts are ignored.

        Returns:
            The artifacts satisfied by this call.
        """
        newly: list[str] = []
        for artifact_id in self.pending:
            payload = contents.get(artifact_id)
            if not payload or not payload.strip():
                continue
            self.result.last_seen[artifact_id] = payload
            if self.accept is not None and not self.accept(artifact_id, payload):
                logger.debug("Not accepting %s yet: %r", artifact_id, payload.strip())
                continue
            self.result.observed[artifact_id] = payload
            newly.append(artifact_id)
        return newly


def poll_artifacts(
    reader: ArtifactReader,
    handle: SandboxHandle,
    artifact_ids: Sequence[str],
    *,
    interval: float,
    timeout: float,
    clock: Clock | None = None,
    cancel: threading.Event | None = None,
    accept: AcceptFn | None = None,
) -> PollResult:
    """Poll *reader* until every artifact has an acceptable payload.

    The first fetch happens immediately.  Each tick makes one batched
    ``fetch_artifacts`` call for the artifacts still pending, then sleeps
    *interval* seconds (never past the deadline).  A ``TransientFetchError``
    only costs that tick.

    Args:
        reader: Artifact source, usually the cluster or an
            ``HttpArtifactReader``.
        handle: Sandbox to read from.
        artifact_ids: Every artifact expected from the sandbox.
        interval: Seconds between fetches.
        timeout: Overall deadline in seconds.
        clock: Time source; defaults to ``SystemClock``.
        cancel: Event the caller can set to stop polling early.
        accept: Optional ``accept(artifact_id, payload)`` predicate.
            Without one any non-empty payload satisfies its artifact.
            With one, rejected payloads keep the artifact pending until
            a later fetch returns an accepted value or time runs out.

    Returns:
        A complete ``PollResult`` whose ``observed`` keys equal the
        expected artifact identifiers.

    Raises:
        ProbeTimeoutError: If the deadline passes first.  Lists every
            artifact still pending.
        ProbeAbortedError: If *cancel* was set.
        ValueError: On a non-positive *interval* or negative *timeout*.
    """
    if interval <= 0:
        raise ValueError(f"interval must be positive, got {interval}")
    if timeout < 0:
        raise ValueError(f"timeout must not be negative, got {timeout}")

    clock = clock or SystemClock()
    state = PollState(artifact_ids, accept)
    deadline = clock.now() + timeout

    while not state.done:
        if cancel is not None and cancel.is_set():
            logger.info("Polling %s/%s aborted", handle.namespace, handle.name)
            raise ProbeAbortedError(state.pending, state.result)

        state.result.ticks += 1
        try:
            contents = reader.fetch_artifacts(handle, state.pending)
        except TransientFetchError as exc:
            logger.warning("Fetch #%d failed, will retry: %s", state.result.ticks, exc)
        else:
            newly = state.apply(contents)
            if newly:
                logger.debug("Satisfied: %s", ", ".join(newly))

        if state.done:
            break

        remaining = deadline - clock.now()
        if remaining <= 0:
            logger.info(
                "Lookups using %s/%s failed for: %s",
                handle.namespace,
                handle.name,
                ", ".join(state.pending),
            )
            raise ProbeTimeoutError(state.pending, state.result)

        logger.debug(
            "Waiting for %d artifact(s): %s", len(state.pending), ", ".join(state.pending)
        )
        clock.sleep(min(interval, remaining))

    logger.info(
        "All %d artifact(s) present in %s/%s after %d fetch(es)",
        len(state.result.expected_ids),
        handle.namespace,
        handle.name,
        state.result.ticks,
    )
    return state.result
