"""Exception hierarchy for compiling, deploying, polling and validating probes."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dnsprobe.models import PollResult, ValidationFailure


class ProbeError(Exception):
    """Base class for every error raised by dnsprobe."""


class CompilationError(ProbeError):
    """Raised when probe inputs are empty or malformed."""


class DeploymentError(ProbeError):
    """Raised when the sandbox cannot be created or never starts running."""


class TransientFetchError(ProbeError):
    """Raised by artifact readers for a single failed fetch.

    The poller treats it as "no progress this tick" and keeps going.
    """


class ProbeTimeoutError(ProbeError):
    """Raised when the poll deadline passes with artifacts still pending.

    Pending artifacts that did produce a rejected value are listed with
    the last value read, so a stale answer is told apart from no answer.

    Attributes:
        pending: Every artifact identifier that was never satisfied.
        result: The partial ``PollResult`` collected before the deadline.
    """

    def __init__(self, pending: list[str], result: PollResult) -> None:
        self.pending = list(pending)
        self.result = result
        message = (
            f"Timed out after {result.ticks} fetch(es) waiting for "
            f"{len(self.pending)} artifact(s): {', '.join(self.pending)}"
        )
        seen = [
            f"{i}={result.last_seen[i].strip()!r}"
            for i in self.pending
            if i in result.last_seen
        ]
        if seen:
            message += f" (last seen: {', '.join(seen)})"
        super().__init__(message)


class ProbeAbortedError(ProbeError):
    """Raised when the caller cancels polling before it finished.

    Attributes:
        pending: Artifact identifiers not yet satisfied at abort time.
        result: The partial ``PollResult`` collected so far.
    """

    def __init__(self, pending: list[str], result: PollResult) -> None:
        self.pending = list(pending)
        self.result = result
        super().__init__(
            f"Polling aborted with {len(self.pending)} artifact(s) pending"
        )


class ValidationError(ProbeError):
    """Raised when one or more artifacts fail validation.

    Attributes:
        failures: Every failing artifact, not just the first one.
    """

    def __init__(self, failures: list[ValidationFailure]) -> None:
        self.failures = list(failures)
        lines = "\n".join(f"  {f.describe()}" for f in self.failures)
        super().__init__(
            f"{len(self.failures)} artifact(s) failed validation:\n{lines}"
        )
