"""Data models: HostAlias, ProbeBatch, TargetedProbe, PollResult dataclasses."""

from dataclasses import dataclass, field
from typing import Literal

RecordType = Literal["A", "AAAA", "CNAME", "SRV", "PTR", "TXT"]
Transport = Literal["udp", "tcp"]
ValidationMode = Literal["presence", "targeted"]

RECORD_TYPES: tuple[str, ...] = ("A", "AAAA", "CNAME", "SRV", "PTR", "TXT")
TRANSPORTS: tuple[str, ...] = ("udp", "tcp")


@dataclass(frozen=True)
class HostAlias:
    """A name looked up through the sandbox's hosts database.

    Attributes:
        name: Name passed to ``getent hosts``.
        expected: Alias or FQDN that must appear among the names returned
            for *name*.  Written verbatim to the artifact when it does.
    """

    name: str
    expected: str

    @classmethod
    def of(cls, entry: "str | HostAlias") -> "HostAlias":
        """Coerce a bare string entry into ``HostAlias(entry, entry)``."""
        if isinstance(entry, HostAlias):
            return entry
        return cls(name=entry, expected=entry)


@dataclass(frozen=True)
class ProbeBatch:
    """A compiled probe script for one execution variant.

    Attributes:
        variant: Execution variant the script runs under (e.g. "wheezy").
        script: Shell script text, run with ``sh -c`` inside the sandbox.
        artifact_ids: Artifact identifiers the script produces, in
            compilation order.
        expectations: Artifact identifier → expected payload.  ``None``
            means any non-empty payload is acceptable.
    """

    variant: str
    script: str
    artifact_ids: tuple[str, ...]
    expectations: dict[str, str | None] = field(default_factory=dict)


@dataclass(frozen=True)
class TargetedProbe:
    """A single typed query bound to exactly one artifact.

    Attributes:
        fqdn: Name being queried.
        record_type: Record type requested (``A``, ``CNAME``, ...).
        variant: Execution variant the script runs under.
        script: Shell script text.
        artifact_id: The one artifact the script keeps rewriting.
    """

    fqdn: str
    record_type: RecordType
    variant: str
    script: str
    artifact_id: str


@dataclass
class PollResult:
    """Artifacts observed by the poller.

    ``observed`` only ever grows: once an artifact has been accepted it
    stays satisfied and is never fetched again.

    Attributes:
        expected_ids: Every artifact identifier that was polled for, in
            the caller's order.
        observed: Artifact identifier → payload for satisfied artifacts.
        last_seen: Artifact identifier → most recent non-empty payload,
            accepted or not.
        ticks: Number of fetch attempts made.
    """

    expected_ids: tuple[str, ...]
    observed: dict[str, str] = field(default_factory=dict)
    last_seen: dict[str, str] = field(default_factory=dict)
    ticks: int = 0

    @property
    def pending(self) -> list[str]:
        """Identifiers not yet satisfied, in ``expected_ids`` order."""
        return [i for i in self.expected_ids if i not in self.observed]

    @property
    def complete(self) -> bool:
        return not self.pending


@dataclass(frozen=True)
class ValidationFailure:
    """One artifact that failed validation.

    Attributes:
        artifact_id: The failing artifact.
        expected: Expected payload, or ``None`` when any content would do.
        observed: Observed payload, or ``None`` when nothing was produced.
        reason: Short machine-friendly reason (``"missing"``,
            ``"mismatch"``).
    """

    artifact_id: str
    expected: str | None
    observed: str | None
    reason: str

    def describe(self) -> str:
        """Render a one-line human-readable description."""
        if self.reason == "missing":
            return f"{self.artifact_id}: no result"
        return (
            f"{self.artifact_id}: expected {self.expected!r}, "
            f"got {self.observed!r}"
        )
