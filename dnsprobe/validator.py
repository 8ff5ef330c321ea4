"""Validator: compare polled artifacts against their expected payloads."""

import logging
from collections.abc import Iterable, Mapping

from dnsprobe.errors import ValidationError
from dnsprobe.models import PollResult, ValidationFailure

logger = logging.getLogger(__name__)


def validate_presence(
    result: PollResult, expectations: Mapping[str, str | None]
) -> list[ValidationFailure]:
    """Check every artifact in *expectations* is present.

    Name lookups (expectation ``None``) only need a non-empty payload;
    resolver output formatting is not inspected.  Host aliases carry
    the alias string, and the stripped payload must equal it exactly.

    Returns:
        All failures, in *expectations* order.  Empty means valid.
    """
    failures: list[ValidationFailure] = []
    for artifact_id, expected in expectations.items():
        observed = _observed(result, artifact_id)
        if not observed:
            failures.append(ValidationFailure(artifact_id, expected, None, "missing"))
        elif expected is not None and observed != expected:
            failures.append(
                ValidationFailure(artifact_id, expected, observed, "mismatch")
            )
    return failures


def validate_targeted(
    result: PollResult, artifact_ids: Iterable[str], expected: str
) -> list[ValidationFailure]:
    """Check each targeted artifact holds exactly *expected*.

    Only surrounding whitespace is stripped from the payload.  The
    expected value's trailing dot is authoritative: ``"foo.example.com."``
    rejects ``"foo.example.com"``.  Matching is exact, never a substring.

    Returns:
        All failures, in *artifact_ids* order.
    """
    failures: list[ValidationFailure] = []
    for artifact_id in artifact_ids:
        observed = _observed(result, artifact_id)
        if not observed:
            failures.append(ValidationFailure(artifact_id, expected, None, "missing"))
        elif observed != expected:
            logger.info(
                "Artifact %s contains %r instead of %r", artifact_id, observed, expected
            )
            failures.append(
                ValidationFailure(artifact_id, expected, observed, "mismatch")
            )
    return failures


def check(failures: list[ValidationFailure]) -> None:
    """Raise ``ValidationError`` carrying *failures*, if there are any."""
    if failures:
        raise ValidationError(failures)


def _observed(result: PollResult, artifact_id: str) -> str | None:
    # A rejected value still beats "no result" in failure reports.
    payload = result.observed.get(artifact_id, result.last_seen.get(artifact_id))
    if payload is None:
        return None
    return payload.strip()
