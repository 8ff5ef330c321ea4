"""Tests for dnsprobe.models dataclasses."""

import pytest

from dnsprobe.models import HostAlias, PollResult, ProbeBatch, ValidationFailure


class TestHostAlias:
    """HostAlias coercion and immutability."""

    def test_of_string(self) -> None:
        alias = HostAlias.of("dns-querier-1")
        assert alias == HostAlias(name="dns-querier-1", expected="dns-querier-1")

    def test_of_alias_is_identity(self) -> None:
        alias = HostAlias("short", "short.svc.cluster.local")
        assert HostAlias.of(alias) is alias

    def test_frozen(self) -> None:
        alias = HostAlias.of("x")
        with pytest.raises(AttributeError):
            alias.name = "y"  # type: ignore[misc]


class TestProbeBatch:
    """ProbeBatch defaults."""

    def test_defaults(self) -> None:
        batch = ProbeBatch(variant="wheezy", script="true", artifact_ids=())
        assert batch.expectations == {}


class TestPollResult:
    """pending / complete are derived from observed."""

    def test_starts_pending(self) -> None:
        result = PollResult(expected_ids=("a", "b"))
        assert result.pending == ["a", "b"]
        assert not result.complete
        assert result.ticks == 0

    def test_pending_keeps_expected_order(self) -> None:
        result = PollResult(expected_ids=("a", "b", "c"), observed={"b": "OK"})
        assert result.pending == ["a", "c"]

    def test_complete(self) -> None:
        result = PollResult(expected_ids=("a",), observed={"a": "OK"})
        assert result.complete
        assert result.pending == []

    def test_empty_is_complete(self) -> None:
        assert PollResult(expected_ids=()).complete


class TestValidationFailure:
    """ValidationFailure.describe() output."""

    def test_describe_missing(self) -> None:
        failure = ValidationFailure("wheezy_udp@x", None, None, "missing")
        assert failure.describe() == "wheezy_udp@x: no result"

    def test_describe_mismatch(self) -> None:
        failure = ValidationFailure(
            "jessie_udp@svc", "foo.example.com.", "bar.example.com.", "mismatch"
        )
        text = failure.describe()
        assert "'foo.example.com.'" in text
        assert "'bar.example.com.'" in text
