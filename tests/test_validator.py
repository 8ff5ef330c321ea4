"""Tests for presence and targeted validation."""

import pytest

from dnsprobe.errors import ValidationError
from dnsprobe.models import PollResult, ValidationFailure
from dnsprobe.validator import check, validate_presence, validate_targeted


def _result(observed: dict[str, str], *ids: str) -> PollResult:
    return PollResult(expected_ids=ids or tuple(observed), observed=dict(observed))


class TestValidatePresence:
    """validate_presence() checks non-empty payloads and exact aliases."""

    def test_any_payload_accepted_for_lookups(self) -> None:
        result = _result({"wheezy_udp@a": "OK\n", "jessie_udp@a": "anything"})
        assert validate_presence(result, {"wheezy_udp@a": None, "jessie_udp@a": None}) == []

    def test_missing(self) -> None:
        result = _result({"wheezy_udp@a": "OK"}, "wheezy_udp@a", "wheezy_udp@b")
        failures = validate_presence(result, {"wheezy_udp@a": None, "wheezy_udp@b": None})
        assert failures == [ValidationFailure("wheezy_udp@b", None, None, "missing")]

    def test_whitespace_only_is_missing(self) -> None:
        failures = validate_presence(_result({"x": " \n"}), {"x": None})
        assert failures[0].reason == "missing"

    def test_host_alias_must_match_exactly(self) -> None:
        result = _result(
            {
                "wheezy_hosts@dns-querier-1": "dns-querier-1\n",
                "jessie_hosts@dns-querier-1": "dns-querier-1.dns-test-service",
            }
        )
        failures = validate_presence(
            result,
            {
                "wheezy_hosts@dns-querier-1": "dns-querier-1",
                "jessie_hosts@dns-querier-1": "dns-querier-1",
            },
        )

        assert len(failures) == 1
        assert failures[0].artifact_id == "jessie_hosts@dns-querier-1"
        assert failures[0].reason == "mismatch"
        assert failures[0].observed == "dns-querier-1.dns-test-service"

    def test_reports_every_failure_in_order(self) -> None:
        failures = validate_presence(_result({}, "a", "b"), {"a": None, "b": "x"})
        assert [f.artifact_id for f in failures] == ["a", "b"]


class TestValidateTargeted:
    """Trailing dots are significant and matching is exact."""

    def test_cname_with_newline(self) -> None:
        result = _result({"wheezy_udp@svc": "foo.example.com.\n"})
        assert validate_targeted(result, ["wheezy_udp@svc"], "foo.example.com.") == []

    def test_missing_trailing_dot_fails(self) -> None:
        result = _result({"wheezy_udp@svc": "foo.example.com\n"})
        failures = validate_targeted(result, ["wheezy_udp@svc"], "foo.example.com.")

        assert len(failures) == 1
        assert failures[0].reason == "mismatch"
        assert failures[0].observed == "foo.example.com"

    def test_stale_value_fails(self) -> None:
        result = _result({"jessie_udp@svc": "foo.example.com."})
        failures = validate_targeted(result, ["jessie_udp@svc"], "bar.example.com.")
        assert failures[0].expected == "bar.example.com."

    def test_substring_is_not_a_match(self) -> None:
        result = _result({"a": "10.96.0.10\n10.96.0.11"})
        assert validate_targeted(result, ["a"], "10.96.0.1")[0].reason == "mismatch"

    def test_missing(self) -> None:
        failures = validate_targeted(_result({}, "a"), ["a"], "10.96.0.10")
        assert failures == [ValidationFailure("a", "10.96.0.10", None, "missing")]

    def test_checks_every_artifact(self) -> None:
        result = _result({"wheezy_udp@svc": "10.0.0.1", "jessie_udp@svc": "10.0.0.2"})
        failures = validate_targeted(result, ["wheezy_udp@svc", "jessie_udp@svc"], "10.0.0.1")
        assert [f.artifact_id for f in failures] == ["jessie_udp@svc"]

    def test_rejected_value_reported_as_mismatch(self) -> None:
        result = PollResult(expected_ids=("a",), last_seen={"a": "foo.example.com.\n"})
        failures = validate_targeted(result, ["a"], "bar.example.com.")

        assert failures == [
            ValidationFailure("a", "bar.example.com.", "foo.example.com.", "mismatch")
        ]


class TestCheck:
    """check() raises only when there are failures."""

    def test_no_failures(self) -> None:
        check([])

    def test_raises_with_all_failures(self) -> None:
        failures = [
            ValidationFailure("a", None, None, "missing"),
            ValidationFailure("b", "x.", "y.", "mismatch"),
        ]
        with pytest.raises(ValidationError) as excinfo:
            check(failures)

        assert excinfo.value.failures == failures
        assert "2 artifact(s) failed validation" in str(excinfo.value)
        assert "a: no result" in str(excinfo.value)
        assert "b: expected 'x.', got 'y.'" in str(excinfo.value)
