"""Output renderer: rich tables, JSON and YAML for batches and poll results."""

import dataclasses
import json
import logging
import sys
from collections.abc import Mapping, Sequence
from io import StringIO

import yaml
from rich.console import Console
from rich.table import Table

from dnsprobe.models import PollResult, ProbeBatch, TargetedProbe, ValidationFailure

logger = logging.getLogger(__name__)

FORMATS = ("table", "json", "yaml")


def render_batches(
    probes: Sequence[ProbeBatch | TargetedProbe],
    fmt: str,
    *,
    file: object | None = None,
    width: int | None = None,
) -> None:
    """Render compiled probes.

    Args:
        probes: Compiled batches and/or targeted probes.
        fmt: Output format: ``"table"``, ``"json"`` or ``"yaml"``.
        file: Writable file object for output (default: ``sys.stdout``).
        width: Explicit console width (default: auto-detect).

    Raises:
        ValueError: If *fmt* is unknown.
    """
    if fmt == "table":
        console = _console(file, width)
        for probe in probes:
            _render_probe_table(console, probe)
    elif fmt in ("json", "yaml"):
        _dump([_probe_to_dict(p) for p in probes], fmt, file)
    else:
        raise ValueError(f"Unknown output format: {fmt!r}")


def render_poll_result(
    result: PollResult,
    failures: Sequence[ValidationFailure],
    fmt: str,
    *,
    file: object | None = None,
    width: int | None = None,
) -> None:
    """Render a poll result with per-artifact validation status.

    Raises:
        ValueError: If *fmt* is unknown.
    """
    failed = {f.artifact_id: f for f in failures}
    if fmt == "table":
        console = _console(file, width)
        table = Table(title=f"{len(result.expected_ids)} artifacts, {result.ticks} fetch(es)")
        table.add_column("Artifact")
        table.add_column("Status")
        table.add_column("Payload")
        for artifact_id in result.expected_ids:
            status = failed[artifact_id].reason if artifact_id in failed else "ok"
            payload = result.observed.get(artifact_id, result.last_seen.get(artifact_id))
            table.add_row(artifact_id, status, _fmt(payload.strip() if payload else None))
        console.print(table)
        if failures:
            console.print(f"  {len(failures)} artifact(s) failed validation")
    elif fmt in ("json", "yaml"):
        payload = {
            "complete": result.complete,
            "ticks": result.ticks,
            "observed": result.observed,
            "last_seen": result.last_seen,
            "pending": result.pending,
            "failures": [dataclasses.asdict(f) for f in failures],
        }
        _dump(payload, fmt, file)
    else:
        raise ValueError(f"Unknown output format: {fmt!r}")


def render_scenarios(
    summaries: Mapping[str, str],
    fmt: str,
    *,
    file: object | None = None,
    width: int | None = None,
) -> None:
    """Render scenario names with their one-line summaries.

    Raises:
        ValueError: If *fmt* is unknown.
    """
    if fmt == "table":
        console = _console(file, width)
        table = Table(title=f"{len(summaries)} scenarios")
        table.add_column("Name")
        table.add_column("Checks")
        for name, summary in summaries.items():
            table.add_row(name, summary)
        console.print(table)
    elif fmt in ("json", "yaml"):
        _dump([{"name": n, "summary": s} for n, s in summaries.items()], fmt, file)
    else:
        raise ValueError(f"Unknown output format: {fmt!r}")


def render_manifest(manifest: Mapping, *, file: object | None = None) -> None:
    """Write a sandbox or service manifest as YAML."""
    out = file or sys.stdout
    yaml.safe_dump(dict(manifest), out, sort_keys=False, default_flow_style=False)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _render_probe_table(console: Console, probe: ProbeBatch | TargetedProbe) -> None:
    if isinstance(probe, TargetedProbe):
        table = Table(title=f"{probe.variant} — {probe.record_type} {probe.fqdn}")
        table.add_column("Artifact")
        table.add_row(probe.artifact_id)
    else:
        table = Table(title=f"{probe.variant} — {len(probe.artifact_ids)} artifacts")
        table.add_column("Artifact")
        table.add_column("Expected")
        for artifact_id in probe.artifact_ids:
            table.add_row(artifact_id, _fmt(probe.expectations.get(artifact_id)))
    console.print(table)
    console.print(probe.script, markup=False, highlight=False, soft_wrap=True)


def _probe_to_dict(probe: ProbeBatch | TargetedProbe) -> dict:
    data = dataclasses.asdict(probe)
    data["kind"] = "targeted" if isinstance(probe, TargetedProbe) else "batch"
    return data


def _dump(payload: object, fmt: str, file: object | None) -> None:
    out = file or sys.stdout
    if fmt == "json":
        json.dump(payload, out, indent=2, default=str)  # type: ignore[arg-type]
        out.write("\n")  # type: ignore[union-attr]
    else:
        yaml.safe_dump(payload, out, sort_keys=False)  # type: ignore[arg-type]


def _console(file: object | None, width: int | None) -> Console:
    return Console(file=file or sys.stdout, highlight=False, width=width)  # type: ignore[arg-type]


def _fmt(value: object) -> str:
    """Format a field value for table display.

    ``None`` becomes ``"—"``, everything else is stringified.
    """
    if value is None:
        return "—"
    return str(value)


def render_to_string(
    probes: Sequence[ProbeBatch | TargetedProbe], fmt: str, *, width: int = 200
) -> str:
    """Render compiled probes to a string instead of stdout, for tests."""
    buf = StringIO()
    render_batches(probes, fmt, file=buf, width=width)
    return buf.getvalue()
