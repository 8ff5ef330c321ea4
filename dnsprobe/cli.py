"""CLI entry point for the dnsprobe tool."""

import logging
import sys
from collections.abc import Callable

import click

from dnsprobe.cluster import HttpArtifactReader, SandboxHandle
from dnsprobe.compiler import compile_probe, compile_targeted_probe
from dnsprobe.config import ConfigError, ProbeConfig, load_config
from dnsprobe.errors import ProbeAbortedError, ProbeError, ProbeTimeoutError
from dnsprobe.models import (
    RECORD_TYPES,
    TRANSPORTS,
    PollResult,
    ProbeBatch,
    ValidationFailure,
)
from dnsprobe.output import (
    FORMATS,
    render_batches,
    render_manifest,
    render_poll_result,
    render_scenarios,
)
from dnsprobe.poller import poll_artifacts
from dnsprobe.sandbox import DEFAULT_HOSTNAME, DEFAULT_SUBDOMAIN, build_manifest, sandbox_for
from dnsprobe.scenarios import registered_scenarios, scenario_summary
from dnsprobe.validator import validate_presence, validate_targeted

logger = logging.getLogger(__name__)


@click.group()
@click.option(
    "--config",
    "-c",
    "config_path",
    default=None,
    type=click.Path(exists=False),
    help="Path to YAML config file (default: ~/.dnsprobe/config.yaml).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """Compile, run and check cluster DNS conformance probes."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    try:
        cfg = load_config(config_path)
    except (ConfigError, FileNotFoundError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    logger.debug("Config loaded: %s", cfg)
    ctx.obj = cfg


def _batch_options(func: Callable) -> Callable:
    """Options shared by ``compile`` and ``manifest``."""
    options = [
        click.option("--name", "-n", "names", multiple=True, help="Name to resolve (repeatable)."),
        click.option("--host", "hosts", multiple=True, help="Hosts-file entry to check (repeatable)."),
        click.option("--server-ip", default="", help="Also check the PTR record of this IP."),
        click.option(
            "--variant",
            "variants",
            multiple=True,
            help="Execution variant (repeatable, default from config).",
        ),
        click.option(
            "--transport",
            "transports",
            multiple=True,
            type=click.Choice(TRANSPORTS, case_sensitive=False),
            help="Transport to query over (repeatable, default from config).",
        ),
        click.option("--namespace", default=None, help="Namespace (default from config)."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@main.command("compile")
@_batch_options
@click.option(
    "--format",
    "-f",
    "output_format",
    default="table",
    type=click.Choice(FORMATS, case_sensitive=False),
    show_default=True,
    help="Output format.",
)
@click.pass_obj
def compile_cmd(
    cfg: ProbeConfig,
    names: tuple[str, ...],
    hosts: tuple[str, ...],
    server_ip: str,
    variants: tuple[str, ...],
    transports: tuple[str, ...],
    namespace: str | None,
    output_format: str,
) -> None:
    """Compile a probe batch and print its script and artifacts."""
    batches = _compile(cfg, names, hosts, server_ip, variants, transports, namespace)
    render_batches(batches, output_format.lower())


@main.command("targeted")
@click.argument("fqdn")
@click.option(
    "--type",
    "-t",
    "record_type",
    default="A",
    type=click.Choice(RECORD_TYPES, case_sensitive=False),
    show_default=True,
    help="Record type to query.",
)
@click.option("--variant", "variants", multiple=True, help="Execution variant (repeatable).")
@click.option(
    "--format",
    "-f",
    "output_format",
    default="table",
    type=click.Choice(FORMATS, case_sensitive=False),
    show_default=True,
    help="Output format.",
)
@click.pass_obj
def targeted_cmd(
    cfg: ProbeConfig,
    fqdn: str,
    record_type: str,
    variants: tuple[str, ...],
    output_format: str,
) -> None:
    """Compile a single typed query for FQDN."""
    try:
        probes = [
            compile_targeted_probe(fqdn, record_type, variant, results_dir=cfg.results_dir)
            for variant in variants or cfg.variants
        ]
    except ProbeError as exc:
        _fail(exc)
    render_batches(probes, output_format.lower())


@main.command("manifest")
@_batch_options
@click.option("--sandbox-name", default=None, help="Sandbox name (default: dns-test-<uuid>).")
@click.option("--hostname", default=DEFAULT_HOSTNAME, show_default=True)
@click.option("--subdomain", default=DEFAULT_SUBDOMAIN, show_default=True)
@click.option("--label", "labels", multiple=True, help="Sandbox label as key=value (repeatable).")
@click.pass_obj
def manifest_cmd(
    cfg: ProbeConfig,
    names: tuple[str, ...],
    hosts: tuple[str, ...],
    server_ip: str,
    variants: tuple[str, ...],
    transports: tuple[str, ...],
    namespace: str | None,
    sandbox_name: str | None,
    hostname: str,
    subdomain: str,
    labels: tuple[str, ...],
) -> None:
    """Compile a probe batch and print the sandbox manifest as YAML."""
    batches = _compile(cfg, names, hosts, server_ip, variants, transports, namespace)
    try:
        spec = sandbox_for(
            batches,
            namespace=namespace or cfg.namespace,
            name=sandbox_name,
            hostname=hostname or None,
            subdomain=subdomain or None,
            labels=_parse_labels(labels),
            images=cfg.variant_images,
            webserver_image=cfg.webserver_image,
            results_dir=cfg.results_dir,
        )
    except ProbeError as exc:
        _fail(exc)
    render_manifest(build_manifest(spec))


@main.command("scenarios")
@click.option(
    "--format",
    "-f",
    "output_format",
    default="table",
    type=click.Choice(FORMATS, case_sensitive=False),
    show_default=True,
    help="Output format.",
)
def scenarios_cmd(output_format: str) -> None:
    """List the built-in conformance scenarios."""
    summaries = {name: scenario_summary(name) for name in registered_scenarios()}
    render_scenarios(summaries, output_format.lower())


@main.command("poll")
@click.option("--url", required=True, help="Base URL of the sandbox's artifact web server.")
@click.option("--id", "artifact_ids", multiple=True, required=True, help="Artifact to wait for (repeatable).")
@click.option("--expect", default=None, help="Exact payload every artifact must hold.")
@click.option("--pod", default="", help="Sandbox name, substituted for {name} in --url.")
@click.option("--namespace", default=None, help="Namespace, substituted for {namespace} in --url.")
@click.option("--interval", type=float, default=None, help="Seconds between fetches.")
@click.option("--timeout", type=float, default=None, help="Overall deadline in seconds.")
@click.option(
    "--format",
    "-f",
    "output_format",
    default="table",
    type=click.Choice(FORMATS, case_sensitive=False),
    show_default=True,
    help="Output format.",
)
@click.pass_obj
def poll_cmd(
    cfg: ProbeConfig,
    url: str,
    artifact_ids: tuple[str, ...],
    expect: str | None,
    pod: str,
    namespace: str | None,
    interval: float | None,
    timeout: float | None,
    output_format: str,
) -> None:
    """Poll a running sandbox for artifacts and validate them."""
    reader = HttpArtifactReader(url, results_dir=cfg.results_dir, timeout=cfg.fetch_timeout)
    handle = SandboxHandle(name=pod, namespace=namespace or cfg.namespace)
    accept = None
    if expect is not None:
        def accept(artifact_id: str, payload: str) -> bool:
            return payload.strip() == expect

    try:
        result = poll_artifacts(
            reader,
            handle,
            list(artifact_ids),
            interval=interval or cfg.poll_interval,
            timeout=timeout if timeout is not None else cfg.poll_timeout,
            accept=accept,
        )
    except (ProbeTimeoutError, ProbeAbortedError) as exc:
        click.echo(f"Error: {exc}", err=True)
        render_poll_result(
            exc.result, _poll_failures(exc.result, artifact_ids, expect), output_format.lower()
        )
        sys.exit(1)
    except ValueError as exc:
        _fail(exc)

    failures = _poll_failures(result, artifact_ids, expect)
    render_poll_result(result, failures, output_format.lower())
    if failures:
        sys.exit(1)


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------


def _compile(
    cfg: ProbeConfig,
    names: tuple[str, ...],
    hosts: tuple[str, ...],
    server_ip: str,
    variants: tuple[str, ...],
    transports: tuple[str, ...],
    namespace: str | None,
) -> list[ProbeBatch]:
    try:
        return [
            compile_probe(
                names,
                hosts,
                server_ip,
                variant,
                namespace or cfg.namespace,
                cfg.cluster_domain,
                transports=tuple(t.lower() for t in transports) or cfg.transports,
                ipv6=cfg.ipv6,
                pod_record=cfg.pod_record,
                results_dir=cfg.results_dir,
            )
            for variant in variants or cfg.variants
        ]
    except ProbeError as exc:
        _fail(exc)


def _poll_failures(
    result: PollResult, artifact_ids: tuple[str, ...], expect: str | None
) -> list[ValidationFailure]:
    if expect is None:
        return validate_presence(result, dict.fromkeys(artifact_ids))
    return validate_targeted(result, artifact_ids, expect)


def _parse_labels(labels: tuple[str, ...]) -> dict[str, str]:
    parsed: dict[str, str] = {}
    for label in labels:
        key, sep, value = label.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected key=value, got {label!r}", param_hint="--label")
        parsed[key] = value
    return parsed


def _fail(exc: Exception) -> None:
    click.echo(f"Error: {exc}", err=True)
    sys.exit(1)
