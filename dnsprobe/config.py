"""YAML configuration file loading."""

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from dnsprobe.compiler import DEFAULT_RESULTS_DIR
from dnsprobe.sandbox import DEFAULT_VARIANT_IMAGES, DEFAULT_WEBSERVER_IMAGE

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".dnsprobe"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.yaml"


@dataclass
class ProbeConfig:
    """Top-level configuration for dnsprobe.

    Every field has a default so the tool works without a config file.

    Attributes:
        namespace: Namespace sandboxes and test services are created in.
        cluster_domain: Cluster DNS domain.
        variants: Execution variants run side by side in each sandbox.
        transports: Transports every name is queried over.
        ipv6: Query AAAA instead of A records.
        pod_record: Also check the sandbox's own pod A record.
        poll_interval: Seconds between artifact fetches.
        poll_timeout: Seconds to wait for all artifacts.
        ready_timeout: Seconds to wait for the sandbox to be running.
        fetch_timeout: Per-request timeout of the HTTP artifact reader.
        results_dir: Artifact directory inside the sandbox.
        webserver_image: Image serving the results directory.
        variant_images: Execution variant → querier image.
        nameserver: Resolver the custom-nameserver scenario points the
            sandbox at.  Empty means that scenario has to be given one.
    """

    namespace: str = "default"
    cluster_domain: str = "cluster.local"
    variants: tuple[str, ...] = ("wheezy", "jessie")
    transports: tuple[str, ...] = ("udp",)
    ipv6: bool = False
    pod_record: bool = False
    poll_interval: float = 5.0
    poll_timeout: float = 600.0
    ready_timeout: float = 300.0
    fetch_timeout: float = 10.0
    results_dir: str = DEFAULT_RESULTS_DIR
    webserver_image: str = DEFAULT_WEBSERVER_IMAGE
    variant_images: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_VARIANT_IMAGES)
    )
    nameserver: str = ""


# Keys in the YAML file that map to ProbeConfig fields.
_YAML_KEY_TO_FIELD: dict[str, str] = {
    "namespace": "namespace",
    "cluster_domain": "cluster_domain",
    "variants": "variants",
    "transports": "transports",
    "ipv6": "ipv6",
    "pod_record": "pod_record",
    "poll_interval": "poll_interval",
    "poll_timeout": "poll_timeout",
    "ready_timeout": "ready_timeout",
    "fetch_timeout": "fetch_timeout",
    "results_dir": "results_dir",
    "webserver_image": "webserver_image",
    "variant_images": "variant_images",
    "nameserver": "nameserver",
}

_LIST_FIELDS = ("variants", "transports")
_TIMING_FIELDS = ("poll_interval", "poll_timeout", "ready_timeout", "fetch_timeout")


def load_config(path: Path | str | None = None) -> ProbeConfig:
    """Load configuration from a YAML file.

    Args:
        path: Explicit path to a YAML config file.  If ``None``, the
            default location (``~/.dnsprobe/config.yaml``) is tried.  If the
            default file doesn't exist, a ``ProbeConfig`` with all defaults
            is returned silently.

    Returns:
        A populated ``ProbeConfig`` instance.

    Raises:
        FileNotFoundError: If an explicit *path* was given but doesn't exist.
        ConfigError: If the file contains invalid YAML, has an unexpected
            top-level structure, or holds invalid values.
    """
    resolved = _resolve_path(path)

    if resolved is None:
        logger.debug("No config file found; using defaults")
        return ProbeConfig()

    logger.debug("Loading config from %s", resolved)
    text = resolved.read_text(encoding="utf-8")

    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {resolved}: {exc}") from exc

    if raw is None:
        # Empty file: all defaults.
        return ProbeConfig()

    if not isinstance(raw, dict):
        raise ConfigError(
            f"Expected a YAML mapping at the top level in {resolved}, "
            f"got {type(raw).__name__}"
        )

    return _build_config(raw, source=resolved)


class ConfigError(Exception):
    """Raised when a configuration file is malformed or unreadable."""


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------


def _resolve_path(path: Path | str | None) -> Path | None:
    """Return a concrete ``Path`` to read, or ``None`` if nothing to read.

    Raises:
        FileNotFoundError: If the caller supplied an explicit path that
            doesn't exist on disk.
    """
    if path is not None:
        p = Path(path).expanduser()
        if not p.is_file():
            raise FileNotFoundError(f"Config file not found: {p}")
        return p

    default = DEFAULT_CONFIG_PATH.expanduser()
    if default.is_file():
        return default
    return None


def _build_config(raw: dict, source: Path) -> ProbeConfig:
    """Map raw YAML dict to a ``ProbeConfig``, ignoring unknown keys."""
    kwargs: dict[str, object] = {}

    for yaml_key, field_name in _YAML_KEY_TO_FIELD.items():
        if yaml_key in raw:
            kwargs[field_name] = raw[yaml_key]

    unknown = set(raw) - set(_YAML_KEY_TO_FIELD)
    if unknown:
        logger.warning(
            "Ignoring unknown config keys in %s: %s",
            source,
            ", ".join(sorted(unknown)),
        )

    for name in _LIST_FIELDS:
        if name in kwargs:
            value = kwargs[name]
            if isinstance(value, str):
                value = [value]
            if not isinstance(value, list) or not value:
                raise ConfigError(f"{name} in {source} must be a non-empty list")
            kwargs[name] = tuple(str(v) for v in value)

    for name in _TIMING_FIELDS:
        if name in kwargs:
            value = kwargs[name]
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise ConfigError(
                    f"{name} in {source} must be a positive number, got {value!r}"
                )
            kwargs[name] = float(value)

    if "variant_images" in kwargs:
        images = kwargs["variant_images"]
        if not isinstance(images, dict):
            raise ConfigError(f"variant_images in {source} must be a mapping")
        merged = dict(DEFAULT_VARIANT_IMAGES)
        merged.update({str(k): str(v) for k, v in images.items()})
        kwargs["variant_images"] = merged

    if "nameserver" in kwargs:
        kwargs["nameserver"] = str(kwargs["nameserver"] or "")

    return ProbeConfig(**kwargs)
