"""Cluster contracts, service manifests and the HTTP artifact reader.

Creating pods and services is left to whatever cluster client the caller
already has; this module only pins down the calls dnsprobe makes.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import quote

import httpx

from dnsprobe.errors import TransientFetchError

logger = logging.getLogger(__name__)


class ClusterError(Exception):
    """Raised by cluster implementations when a resource call fails."""


@dataclass(frozen=True)
class SandboxHandle:
    """Identifies a deployed sandbox.

    Attributes:
        name: Sandbox (pod) name.
        namespace: Namespace the sandbox lives in.
    """

    name: str
    namespace: str


class ArtifactReader(Protocol):
    """Anything that can read artifacts out of a running sandbox."""

    def fetch_artifacts(
        self, handle: SandboxHandle, artifact_ids: Sequence[str]
    ) -> dict[str, str]:
        """Return the current content of each requested artifact.

        Absent or empty entries mean "not produced yet".

        Raises:
            TransientFetchError: On a transport failure.
        """
        ...


class Cluster(ArtifactReader, Protocol):
    """The cluster operations the probe runner depends on.

    All methods raise ``ClusterError`` on failure, except
    ``fetch_artifacts`` which raises ``TransientFetchError``.
    """

    def create_sandbox(self, manifest: Mapping) -> SandboxHandle: ...

    def delete_sandbox(self, handle: SandboxHandle) -> None: ...

    def wait_until_running(self, handle: SandboxHandle, timeout: float) -> None: ...

    def create_named_resource(self, manifest: Mapping) -> dict: ...

    def update_named_resource(
        self, name: str, mutator: Callable[[dict], None]
    ) -> dict: ...

    def delete_named_resource(self, name: str) -> None: ...


def service_manifest(
    name: str,
    *,
    external_name: str = "",
    headless: bool = False,
    selector: Mapping[str, str] | None = None,
) -> dict:
    """Build a service manifest for a name under test.

    Args:
        name: Service name.
        external_name: When set, an ``ExternalName`` service aliasing this
            name; otherwise a service exposing ``http`` on port 80.
        headless: Set ``clusterIP: None``.
        selector: Pod label selector.

    Returns:
        A manifest dict ready for ``Cluster.create_named_resource``.
    """
    spec: dict = {}
    if selector:
        spec["selector"] = dict(selector)
    if external_name:
        spec["type"] = "ExternalName"
        spec["externalName"] = external_name
    else:
        spec["ports"] = [{"port": 80, "name": "http", "protocol": "TCP"}]
    if headless:
        spec["clusterIP"] = "None"
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": name},
        "spec": spec,
    }


class HttpArtifactReader:
    """Read artifacts from the sandbox's web server over HTTP.

    Each ``fetch_artifacts`` call is one batch: a single ``httpx.Client``
    is used for every pending artifact.  A 404 means the artifact has not
    been written yet; any other HTTP or transport error aborts the batch
    with ``TransientFetchError``.

    Args:
        base_url: Root URL of the sandbox's web server.  ``{namespace}``
            and ``{name}`` are filled in from the sandbox handle, so an
            API-server proxy URL such as
            ``https://api:6443/api/v1/namespaces/{namespace}/pods/{name}/proxy``
            works as well as a direct ``http://10.0.0.7``.
        results_dir: Path under *base_url* that serves the results volume.
        timeout: Per-request timeout in seconds.
        headers: Extra request headers (e.g. ``Authorization``).
        client: Pre-built client to use instead of one per batch.
    """

    def __init__(
        self,
        base_url: str,
        *,
        results_dir: str = "results",
        timeout: float = 10.0,
        headers: Mapping[str, str] | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.results_dir = results_dir.strip("/")
        self.timeout = timeout
        self.headers = dict(headers or {})
        self._client = client

    def url_for(self, handle: SandboxHandle, artifact_id: str) -> str:
        root = self.base_url.format(name=handle.name, namespace=handle.namespace)
        return f"{root}/{self.results_dir}/{quote(artifact_id, safe='@:')}"

    def fetch_artifacts(
        self, handle: SandboxHandle, artifact_ids: Sequence[str]
    ) -> dict[str, str]:
        if self._client is not None:
            return self._fetch(self._client, handle, artifact_ids)
        with httpx.Client(timeout=self.timeout, headers=self.headers) as client:
            return self._fetch(client, handle, artifact_ids)

    def _fetch(
        self,
        client: httpx.Client,
        handle: SandboxHandle,
        artifact_ids: Sequence[str],
    ) -> dict[str, str]:
        contents: dict[str, str] = {}
        for artifact_id in artifact_ids:
            url = self.url_for(handle, artifact_id)
            try:
                response = client.get(url)
                if response.status_code == httpx.codes.NOT_FOUND:
                    continue
                response.raise_for_status()
            except httpx.HTTPError as exc:
                raise TransientFetchError(
                    f"Unable to read {artifact_id} from {handle.namespace}/"
                    f"{handle.name}: {exc}"
                ) from exc
            contents[artifact_id] = response.text
        logger.debug(
            "Fetched %d/%d artifact(s) from %s/%s",
            len(contents),
            len(artifact_ids),
            handle.namespace,
            handle.name,
        )
        return contents
