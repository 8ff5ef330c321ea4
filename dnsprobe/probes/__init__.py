"""Lookup building blocks and the abstract Lookup base class.

A probe script is a loop over a list of lookups.  Each lookup is one
shell command that, once it succeeds, writes exactly one artifact file
into the sandbox's results directory.
"""

from __future__ import annotations

import shlex
from abc import ABC, abstractmethod


class Lookup(ABC):
    """Abstract base class for a single artifact-producing lookup."""

    #: Payload the artifact must hold; ``None`` accepts any content.
    expected: str | None = None

    @abstractmethod
    def artifact_id(self, variant: str) -> str:
        """Return the artifact identifier this lookup writes under *variant*.

        Identifiers encode both the query and the variant so that two
        variants running in the same sandbox never share a file.
        """

    @abstractmethod
    def command(self, path: str) -> str:
        """Return the shell command (``;``-terminated) writing to *path*."""


def artifact_path(results_dir: str, artifact_id: str) -> str:
    """Shell-quoted path of *artifact_id* inside *results_dir*."""
    return shlex.quote(f"{results_dir.rstrip('/')}/{artifact_id}")


def record_check(lookup: str, path: str) -> str:
    """Command that writes ``OK`` to *path* when *lookup* prints anything."""
    return f'check="$({lookup})" && test -n "$check" && echo OK > {path};'
