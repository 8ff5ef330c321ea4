"""Hosts-database lookups (``getent hosts``)."""

import shlex

from dnsprobe.models import HostAlias
from dnsprobe.probes import Lookup


class HostsLookup(Lookup):
    """Check that ``getent hosts <name>`` lists the expected alias.

    ``getent`` prints ``<ip> <canonical> <aliases...>``; the expected alias
    is written to the artifact only if it is one of those names, so the
    payload equals ``alias.expected`` exactly when the check passes.
    """

    def __init__(self, alias: HostAlias) -> None:
        self.alias = alias
        self.expected = alias.expected

    def artifact_id(self, variant: str) -> str:
        return f"{variant}_hosts@{self.alias.name}"

    def command(self, path: str) -> str:
        name = shlex.quote(self.alias.name)
        expected = shlex.quote(self.alias.expected)
        return (
            f"check=\"$(getent hosts {name} | tr -s ' \\t' '\\n' | grep -Fx -m 1 {expected})\" "
            f'&& test -n "$check" && echo "$check" > {path};'
        )
