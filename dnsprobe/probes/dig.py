"""Answer-section lookups with dig over UDP or TCP."""

from dnsprobe.models import Transport
from dnsprobe.probes import Lookup, record_check

_TRANSPORT_FLAGS: dict[str, str] = {
    "udp": "+notcp",
    "tcp": "+tcp",
}


class DigLookup(Lookup):
    """Look up *query* with ``dig +search`` and record whether it answered.

    The artifact holds ``OK`` once the answer section is non-empty.

    Args:
        query: Name to look up.  May be a shell expression such as
            ``${podARec}`` when the name is only known inside the sandbox.
        record_type: Record type passed to dig (``A``, ``AAAA``, ``SRV``,
            ``PTR``).
        transport: ``"udp"`` or ``"tcp"``.
        label: Identifier suffix to use instead of *query*.
    """

    def __init__(
        self,
        query: str,
        record_type: str,
        transport: Transport,
        label: str | None = None,
    ) -> None:
        if transport not in _TRANSPORT_FLAGS:
            raise ValueError(f"Unknown transport {transport!r}")
        self.query = query
        self.record_type = record_type
        self.transport = transport
        self.label = label or query

    def artifact_id(self, variant: str) -> str:
        return f"{variant}_{self.transport}@{self.label}"

    def command(self, path: str) -> str:
        flag = _TRANSPORT_FLAGS[self.transport]
        lookup = f"dig {flag} +noall +answer +search {self.query} {self.record_type}"
        return record_check(lookup, path)

    def __repr__(self) -> str:
        return (
            f"DigLookup({self.query!r}, {self.record_type!r}, "
            f"{self.transport!r}, label={self.label!r})"
        )
