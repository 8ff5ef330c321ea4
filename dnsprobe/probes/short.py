"""Single typed lookups whose raw answer is the artifact payload."""

from dnsprobe.models import RecordType
from dnsprobe.probes import Lookup


class ShortLookup(Lookup):
    """Write the ``dig +short`` answer for one typed query.

    Used by targeted probes: the payload is the resolved value itself
    (a CNAME target, an address), not just a success marker.  With
    *search* set, ``dig`` expands the name through the resolver's search
    list the way applications do.
    """

    def __init__(self, fqdn: str, record_type: RecordType, search: bool = False) -> None:
        self.fqdn = fqdn
        self.record_type = record_type
        self.search = search

    def artifact_id(self, variant: str) -> str:
        return f"{variant}_udp@{self.fqdn}"

    def command(self, path: str) -> str:
        flags = "+short +search" if self.search else "+short"
        return f"dig {flags} {self.fqdn} {self.record_type} > {path};"
