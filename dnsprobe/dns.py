"""DNS name helpers used when compiling probe scripts."""

import ipaddress
import logging
import re

logger = logging.getLogger(__name__)

# Letters, digits, dots, dashes and underscores (SRV labels such as
# ``_http._tcp``).  Anything else would need shell quoting inside the
# probe loop, so it is rejected up front.
_NAME_RE = re.compile(r"^[A-Za-z0-9_](?:[A-Za-z0-9_.-]*[A-Za-z0-9_.])?$")

# Execution variants end up in artifact identifiers before the
# ``_<transport>@`` separator, so they may not contain ``_`` or ``@``.
_VARIANT_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9-]*$")


def is_valid_name(name: str) -> bool:
    """Return whether *name* is safe to embed in a probe command.

    Accepts fully- and partially-qualified names, with or without a
    trailing dot, and SRV names starting with ``_``.
    """
    if not name or len(name) > 253:
        return False
    if ".." in name:
        return False
    return _NAME_RE.match(name) is not None


def is_valid_variant(variant: str) -> bool:
    """Return whether *variant* can be used as an artifact-name prefix."""
    return bool(variant) and _VARIANT_RE.match(variant) is not None


def is_srv_name(name: str) -> bool:
    """SRV queries are recognised by their leading ``_service`` label."""
    return name.startswith("_")


def reverse_addr(ip: str) -> str:
    """Return the reverse-lookup (PTR) name for an IPv4 or IPv6 address.

    Args:
        ip: Textual IP address (e.g. ``"10.0.0.10"``).

    Returns:
        The fully-qualified pointer name with a trailing dot, e.g.
        ``"10.0.0.10.in-addr.arpa."``.

    Raises:
        ValueError: If *ip* is not a valid IP address.
    """
    addr = ipaddress.ip_address(ip.strip())
    ptr = addr.reverse_pointer + "."
    logger.debug("Reverse pointer for %s → %s", ip, ptr)
    return ptr


def host_fqdn(hostname: str, subdomain: str, namespace: str, cluster_domain: str) -> str:
    """Build ``<hostname>.<subdomain>.<namespace>.svc.<cluster_domain>``.

    This is the name a sandbox with both hostname and subdomain set gets
    behind the headless service named *subdomain*.
    """
    return f"{hostname}.{subdomain}.{namespace}.svc.{cluster_domain}"


def service_fqdn(service: str, namespace: str, cluster_domain: str) -> str:
    """Build ``<service>.<namespace>.svc.<cluster_domain>``."""
    return f"{service}.{namespace}.svc.{cluster_domain}"
