import socket
from typing import List

from roger.errors import ResolutionError
from roger.logger import get_logger

_logger = get_logger("services.resolver")


def _ipv4_addresses(host: str) -> List[str]:
    """
    Return the IPv4 addresses of host, in resolver order and without duplicates.

    Only AF_INET is requested: roger principals are registered for IPv4 names,
    IPv6-only answers therefore count as "no address".
    """
    try:
        infos = socket.getaddrinfo(host, None, socket.AF_INET, socket.SOCK_STREAM)
    except (socket.gaierror, UnicodeError) as exc:
        raise ResolutionError(
            "resolve.forward", f"failed to resolve IP for hostname {host}: {exc}"
        ) from exc

    addresses: List[str] = []
    for _family, _type, _proto, _canonname, sockaddr in infos:
        address = sockaddr[0]
        if address not in addresses:
            addresses.append(address)
    return addresses


def _reverse_name(address: str) -> str:
    try:
        name, _aliases, _addresses = socket.gethostbyaddr(address)
    except (socket.herror, socket.gaierror) as exc:
        _logger.debug(
            "resolve.reverse_failed",
            "Reverse lookup failed",
            address=address,
            error=str(exc),
        )
        return ""
    return name.rstrip(".")


def resolve_fqdn(host: str) -> str:
    """
    Resolve host (name or address) to the canonical FQDN of the machine.

    The SPNEGO handshake targets HTTP@<name in the URL>, so the URL has to use
    the name the service principal is registered under rather than an alias
    or a load-balanced name. The first IPv4 address with a PTR record wins.
    """
    addresses = _ipv4_addresses(host)
    if not addresses:
        raise ResolutionError("resolve.forward", f"no IPv4 address found for host {host}")

    for address in addresses:
        name = _reverse_name(address)
        if name:
            _logger.debug("resolve.done", "Resolved canonical name", host=host, fqdn=name)
            return name

    raise ResolutionError(
        "resolve.reverse", f"no valid IPv4 PTR record found for host {host}"
    )
