import threading
from typing import Callable, Optional, Union
from urllib.parse import quote

from roger.config import Settings, get_settings
from roger.errors import ConfigurationError
from roger.logger import get_logger
from roger.models.state import State, StatePayload
from roger.services import responses
from roger.services.resolver import resolve_fqdn
from roger.services.transport import SpnegoTransport, Transport, TransportResponse

_logger = get_logger("services.state_client")

_STATE_PATH = "/roger/v1/state/"
_HTTP_CREATED = 201

_client: Optional["Client"] = None
_client_lock = threading.Lock()


def _check_hostname(action: str, hostname: str) -> None:
    if not hostname or not hostname.strip():
        raise ConfigurationError(action, "hostname must not be empty")


def _parse_port(port: Union[int, str]) -> int:
    raw = str(port).strip()
    # plain ASCII digits only: no sign, no underscores
    if not (raw.isascii() and raw.isdigit()):
        raise ConfigurationError("client.port", f"invalid port: {port!r}")
    value = int(raw)
    if not 0 < value <= 65535:
        raise ConfigurationError("client.port", f"invalid port: {port!r}")
    return value


class Client:
    """
    Client for the roger state API.

    Holds the connection parameters for the lifetime of the process. The only
    thing that changes after construction is the canonical name of the host,
    which is resolved once, on the first call, unless resolve_fqdn is off.
    """

    def __init__(
        self,
        host: str,
        port: int,
        transport: Transport,
        *,
        resolve: bool = True,
        resolver: Optional[Callable[[str], str]] = None,
    ) -> None:
        self.host = host
        self.port = port
        self._transport = transport
        self._resolve = resolve
        self._resolver = resolver or resolve_fqdn
        self._fqdn: Optional[str] = None
        self._fqdn_lock = threading.Lock()

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._transport.close()

    def target_host(self) -> str:
        """Return the host name used in URLs, resolving it on first use."""
        if not self._resolve:
            return self.host
        with self._fqdn_lock:
            if self._fqdn is None:
                self._fqdn = self._resolver(self.host)
            return self._fqdn

    def _collection_url(self) -> str:
        return f"https://{self.target_host()}:{self.port}{_STATE_PATH}"

    def _member_url(self, hostname: str) -> str:
        return f"{self._collection_url()}{quote(hostname, safe='')}/"

    def _send(
        self,
        action: str,
        method: str,
        url: str,
        payload: Optional[StatePayload] = None,
    ) -> TransportResponse:
        body = payload.model_dump_json().encode("utf-8") if payload is not None else None
        _logger.debug("state.request", "Sending request", action=action, method=method, url=url)
        response = self._transport.request(method, url, body)
        responses.ensure_success(action, response, url)
        return response

    def create(self, hostname: str, message: str, appstate: str) -> State:
        """
        Create the state of hostname.

        roger acknowledges a creation with 201 and a body that is not the full
        record, so a 201 is followed by a read and the read result is returned.
        Any other success status carries the record itself.
        """
        _check_hostname("state.create", hostname)
        payload = StatePayload(hostname=hostname, message=message, appstate=appstate)
        response = self._send("state.create", "POST", self._collection_url(), payload)
        if response.status_code == _HTTP_CREATED:
            return self.read(hostname)
        return responses.decode_state("state.create", response.body)

    def read(self, hostname: str) -> State:
        _check_hostname("state.read", hostname)
        response = self._send("state.read", "GET", self._member_url(hostname))
        return responses.decode_state("state.read", response.body)

    def update(self, hostname: str, message: str, appstate: str) -> State:
        _check_hostname("state.update", hostname)
        payload = StatePayload(hostname=hostname, message=message, appstate=appstate)
        response = self._send("state.update", "PUT", self._member_url(hostname), payload)
        return responses.decode_state("state.update", response.body)

    def delete(self, hostname: str) -> None:
        _check_hostname("state.delete", hostname)
        self._send("state.delete", "DELETE", self._member_url(hostname))


def new_client(
    host: str,
    port: Union[int, str],
    settings: Optional[Settings] = None,
    transport: Optional[Transport] = None,
) -> Client:
    """
    Build a Client for the roger API at host:port.

    Nothing is sent over the network here: the credential cache and realm
    configuration are loaded and the SPNEGO session is prepared, the host is
    resolved on the first call. Raises ConfigurationError for a missing host,
    an invalid port or an unset KRB5CCNAME, AuthInitError when the Kerberos
    setup fails.
    """
    settings = settings or get_settings()

    if not host or not host.strip():
        raise ConfigurationError("client.host", "host must not be empty")
    parsed_port = _parse_port(port)
    if not settings.krb5_ccname:
        raise ConfigurationError("auth.ccache", "KRB5CCNAME environment variable not set")

    if transport is None:
        transport = SpnegoTransport.from_settings(settings)

    return Client(host.strip(), parsed_port, transport, resolve=settings.resolve_fqdn)


def _client_from_settings() -> Client:
    settings = get_settings()
    if not settings.roger_host:
        raise ConfigurationError(
            "client.host", "Missing roger API host: set ROGER_HOST to the roger API host"
        )
    if not settings.roger_port:
        raise ConfigurationError(
            "client.port", "Missing roger API port: set ROGER_PORT to the roger API port"
        )
    return new_client(settings.roger_host, settings.roger_port, settings)


def get_client() -> Client:
    """Process-wide client for ROGER_HOST / ROGER_PORT, built on first use."""
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = _client_from_settings()
    return _client


def close_client() -> None:
    """Close and forget the process-wide client, if one was built."""
    global _client
    with _client_lock:
        client, _client = _client, None
    if client is not None:
        client.close()
