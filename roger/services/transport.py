import os
import ssl
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Tuple, Union

import gssapi
import httpx
from gssapi.exceptions import GSSError
from httpx_gssapi import DISABLED, OPTIONAL, REQUIRED, HTTPSPNEGOAuth
from httpx_gssapi.exceptions import MutualAuthenticationError, SPNEGOExchangeError

from roger.config import Settings
from roger.errors import AuthInitError, ConfigurationError, TransportError
from roger.logger import get_logger

_logger = get_logger("services.transport")

_MUTUAL_AUTH_MODES = {
    "required": REQUIRED,
    "optional": OPTIONAL,
    "disabled": DISABLED,
}

_JSON = "application/json"


@dataclass(frozen=True)
class RealmConfig:
    """The parts of krb5.conf the client checks before handing it to the Kerberos library."""

    path: str
    sections: Tuple[str, ...]
    default_realm: Optional[str] = None


@dataclass(frozen=True)
class CredentialCache:
    name: str
    path: Optional[str] = None


@dataclass(frozen=True)
class TransportResponse:
    status_code: int
    body: bytes


class Transport(Protocol):
    def request(
        self,
        method: str,
        url: str,
        payload: Optional[bytes] = None,
    ) -> TransportResponse:
        ...

    def close(self) -> None:
        ...


def load_realm_config(path: str) -> RealmConfig:
    """
    Read the Kerberos realm configuration at path.

    The file must be readable and contain at least one [section]. The value of
    default_realm in [libdefaults] is recorded when present. Any problem is
    raised as AuthInitError.
    """
    try:
        content = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise AuthInitError("auth.krb5_config", f"failed to load {path}: {exc}") from exc

    sections = []
    current = None
    default_realm = None
    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith(("#", ";")):
            continue
        if line.startswith("[") and line.endswith("]"):
            current = line[1:-1].strip()
            sections.append(current)
            continue
        if current == "libdefaults" and "=" in line:
            key, value = (part.strip() for part in line.split("=", 1))
            if key == "default_realm" and value:
                default_realm = value

    if not sections:
        raise AuthInitError("auth.krb5_config", f"malformed {path}: no [section] found")

    return RealmConfig(path=path, sections=tuple(sections), default_realm=default_realm)


def load_credential_cache(ccname: Optional[str]) -> CredentialCache:
    """
    Turn a KRB5CCNAME value into a CredentialCache.

    FILE caches (with or without the FILE: prefix) must exist on disk. Other
    cache types (KEYRING:, KCM:, ...) are passed to the Kerberos library as is.
    """
    if not ccname:
        raise ConfigurationError("auth.ccache", "KRB5CCNAME environment variable not set")

    prefix, sep, residual = ccname.partition(":")
    if not sep:
        path = ccname
    elif prefix.upper() == "FILE":
        path = residual
    else:
        return CredentialCache(name=ccname)

    if not Path(path).is_file():
        raise AuthInitError("auth.ccache", f"failed to load credential cache {path}: no such file")
    return CredentialCache(name=f"FILE:{path}", path=path)


def build_spnego_auth(settings: Settings) -> HTTPSPNEGOAuth:
    """
    Build the SPNEGO auth flow from the credential cache and realm configuration.

    Initiator credentials are acquired from the cache through the GSSAPI
    credential store, so an expired or missing TGT fails here rather than on
    the first request.
    """
    cache = load_credential_cache(settings.krb5_ccname)
    realm = load_realm_config(settings.krb5_config)

    # MIT krb5 only reads its configuration location from the environment
    if os.environ.get("KRB5_CONFIG") != realm.path:
        os.environ["KRB5_CONFIG"] = realm.path

    try:
        creds = gssapi.Credentials(usage="initiate", store={"ccache": cache.name})
        lifetime = creds.lifetime
    except GSSError as exc:
        raise AuthInitError(
            "auth.credentials", f"failed to acquire Kerberos credentials from {cache.name}: {exc}"
        ) from exc
    except NotImplementedError as exc:
        raise AuthInitError(
            "auth.credentials", "GSSAPI library lacks credential store support"
        ) from exc

    if lifetime is not None and lifetime <= 0:
        raise AuthInitError("auth.credentials", f"ticket in {cache.name} has expired")

    _logger.debug(
        "auth.ready",
        "Acquired Kerberos credentials",
        ccache=cache.name,
        realm=realm.default_realm or "-",
        lifetime=lifetime,
    )

    try:
        return HTTPSPNEGOAuth(
            mutual_authentication=_MUTUAL_AUTH_MODES[settings.mutual_authentication],
            creds=creds,
        )
    except (GSSError, TypeError, ValueError) as exc:
        raise AuthInitError("auth.spnego", f"failed to create SPNEGO client: {exc}") from exc


def _tls_verify(ca_bundle: Optional[str]) -> Union[bool, ssl.SSLContext]:
    if not ca_bundle:
        return True
    try:
        return ssl.create_default_context(cafile=ca_bundle)
    except (OSError, ssl.SSLError) as exc:
        raise AuthInitError("auth.tls", f"failed to load CA bundle {ca_bundle}: {exc}") from exc


class SpnegoTransport:
    """
    HTTP transport negotiating Kerberos (SPNEGO) authentication.

    The handshake happens transparently inside the httpx auth flow the first
    time a server asks for it; callers only see requests and responses.
    """

    def __init__(
        self,
        auth: httpx.Auth,
        *,
        verify: Union[bool, ssl.SSLContext] = True,
        timeout: float = 30.0,
        http_transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._client = httpx.Client(
            auth=auth,
            verify=verify,
            timeout=timeout,
            transport=http_transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        http_transport: Optional[httpx.BaseTransport] = None,
    ) -> "SpnegoTransport":
        auth = build_spnego_auth(settings)
        return cls(
            auth,
            verify=_tls_verify(settings.ca_bundle),
            timeout=settings.timeout_seconds,
            http_transport=http_transport,
        )

    def request(
        self,
        method: str,
        url: str,
        payload: Optional[bytes] = None,
    ) -> TransportResponse:
        headers = {"Accept": _JSON}
        if payload is not None:
            headers["Content-Type"] = _JSON

        try:
            request = self._client.build_request(method, url, content=payload, headers=headers)
        except (httpx.InvalidURL, httpx.UnsupportedProtocol, TypeError, ValueError) as exc:
            raise TransportError("transport.request", f"failed to create request: {exc}") from exc

        try:
            response = self._client.send(request, stream=True)
        except (
            httpx.HTTPError,
            MutualAuthenticationError,
            SPNEGOExchangeError,
            GSSError,
        ) as exc:
            raise TransportError("transport.request", f"request failed: {exc}") from exc

        try:
            body = response.read()
        except (httpx.HTTPError, httpx.StreamError) as exc:
            raise TransportError(
                "transport.read", f"failed to read response body: {exc}"
            ) from exc
        finally:
            response.close()

        _logger.debug(
            "transport.response",
            "Request completed",
            method=method,
            url=url,
            status=response.status_code,
        )
        return TransportResponse(status_code=response.status_code, body=body)

    def close(self) -> None:
        self._client.close()
