from typing import Optional


class RogerError(RuntimeError):
    """Base class of every error raised by the roger client."""

    def __init__(self, action: str, detail: str) -> None:
        super().__init__(f"{action}: {detail}")
        self.action = action
        self.detail = detail


class ConfigurationError(RogerError):
    """Construction parameters are missing or invalid (host, port, KRB5CCNAME)."""


class ResolutionError(RogerError):
    """The host could not be resolved to a canonical FQDN."""


class AuthInitError(RogerError):
    """Realm configuration, credential cache or negotiation setup failed."""


class TransportError(RogerError):
    """The request could not be built or the network exchange failed."""


class DecodeError(RogerError):
    """The response body does not decode into the expected shape."""


class RequestError(RogerError):
    """The service answered with a non-success status."""

    def __init__(
        self,
        action: str,
        detail: str,
        status_code: int,
        url: Optional[str] = None,
    ) -> None:
        super().__init__(action, f"HTTP {status_code}: {detail}")
        self.status_code = status_code
        self.url = url


class NotFoundError(RequestError):
    """The service reports that no state exists for the hostname."""
