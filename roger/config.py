from typing import Any, Optional
from pydantic import BaseModel, Field, field_validator
import os
from functools import lru_cache

DEFAULT_KRB5_CONFIG = "/etc/krb5.conf"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_MUTUAL_AUTH_MODES = {"required", "optional", "disabled"}
_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class Settings(BaseModel):
    # roger service endpoint, only consumed by the HTTP adapter
    roger_host: Optional[str] = Field(
        default=None,
        description="Host of the roger API, e.g. roger.example.org",
    )
    roger_port: Optional[str] = Field(
        default=None,
        description="Port of the roger API, e.g. 8201",
    )

    # Kerberos
    krb5_config: str = Field(
        default=DEFAULT_KRB5_CONFIG,
        description="Path of the Kerberos realm configuration (krb5.conf)",
    )
    krb5_ccname: Optional[str] = Field(
        default=None,
        description="Credential cache holding the TGT, e.g. FILE:/tmp/krb5cc_1000",
    )
    mutual_authentication: str = Field(
        default="required",
        description="SPNEGO mutual authentication mode: required, optional or disabled",
    )

    # Transport
    ca_bundle: Optional[str] = Field(
        default=None,
        description="CA bundle used to verify the service certificate (system store if unset)",
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Per-request timeout of the HTTP transport",
    )
    resolve_fqdn: bool = Field(
        default=True,
        description="Resolve the host to its canonical FQDN before talking to it",
    )

    log_level: str = Field(
        default="WARNING",
        description="Log level of the HTTP adapter",
    )

    @field_validator("mutual_authentication")
    @classmethod
    def _check_mutual_authentication(cls, value: str) -> str:
        mode = value.strip().lower()
        if mode not in _MUTUAL_AUTH_MODES:
            raise ValueError(
                f"mutual_authentication must be one of {sorted(_MUTUAL_AUTH_MODES)}, got {value!r}"
            )
        return mode

    @field_validator("timeout_seconds", mode="before")
    @classmethod
    def _parse_timeout(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return float(value.strip())
            except ValueError as exc:
                raise ValueError(f"ROGER_TIMEOUT must be a number of seconds, got {value!r}") from exc
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(
                f"ROGER_LOG_LEVEL must be one of {sorted(_LOG_LEVELS)}, got {value!r}"
            )
        return level

    @classmethod
    def from_env(cls) -> "Settings":
        raw_timeout = os.getenv("ROGER_TIMEOUT", "").strip()
        raw_resolve = os.getenv("ROGER_RESOLVE_FQDN", "").strip()

        # KRB5CCNAME / KRB5_CONFIG are the variables the Kerberos tooling itself uses
        return cls(
            roger_host=os.getenv("ROGER_HOST") or None,
            roger_port=os.getenv("ROGER_PORT") or None,
            krb5_config=os.getenv("KRB5_CONFIG") or DEFAULT_KRB5_CONFIG,
            krb5_ccname=os.getenv("KRB5CCNAME") or None,
            mutual_authentication=os.getenv("ROGER_MUTUAL_AUTH") or "required",
            ca_bundle=os.getenv("ROGER_CA_BUNDLE") or None,
            timeout_seconds=raw_timeout or 30.0,
            resolve_fqdn=raw_resolve.lower() in _TRUE_VALUES if raw_resolve else True,
            log_level=os.getenv("ROGER_LOG_LEVEL") or "WARNING",
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
