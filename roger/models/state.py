from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class State(BaseModel):
    """Host state record as returned by the roger API."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    hostname: str = Field(..., description="Monitored host, key of the record")
    appstate: str = Field(
        "",
        description="Application lifecycle label, e.g. production, draining or quiesce",
    )
    message: str = Field("", description="Free-text operator note")

    app_alarmed: bool = Field(False, description="Application alarms raised")
    hw_alarmed: bool = Field(False, description="Hardware alarms raised")
    nc_alarmed: bool = Field(False, description="Network connectivity alarms raised")
    os_alarmed: bool = Field(False, description="Operating system alarms raised")

    expires: str = Field("", description="Expiry timestamp as sent by the service")
    expires_dt: str = Field("", description="Expiry timestamp, formatted")
    update_time: str = Field("", description="Last update timestamp as sent by the service")
    update_time_dt: str = Field("", description="Last update timestamp, formatted")
    updated_by: str = Field("", description="Identity of the last updater")
    updated_by_puppet: bool = Field(
        False,
        description="True if the last update came from configuration management",
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        # null means "not set" on the wire; fall back to the field default
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data


class StatePayload(BaseModel):
    """Request body of the create and update calls."""

    hostname: str
    message: str = ""
    appstate: str


class StateCreateRequest(BaseModel):
    """Body of POST /state/."""

    hostname: str = Field(..., min_length=1, description="Host the state belongs to")
    message: str = Field("", description="Alert message")
    appstate: str = Field(
        ...,
        min_length=1,
        description="Application state, e.g. production, draining or quiesce",
    )


class StateUpdateRequest(BaseModel):
    """Body of PUT /state/{hostname}."""

    message: str = Field("", description="Alert message")
    appstate: str = Field(..., min_length=1, description="Application state")
