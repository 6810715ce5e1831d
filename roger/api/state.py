from fastapi import APIRouter, HTTPException, Response

from roger.errors import AuthInitError, ConfigurationError, NotFoundError, RogerError
from roger.models.state import State, StateCreateRequest, StateUpdateRequest
from roger.services import state_client

router = APIRouter()


def _to_http_error(exc: RogerError, summary: str) -> HTTPException:
    """
    Map a client error onto an HTTP error of this API.

    A missing state is a 404, a client that cannot be built (configuration or
    Kerberos setup) a 503, everything that went wrong talking to roger a 502.
    """
    if isinstance(exc, NotFoundError):
        status_code = 404
    elif isinstance(exc, (ConfigurationError, AuthInitError)):
        status_code = 503
    else:
        status_code = 502
    return HTTPException(status_code=status_code, detail=f"{summary}: {exc}")


@router.post("/", response_model=State, status_code=201, summary="Create state")
def create_state(body: StateCreateRequest) -> State:
    try:
        client = state_client.get_client()
        return client.create(body.hostname, body.message, body.appstate)
    except RogerError as exc:
        raise _to_http_error(exc, "Could not create state, unexpected error") from exc


@router.get("/{hostname}", response_model=State, summary="Read state")
def read_state(hostname: str) -> State:
    try:
        client = state_client.get_client()
        return client.read(hostname)
    except RogerError as exc:
        raise _to_http_error(exc, f"Could not read roger state {hostname}") from exc


@router.put("/{hostname}", response_model=State, summary="Update state")
def update_state(hostname: str, body: StateUpdateRequest) -> State:
    """Send the new message and appstate to roger and return the stored record."""
    try:
        client = state_client.get_client()
        return client.update(hostname, body.message, body.appstate)
    except RogerError as exc:
        raise _to_http_error(exc, "Could not update state, unexpected error") from exc


@router.delete("/{hostname}", status_code=204, response_class=Response, summary="Delete state")
def delete_state(hostname: str) -> Response:
    try:
        client = state_client.get_client()
        client.delete(hostname)
    except RogerError as exc:
        raise _to_http_error(exc, "Could not delete state, unexpected error") from exc
    return Response(status_code=204)
