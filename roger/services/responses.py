import json

from pydantic import ValidationError

from roger.errors import DecodeError, NotFoundError, RequestError
from roger.models.state import State
from roger.services.transport import TransportResponse

# Length of the body excerpt carried by RequestError
_EXCERPT_LENGTH = 200


def _excerpt(body: bytes) -> str:
    text = body.decode("utf-8", errors="replace").strip()
    if len(text) > _EXCERPT_LENGTH:
        return text[:_EXCERPT_LENGTH] + "..."
    return text or "<empty body>"


def ensure_success(action: str, response: TransportResponse, url: str) -> None:
    """Raise NotFoundError for 404 and RequestError for any other non-2xx status."""
    status = response.status_code
    if 200 <= status < 300:
        return
    if status == 404:
        raise NotFoundError(action, f"no state at {url}", status_code=status, url=url)
    raise RequestError(action, _excerpt(response.body), status_code=status, url=url)


def decode_state(action: str, body: bytes) -> State:
    try:
        data = json.loads(body)
    except ValueError as exc:
        raise DecodeError(action, f"response is not valid JSON: {exc}") from exc
    try:
        return State.model_validate(data)
    except ValidationError as exc:
        raise DecodeError(action, f"failed to parse response: {exc}") from exc
