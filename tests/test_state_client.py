import json
import threading
import time
from typing import Dict, List

import httpx
import pytest

from roger.config import Settings
from roger.errors import (
    ConfigurationError,
    DecodeError,
    NotFoundError,
    RequestError,
    ResolutionError,
    TransportError,
)
from roger.models.state import State
from roger.services import state_client
from roger.services.state_client import Client, new_client
from roger.services.transport import SpnegoTransport

FQDN = "roger01.example.org"
PORT = 8201
BASE = f"https://{FQDN}:{PORT}/roger/v1/state/"


class FakeRoger:
    """In-memory roger: POST answers 201 with the hostname only, like the real service."""

    def __init__(self, create_status: int = 201) -> None:
        self.create_status = create_status
        self.records: Dict[str, dict] = {}
        self.requests: List[httpx.Request] = []

    def _record(self, body: dict) -> dict:
        return {
            "hostname": body["hostname"],
            "appstate": body["appstate"],
            "message": body["message"],
            "app_alarmed": False,
            "hw_alarmed": False,
            "nc_alarmed": False,
            "os_alarmed": False,
            "expires": "",
            "expires_dt": "",
            "update_time": "1760000000",
            "update_time_dt": "2025-10-09T08:53:20",
            "updated_by": "tester@EXAMPLE.ORG",
            "updated_by_puppet": False,
        }

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        assert path.startswith("/roger/v1/state/")
        hostname = path[len("/roger/v1/state/"):].strip("/")

        if request.method == "POST" and not hostname:
            body = json.loads(request.content)
            self.records[body["hostname"]] = self._record(body)
            if self.create_status == 201:
                return httpx.Response(201, json={"hostname": body["hostname"]})
            return httpx.Response(self.create_status, json=self.records[body["hostname"]])

        if hostname not in self.records:
            return httpx.Response(404, json={"detail": "Not found."})

        if request.method == "GET":
            return httpx.Response(200, json=self.records[hostname])
        if request.method == "PUT":
            self.records[hostname] = self._record(json.loads(request.content))
            return httpx.Response(200, json=self.records[hostname])
        if request.method == "DELETE":
            del self.records[hostname]
            return httpx.Response(204)
        return httpx.Response(405)

    def methods(self) -> List[str]:
        return [request.method for request in self.requests]


def _client(handler, resolver=lambda host: FQDN) -> Client:
    transport = SpnegoTransport(httpx.Auth(), http_transport=httpx.MockTransport(handler))
    return Client("roger", PORT, transport, resolver=resolver)


def test_create_with_201_reads_state_back():
    """
    roger answers a creation with 201 and {"hostname": ...}: the client must
    issue exactly one GET for the member URL and return that record.
    """
    server = FakeRoger()
    client = _client(server.handle)

    state = client.create("h1.example.org", "alert", "production")

    assert server.methods() == ["POST", "GET"]
    post, get = server.requests
    assert str(post.url) == BASE
    assert json.loads(post.content) == {
        "hostname": "h1.example.org",
        "message": "alert",
        "appstate": "production",
    }
    assert str(get.url) == f"{BASE}h1.example.org/"

    assert isinstance(state, State)
    assert state.hostname == "h1.example.org"
    assert state.appstate == "production"
    assert state.message == "alert"
    assert state.updated_by == "tester@EXAMPLE.ORG"


def test_create_with_full_body_does_not_read_back():
    server = FakeRoger(create_status=200)
    client = _client(server.handle)

    state = client.create("h1.example.org", "alert", "draining")

    assert server.methods() == ["POST"]
    assert state.appstate == "draining"


def test_crud_lifecycle():
    server = FakeRoger()
    client = _client(server.handle)

    created = client.create("h2.example.org", "Terraform test init", "production")
    read = client.read("h2.example.org")
    assert (read.hostname, read.message, read.appstate) == (
        created.hostname,
        "Terraform test init",
        "production",
    )

    updated = client.update("h2.example.org", "Terraform test updated", "draining")
    assert updated.message == "Terraform test updated"
    assert updated.appstate == "draining"

    final = client.read("h2.example.org")
    assert final.message == "Terraform test updated"
    assert final.appstate == "draining"

    assert client.delete("h2.example.org") is None

    with pytest.raises(NotFoundError) as excinfo:
        client.read("h2.example.org")
    assert excinfo.value.status_code == 404


def test_update_sends_put_with_new_values():
    server = FakeRoger()
    server.records["h3.example.org"] = server._record(
        {"hostname": "h3.example.org", "message": "old", "appstate": "production"}
    )
    client = _client(server.handle)

    client.update("h3.example.org", "maintenance", "quiesce")

    (put,) = server.requests
    assert put.method == "PUT"
    assert put.headers["Content-Type"] == "application/json"
    assert json.loads(put.content) == {
        "hostname": "h3.example.org",
        "message": "maintenance",
        "appstate": "quiesce",
    }
    assert server.records["h3.example.org"]["appstate"] == "quiesce"


def test_delete_of_missing_state_raises_not_found():
    client = _client(FakeRoger().handle)

    with pytest.raises(NotFoundError):
        client.delete("ghost.example.org")


def test_server_error_raises_request_error_with_status():
    client = _client(lambda request: httpx.Response(500, text="Internal Server Error"))

    with pytest.raises(RequestError) as excinfo:
        client.read("h1.example.org")

    assert not isinstance(excinfo.value, NotFoundError)
    assert excinfo.value.status_code == 500
    assert excinfo.value.action == "state.read"
    assert "Internal Server Error" in str(excinfo.value)


def test_malformed_body_raises_decode_error():
    client = _client(lambda request: httpx.Response(200, text="<html>maintenance</html>"))

    with pytest.raises(DecodeError):
        client.read("h1.example.org")


def test_body_without_hostname_raises_decode_error():
    client = _client(lambda request: httpx.Response(200, json={"appstate": "production"}))

    with pytest.raises(DecodeError):
        client.update("h1.example.org", "", "production")


def test_wire_types_are_normalised():
    body = {
        "hostname": "h1.example.org",
        "appstate": "production",
        "message": None,
        "app_alarmed": "true",
        "hw_alarmed": False,
        "nc_alarmed": "false",
        "os_alarmed": 1,
        "updated_by_puppet": "true",
        "unknown_field": "ignored",
    }
    client = _client(lambda request: httpx.Response(200, json=body))

    state = client.read("h1.example.org")

    assert state.message == ""
    assert state.app_alarmed is True
    assert state.hw_alarmed is False
    assert state.nc_alarmed is False
    assert state.os_alarmed is True
    assert state.updated_by_puppet is True
    assert state.expires == ""


def test_transport_error_is_propagated():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client = _client(handler)
    with pytest.raises(TransportError):
        client.read("h1.example.org")


def test_resolution_failure_sends_no_request():
    server = FakeRoger()

    def failing_resolver(host):
        raise ResolutionError("resolve.reverse", f"no valid IPv4 PTR record found for host {host}")

    client = _client(server.handle, resolver=failing_resolver)

    with pytest.raises(ResolutionError):
        client.create("h1.example.org", "alert", "production")
    assert server.requests == []


def test_host_is_resolved_once():
    server = FakeRoger()
    resolved = []

    def counting_resolver(host):
        resolved.append(host)
        return FQDN

    client = _client(server.handle, resolver=counting_resolver)
    client.create("h1.example.org", "alert", "production")
    client.read("h1.example.org")
    client.delete("h1.example.org")

    assert resolved == ["roger"]
    assert {request.url.host for request in server.requests} == {FQDN}


def test_new_client_without_ccache_fails_before_network(monkeypatch):
    def unexpected(*args, **kwargs):
        raise AssertionError("transport must not be built")

    monkeypatch.setattr(SpnegoTransport, "from_settings", unexpected)
    monkeypatch.setattr(state_client, "resolve_fqdn", unexpected)

    with pytest.raises(ConfigurationError) as excinfo:
        new_client("roger.example.org", "8201", Settings(krb5_ccname=None))

    assert "KRB5CCNAME" in str(excinfo.value)


@pytest.mark.parametrize("port", ["0", "65536", "http", "", "8_201", "+80", "-1"])
def test_new_client_rejects_invalid_port(port):
    with pytest.raises(ConfigurationError):
        new_client("roger.example.org", port, Settings(krb5_ccname="FILE:/tmp/krb5cc"))


def test_new_client_with_resolution_disabled_uses_host_verbatim(monkeypatch):
    server = FakeRoger()

    def unexpected(host):
        raise AssertionError("resolver must not be called")

    monkeypatch.setattr(state_client, "resolve_fqdn", unexpected)
    transport = SpnegoTransport(httpx.Auth(), http_transport=httpx.MockTransport(server.handle))
    settings = Settings(krb5_ccname="FILE:/tmp/krb5cc", resolve_fqdn=False)

    with new_client("roger-lb.example.org", 8202, settings, transport=transport) as client:
        with pytest.raises(NotFoundError):
            client.read("h1.example.org")

    assert str(server.requests[0].url) == "https://roger-lb.example.org:8202/roger/v1/state/h1.example.org/"


@pytest.mark.parametrize("hostname", ["", "   "])
def test_empty_hostname_is_rejected_before_sending(hostname):
    server = FakeRoger()
    client = _client(server.handle)

    with pytest.raises(ConfigurationError):
        client.read(hostname)
    with pytest.raises(ConfigurationError):
        client.update(hostname, "message", "production")
    with pytest.raises(ConfigurationError):
        client.delete(hostname)
    with pytest.raises(ConfigurationError):
        client.create(hostname, "message", "production")

    assert server.requests == []


def test_get_client_builds_one_client_for_concurrent_callers(monkeypatch):
    class DummySettings:
        roger_host = "roger.example.org"
        roger_port = "8201"

    built = []

    def slow_new_client(host, port, settings):
        time.sleep(0.05)
        client = _client(FakeRoger().handle)
        built.append(client)
        return client

    monkeypatch.setattr(state_client, "get_settings", lambda: DummySettings())
    monkeypatch.setattr(state_client, "new_client", slow_new_client)
    monkeypatch.setattr(state_client, "_client", None)

    barrier = threading.Barrier(8)
    results = []

    def worker():
        barrier.wait()
        results.append(state_client.get_client())

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(built) == 1
    assert len(results) == 8
    assert all(result is built[0] for result in results)


def test_close_client_closes_and_forgets_the_shared_client(monkeypatch):
    closed = []

    class RecordingTransport:
        def request(self, method, url, payload=None):
            raise AssertionError("no request expected")

        def close(self):
            closed.append(True)

    shared = Client("roger", PORT, RecordingTransport(), resolve=False)
    monkeypatch.setattr(state_client, "_client", shared)

    state_client.close_client()
    state_client.close_client()

    assert closed == [True]
    assert state_client._client is None
