import pytest
import requests

from offline.errors import NetworkUnavailable, ServerRejected, ServerUnavailable, Unauthorized
from offline.transport import ClientRequest, ClientResponse, HttpTransport, raise_for_status


class RecordingSession(requests.Session):
    """Session that answers from a callable instead of the network."""

    def __init__(self, responder):
        super().__init__()
        self.responder = responder
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        return self.responder(method, url, **kwargs)


def _raw_response(url, status=200, body=b'{"ok": true}'):
    response = requests.Response()
    response.status_code = status
    response._content = body
    response.url = url
    response.headers["Content-Type"] = "application/json"
    return response


def _transport(responder, **kwargs):
    session = RecordingSession(responder)
    return HttpTransport("http://study.test", session=session, **kwargs), session


def test_timeout_and_bearer_are_passed_to_session():
    transport, session = _transport(lambda method, url, **kw: _raw_response(url), timeout=2.5, token="tok")
    response = transport.fetch(ClientRequest.get("/api/study/stats"))

    call = session.calls[0]
    assert call["url"] == "http://study.test/api/study/stats"
    assert call["timeout"] == 2.5
    assert call["headers"]["authorization"] == "Bearer tok"
    assert response.status == 200
    assert response.same_origin is True
    assert response.json() == {"ok": True}


def test_bearer_is_not_sent_cross_origin():
    transport, session = _transport(lambda method, url, **kw: _raw_response(url), token="tok")
    response = transport.fetch(ClientRequest.get("https://cdn.example.org/font.woff", accept="*/*"))

    assert "authorization" not in session.calls[0]["headers"]
    assert response.same_origin is False


def test_post_body_is_forwarded():
    transport, session = _transport(lambda method, url, **kw: _raw_response(url))
    transport.fetch(ClientRequest.post_json("/api/study/answer", {"wordId": 1, "isCorrect": True}))

    call = session.calls[0]
    assert call["method"] == "POST"
    assert call["data"] == b'{"wordId":1,"isCorrect":true}'


@pytest.mark.parametrize(
    "error",
    [requests.Timeout("read timed out"), requests.ConnectionError("refused")],
)
def test_timeouts_and_connection_errors_are_network_failures(error):
    def responder(method, url, **kwargs):
        raise error

    transport, _ = _transport(responder)
    with pytest.raises(NetworkUnavailable):
        transport.fetch(ClientRequest.get("/api/health"))


def test_timeout_must_be_positive():
    with pytest.raises(ValueError):
        HttpTransport("http://study.test", timeout=0)


@pytest.mark.parametrize(
    "status,error",
    [
        (401, Unauthorized),
        (403, Unauthorized),
        (400, ServerRejected),
        (404, ServerRejected),
        (500, ServerUnavailable),
        (503, ServerUnavailable),
    ],
)
def test_raise_for_status(status, error):
    with pytest.raises(error):
        raise_for_status(ClientResponse(status))


def test_server_errors_count_as_network_failures():
    with pytest.raises(NetworkUnavailable):
        raise_for_status(ClientResponse(502))
    assert raise_for_status(ClientResponse(202)).status == 202
