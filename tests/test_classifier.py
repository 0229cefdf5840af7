import pytest

from offline.classifier import RequestKind, classify
from offline.transport import ClientRequest


@pytest.mark.parametrize(
    "method,url,accept,expected",
    [
        ("GET", "http://study.test/", "text/html,application/xhtml+xml", RequestKind.NAVIGATION),
        ("GET", "http://study.test/study", "text/html", RequestKind.NAVIGATION),
        ("GET", "http://study.test/api/study/stats", "application/json", RequestKind.READ_API),
        ("GET", "http://study.test/api/words", "text/html", RequestKind.READ_API),
        ("HEAD", "http://study.test/api/health", "", RequestKind.READ_API),
        ("POST", "http://study.test/api/study/answer", "application/json", RequestKind.WRITE_API),
        ("DELETE", "http://study.test/api/study/answer", "", RequestKind.WRITE_API),
        ("GET", "http://study.test/static/js/bundle.js", "*/*", RequestKind.STATIC_ASSET),
        ("GET", "http://study.test/manifest.json", "", RequestKind.STATIC_ASSET),
        ("POST", "http://study.test/upload", "", RequestKind.PASSTHROUGH),
        ("GET", "chrome-extension://abc/script.js", "", RequestKind.PASSTHROUGH),
        ("GET", "data:text/plain,hello", "", RequestKind.PASSTHROUGH),
    ],
)
def test_classify(method, url, accept, expected):
    request = ClientRequest(method, url, {"Accept": accept})
    assert classify(request) is expected


def test_relative_urls_are_classified_by_path():
    assert classify(ClientRequest.get("/api/study/stats")) is RequestKind.READ_API
    assert classify(ClientRequest.post_json("/api/study/answer", {"wordId": 1})) is RequestKind.WRITE_API


def test_api_prefix_requires_segment_boundary():
    request = ClientRequest("GET", "http://study.test/apiary/index.html", {"accept": "text/html"})
    assert classify(request) is RequestKind.NAVIGATION
