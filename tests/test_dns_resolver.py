"""DoH client tests against httpx.MockTransport."""
import httpx
import pytest

from app.services.dns_resolver import DnsAnswer, DnsLookupError, DohResolver

DOH_URL = "https://dns.test/dns-query"


def _resolver(handler):
    return DohResolver(base_url=DOH_URL, timeout=1.0, transport=httpx.MockTransport(handler))


def test_query_sends_doh_json_request_and_parses_answers():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        seen["accept"] = request.headers["accept"]
        return httpx.Response(200, json={
            "Status": 0,
            "Answer": [
                {"name": "example.com", "type": 5, "TTL": 300, "data": "edge.example.net."},
                {"name": "edge.example.net", "type": 1, "TTL": 300, "data": "72.61.227.134"},
            ],
        })

    answers = _resolver(handler).query("example.com", "A")

    assert seen["params"] == {"name": "example.com", "type": "A"}
    assert seen["accept"] == "application/dns-json"
    assert answers == [DnsAnswer(type=5, data="edge.example.net."), DnsAnswer(type=1, data="72.61.227.134")]


def test_missing_answer_section_is_empty():
    answers = _resolver(lambda r: httpx.Response(200, json={"Status": 3})).query("nope.example", "TXT")
    assert answers == []


@pytest.mark.parametrize("response", [
    httpx.Response(503, text="unavailable"),
    httpx.Response(200, text="<html>not json</html>"),
    httpx.Response(200, json=["not", "an", "object"]),
    httpx.Response(200, json={"Answer": [{"type": 1}]}),
])
def test_bad_responses_raise_lookup_error(response):
    with pytest.raises(DnsLookupError):
        _resolver(lambda r: response).query("example.com", "A")


def test_timeout_raises_lookup_error():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(DnsLookupError):
        _resolver(handler).query("example.com", "A")


def test_unsupported_record_type():
    with pytest.raises(ValueError):
        _resolver(lambda r: httpx.Response(200, json={})).query("example.com", "MX")
