import httpx
import pytest

from sync_worker.adapters.api_pull import ApiPullAdapter
from sync_worker.errors import RetryableSourceError, SourceError

BASE_URL = "https://merchant.example.com/products"


def _adapter(handler, **source) -> ApiPullAdapter:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return ApiPullAdapter({"url": BASE_URL, **source}, client=client, credentials={"acme": "tok_ref"})


def test_follows_next_page_field():
    pages = {
        BASE_URL: {"data": {"products": [{"id": "A1"}]}, "paging": {"next": f"{BASE_URL}?page=2"}},
        f"{BASE_URL}?page=2": {"data": {"products": [{"id": "A2"}]}, "paging": {"next": None}},
    }

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=pages[str(request.url)])

    result = _adapter(handler, records_field="data.products", next_page_field="paging.next").fetch()

    assert [record.data["id"] for record in result.records] == ["A1", "A2"]
    assert result.records[1].source_ref == "page 2 item 0"


def test_follows_link_header():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params.get("page") == "2":
            return httpx.Response(200, json=[{"id": "A2"}])
        return httpx.Response(200, json=[{"id": "A1"}], headers={"Link": '</products?page=2>; rel="next"'})

    result = _adapter(handler).fetch()
    assert [record.data["id"] for record in result.records] == ["A1", "A2"]


def test_pagination_loop_stops():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        return httpx.Response(200, json={"items": [{"id": "A1"}], "next": BASE_URL})

    result = _adapter(handler).fetch()
    assert len(calls) == 1
    assert len(result.records) == 1


def test_records_found_under_default_keys_or_body():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "solo", "name": "Only one"})

    result = _adapter(handler).fetch()
    assert [record.data["id"] for record in result.records] == ["solo"]


def test_non_object_items_are_record_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"products": [{"id": "A1"}, 42]})

    result = _adapter(handler).fetch()
    assert len(result.records) == 1
    assert result.errors[0].stage == "parse"


def test_bearer_token_from_credential_ref():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["authorization"] = request.headers.get("Authorization")
        return httpx.Response(200, json=[])

    _adapter(handler, auth={"type": "bearer", "credential_ref": "acme"}).fetch()
    assert seen["authorization"] == "Bearer tok_ref"


def test_basic_auth():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["authorization"] = request.headers.get("Authorization")
        return httpx.Response(200, json=[])

    _adapter(handler, auth={"type": "basic", "username": "shop", "password": "secret"}).fetch()
    assert seen["authorization"].startswith("Basic ")


def test_unknown_credential_ref_is_permanent():
    with pytest.raises(SourceError):
        _adapter(lambda request: httpx.Response(200, json=[]), auth={"type": "bearer", "credential_ref": "missing"})


@pytest.mark.parametrize("status_code", [429, 500, 503])
def test_transient_statuses_are_retryable(status_code):
    with pytest.raises(RetryableSourceError):
        _adapter(lambda request: httpx.Response(status_code)).fetch()


def test_network_error_is_retryable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RetryableSourceError):
        _adapter(handler).fetch()


def test_client_errors_are_permanent():
    with pytest.raises(SourceError) as excinfo:
        _adapter(lambda request: httpx.Response(404)).fetch()
    assert not isinstance(excinfo.value, RetryableSourceError)


def test_non_json_body_is_permanent():
    with pytest.raises(SourceError):
        _adapter(lambda request: httpx.Response(200, text="<html>")).fetch()
