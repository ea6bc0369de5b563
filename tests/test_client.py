"""Tests for the vendor catalog HTTP client.

The aiohttp session is replaced by a MagicMock whose request() yields a
canned response; retry tests patch _request directly and skip the sleeps.
"""
import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from src.catalog_sync.api.client import (
    CATEGORIES_ENDPOINT,
    DEFAULT_BASE_URL,
    PRODUCTS_ENDPOINT,
    CatalogClient,
    PaginationConfig,
    extract_items,
    format_newer_than,
)
from src.catalog_sync.api.exceptions import (
    APIError,
    BadRequestError,
    CircuitOpenError,
    ConfigurationError,
    ConnectionError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
    TimeoutError,
)


def mock_session(status: int = 200, json_data=None, body: str = "", headers=None):
    response = MagicMock()
    response.status = status
    response.headers = headers or {}
    response.text = AsyncMock(return_value=body)
    response.json = AsyncMock(return_value=json_data)

    session = MagicMock()
    session.request.return_value.__aenter__ = AsyncMock(return_value=response)
    session.request.return_value.__aexit__ = AsyncMock(return_value=False)
    return session


@pytest.fixture
def client(monkeypatch):
    monkeypatch.delenv("CATALOG_API_URL", raising=False)
    return CatalogClient(api_key="cat-key", base_url="https://catalog.test/")


@pytest.fixture
def no_sleep():
    with patch("src.catalog_sync.api.client.asyncio.sleep", new=AsyncMock()) as sleep:
        yield sleep


class TestHelpers:
    def test_format_newer_than(self):
        assert format_newer_than(datetime(2024, 3, 9, 7, 5, 1)) == "2024-03-09T07:05:01"

    def test_extract_bare_list(self):
        assert extract_items([{"Reference": "A"}]) == [{"Reference": "A"}]

    def test_extract_wrapped(self):
        assert extract_items({"Data": [{"Reference": "A"}]}) == [{"Reference": "A"}]
        assert extract_items({"items": [1, 2]}) == [1, 2]

    def test_extract_empty_body(self):
        assert extract_items(None) == []
        assert extract_items([]) == []

    @pytest.mark.parametrize(
        "payload",
        [{"Message": "Invalid API key quota exceeded"}, {"total": 3}, {"Data": None}, "OK"],
    )
    def test_extract_unknown_shape_raises(self, payload):
        with pytest.raises(APIError) as exc_info:
            extract_items(payload, PRODUCTS_ENDPOINT)

        assert exc_info.value.recoverable
        assert exc_info.value.status_code == 200
        assert exc_info.value.details["endpoint"] == PRODUCTS_ENDPOINT


class TestConstruction:
    def test_requires_api_key(self, monkeypatch):
        monkeypatch.delenv("CATALOG_API_KEY", raising=False)

        with pytest.raises(ConfigurationError) as exc_info:
            CatalogClient()

        assert exc_info.value.details["missing_keys"] == ["CATALOG_API_KEY"]

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("CATALOG_API_KEY", "env-key")
        monkeypatch.delenv("CATALOG_API_URL", raising=False)

        client = CatalogClient()

        assert client.api_key == "env-key"
        assert client.base_url == DEFAULT_BASE_URL

    def test_strips_trailing_slash(self, client):
        assert client.base_url == "https://catalog.test"

    def test_circuit_status(self, client):
        assert client.circuit_status["name"] == "catalog_api"
        assert CatalogClient(api_key="k", enable_circuit_breaker=False).circuit_status is None

    async def test_context_manager_manages_session(self, client):
        async with client as entered:
            assert entered is client
            assert isinstance(client._session, aiohttp.ClientSession)

        assert client._session is None


class TestRequest:
    async def test_outside_context_manager(self, client):
        with pytest.raises(RuntimeError):
            await client._request("GET", CATEGORIES_ENDPOINT)

    async def test_sends_api_key_header(self, client):
        client._session = mock_session(json_data=[{"Reference": "C-1"}])

        result = await client._request("GET", CATEGORIES_ENDPOINT, params={"Page": 0})

        assert result == [{"Reference": "C-1"}]
        kwargs = client._session.request.call_args.kwargs
        assert kwargs["url"] == f"https://catalog.test{CATEGORIES_ENDPOINT}"
        assert kwargs["headers"]["X-API-KEY"] == "cat-key"
        assert kwargs["params"] == {"Page": 0}

    @pytest.mark.parametrize(
        "status,error_type",
        [
            (400, BadRequestError),
            (401, BadRequestError),
            (404, NotFoundError),
            (429, RateLimitError),
            (500, ServerError),
            (503, ServerError),
            (418, APIError),
        ],
    )
    async def test_status_mapping(self, client, status, error_type):
        client._session = mock_session(status=status, body="nope")

        with pytest.raises(error_type) as exc_info:
            await client._request("POST", PRODUCTS_ENDPOINT)

        assert exc_info.value.status_code == status

    async def test_retry_after_header(self, client):
        client._session = mock_session(status=429, headers={"Retry-After": "7"})

        with pytest.raises(RateLimitError) as exc_info:
            await client._request("POST", PRODUCTS_ENDPOINT)

        assert exc_info.value.retry_after == 7

    async def test_invalid_json(self, client):
        session = mock_session()
        response = await session.request.return_value.__aenter__()
        response.json.side_effect = ValueError("Expecting value")
        client._session = session

        with pytest.raises(APIError) as exc_info:
            await client._request("GET", CATEGORIES_ENDPOINT)

        assert exc_info.value.recoverable

    async def test_connection_error(self, client):
        client._session = MagicMock()
        client._session.request.side_effect = aiohttp.ClientConnectionError("refused")

        with pytest.raises(ConnectionError):
            await client._request("GET", CATEGORIES_ENDPOINT)

    async def test_timeout(self, client):
        client._session = MagicMock()
        client._session.request.side_effect = asyncio.TimeoutError()

        with pytest.raises(TimeoutError):
            await client._request("GET", CATEGORIES_ENDPOINT)

    async def test_other_client_error(self, client):
        client._session = MagicMock()
        client._session.request.side_effect = aiohttp.ClientPayloadError("truncated")

        with pytest.raises(NetworkError):
            await client._request("GET", CATEGORIES_ENDPOINT)


class TestRetry:
    async def test_retries_server_errors(self, client, no_sleep):
        client._request = AsyncMock(side_effect=[ServerError("down", status_code=502), [{"Reference": "A"}]])

        assert await client._request_with_retry("POST", PRODUCTS_ENDPOINT) == [{"Reference": "A"}]
        assert client._request.await_count == 2
        no_sleep.assert_awaited_once_with(1.0)

    async def test_waits_for_rate_limit(self, client, no_sleep):
        client._request = AsyncMock(side_effect=[RateLimitError("slow down", retry_after=3), []])

        await client._request_with_retry("POST", PRODUCTS_ENDPOINT)

        no_sleep.assert_awaited_once_with(3)

    async def test_client_errors_are_not_retried(self, client, no_sleep):
        client._request = AsyncMock(side_effect=BadRequestError("bad filter", status_code=422))

        with pytest.raises(BadRequestError):
            await client._request_with_retry("POST", PRODUCTS_ENDPOINT)

        assert client._request.await_count == 1
        assert client.circuit_status["failure_count"] == 0

    async def test_gives_up_after_max_retries(self, client, no_sleep):
        client._request = AsyncMock(side_effect=NetworkError("connection reset by peer"))

        with pytest.raises(NetworkError):
            await client._request_with_retry("POST", PRODUCTS_ENDPOINT)

        assert client._request.await_count == client.max_retries
        assert client.circuit_status["failure_count"] == 1

    async def test_open_circuit_fails_fast(self, no_sleep):
        client = CatalogClient(api_key="k", circuit_failure_threshold=1, max_retries=1)
        client._request = AsyncMock(side_effect=ServerError("down"))

        with pytest.raises(ServerError):
            await client._request_with_retry("POST", PRODUCTS_ENDPOINT)
        with pytest.raises(CircuitOpenError):
            await client._request_with_retry("POST", PRODUCTS_ENDPOINT)

        assert client._request.await_count == 1


class TestEndpoints:
    async def test_get_products_body(self, client):
        client._request_with_retry = AsyncMock(return_value=[{"Reference": "A"}])

        items = await client.get_products(page=3, page_size=5, filters={"Active": 1})

        assert items == [{"Reference": "A"}]
        client._request_with_retry.assert_awaited_once_with(
            "POST",
            PRODUCTS_ENDPOINT,
            json_body={"Page": 3, "PageSize": 5, "Active": 1},
        )

    async def test_get_products_since(self, client):
        client._request_with_retry = AsyncMock(return_value=[])

        await client.get_products_since(datetime(2024, 1, 2, 3, 4, 5), page=1, page_size=10)

        body = client._request_with_retry.call_args.kwargs["json_body"]
        assert body == {"Page": 1, "PageSize": 10, "NewerThan": "2024-01-02T03:04:05"}

    async def test_error_envelope_is_not_an_empty_page(self, client):
        client._request_with_retry = AsyncMock(return_value={"Message": "Invalid API key quota exceeded"})

        with pytest.raises(APIError) as exc_info:
            await client.get_products(page=0, page_size=10)

        assert "quota exceeded" in exc_info.value.details["response_body"]

    async def test_get_categories(self, client):
        client._request_with_retry = AsyncMock(return_value={"Data": [{"Reference": "C-1"}]})

        assert await client.get_categories(2, 25) == [{"Reference": "C-1"}]
        client._request_with_retry.assert_awaited_once_with(
            "GET",
            CATEGORIES_ENDPOINT,
            params={"Page": 2, "PageSize": 25},
        )

    async def test_get_all_categories_stops_at_short_page(self, client):
        pages = [[{"Reference": "C-1"}, {"Reference": "C-2"}], [{"Reference": "C-3"}]]
        client.get_categories = AsyncMock(side_effect=pages)

        result = await client.get_all_categories(PaginationConfig(page_size=2, delay_between_pages=0))

        assert [c["Reference"] for c in result] == ["C-1", "C-2", "C-3"]
        assert client.get_categories.await_count == 2

    async def test_get_all_categories_max_pages(self, client):
        client.get_categories = AsyncMock(return_value=[{"Reference": "C"}])

        result = await client.get_all_categories(
            PaginationConfig(page_size=1, delay_between_pages=0, max_pages=3)
        )

        assert len(result) == 3
