"""Tests for the CatalogAPIAdapter over a mocked CatalogClient."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.catalog_sync.api.exceptions import APIError
from src.catalog_sync.sync.adapters.catalog_api_adapter import CatalogAPIAdapter


@pytest.fixture
def client():
    client = MagicMock()
    client.get_products = AsyncMock()
    client.get_categories = AsyncMock()
    return client


class TestFetchProducts:
    async def test_maps_records(self, client):
        client.get_products.return_value = [{"Reference": "A"}, {"Reference": "B"}]

        page = await CatalogAPIAdapter(client).fetch_products(0, 2, {"Active": 1})

        assert [item.reference for item in page.items] == ["A", "B"]
        assert not page.is_last_page
        assert page.fetched == 2
        client.get_products.assert_awaited_once_with(page=0, page_size=2, filters={"Active": 1})

    async def test_short_page_is_last(self, client):
        client.get_products.return_value = [{"Reference": "A"}]

        page = await CatalogAPIAdapter(client).fetch_products(3, 2)

        assert page.is_last_page

    async def test_unreadable_records_still_count(self, client):
        client.get_products.return_value = [{"Reference": "A"}, "garbage", None]

        page = await CatalogAPIAdapter(client).fetch_products(0, 3)

        assert [item.reference for item in page.items] == ["A"]
        assert page.skipped == 2
        assert page.fetched == 3
        assert not page.is_last_page

    async def test_transport_errors_propagate(self, client):
        client.get_products.side_effect = APIError("unexpected payload", status_code=200, recoverable=True)

        with pytest.raises(APIError):
            await CatalogAPIAdapter(client).fetch_products(0, 10)


class TestFetchCategories:
    async def test_maps_dict_records_only(self, client):
        client.get_categories.return_value = [{"Reference": "C-1", "Name": {"en": "Brakes"}}, 42]

        categories = await CatalogAPIAdapter(client).fetch_categories(0, 50)

        assert [c.reference for c in categories] == ["C-1"]
