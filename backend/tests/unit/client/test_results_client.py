"""
Unit Tests for the Results API Client
"""
import httpx
import pytest

from vb100.client.results_client import ResultsClient
from vb100.core.exceptions import LockedPeriodError, TransientStoreError, ValidationError


class TestResultsClient:
    """Test client calls against the in-process app"""

    @pytest.mark.asyncio
    async def test_get_period(self, results_client: ResultsClient):
        data = await results_client.get_period(2025, 6)

        assert data['meta']['year'] == 2025
        assert data['rows'] == []

    @pytest.mark.asyncio
    async def test_upsert_and_filter(self, results_client: ResultsClient):
        saved = await results_client.upsert_row(2025, 6, 'p9', {'certMiss': '700'})
        await results_client.upsert_row(2025, 6, 'P10', {'fps': 1})

        assert saved['productId'] == 'P9'
        assert saved['certMiss'] == 700
        assert saved['grade'] == 'A'

        data = await results_client.get_period(2025, 6, product_id='P9')
        assert len(data['rows']) == 1

    @pytest.mark.asyncio
    async def test_patch_meta(self, results_client: ResultsClient):
        meta = await results_client.patch_meta(2025, 6, {'preview': 250})

        assert meta['preview'] == 250

    @pytest.mark.asyncio
    async def test_thresholds(self, results_client: ResultsClient):
        data = await results_client.thresholds(100000)

        assert data['d'] == 25000

    @pytest.mark.asyncio
    async def test_locked_period_raises(self, results_client: ResultsClient):
        await results_client.take_snapshot(2025, 6)

        with pytest.raises(LockedPeriodError) as exc_info:
            await results_client.upsert_row(2025, 6, 'P1', {'fps': 1})

        assert exc_info.value.details['year'] == 2025
        assert exc_info.value.details['month'] == 6

    @pytest.mark.asyncio
    async def test_validation_error_raises(self, results_client: ResultsClient):
        with pytest.raises(ValidationError):
            await results_client.get_period(2025, 13)


class TestTransportFailures:
    """Test network failures map to TransientStoreError"""

    @pytest.mark.asyncio
    async def test_connect_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError('connection refused', request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url='http://test/api/v1') as http:
            client = ResultsClient(client=http)
            with pytest.raises(TransientStoreError):
                await client.get_period(2025, 6)

    @pytest.mark.asyncio
    async def test_server_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, json={'success': False, 'error': {'code': 'STORE_UNAVAILABLE', 'message': 'db down'}})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url='http://test/api/v1') as http:
            client = ResultsClient(client=http)
            with pytest.raises(TransientStoreError) as exc_info:
                await client.upsert_row(2025, 6, 'P1', {'fps': 1})

        assert exc_info.value.message == 'db down'

    @pytest.mark.asyncio
    async def test_owned_client_closed(self):
        client = ResultsClient(base_url='http://localhost:1/api/v1')
        await client.aclose()

        assert client._client.is_closed
