from __future__ import annotations

import pytest

import httpx

from services.base_scraper_service import BaseScraperService


@pytest.mark.asyncio
async def test_base_scraper_context_manager():
    """Client exists inside the context and is released after it."""
    async with BaseScraperService(user_agent="test-agent/1.0") as service:
        assert isinstance(service._client, httpx.AsyncClient)

    assert service._client is None


@pytest.mark.asyncio
async def test_base_scraper_fetch_requires_context():
    service = BaseScraperService(user_agent="test-agent/1.0")
    with pytest.raises(RuntimeError, match="not initialized"):
        await service.fetch("https://example.com")


@pytest.mark.asyncio
async def test_base_scraper_sends_user_agent(httpx_mock):
    httpx_mock.add_response(url="https://example.com", text="<html>Test</html>")

    async with BaseScraperService(user_agent="test-agent/1.0") as service:
        html = await service.fetch_html("https://example.com")

    assert html == "<html>Test</html>"
    assert httpx_mock.get_requests()[0].headers["User-Agent"] == "test-agent/1.0"


@pytest.mark.asyncio
async def test_base_scraper_retry_logic(httpx_mock):
    """First two requests fail, third succeeds."""
    httpx_mock.add_response(status_code=500)
    httpx_mock.add_response(status_code=503)
    httpx_mock.add_response(text="Success")

    async with BaseScraperService(max_retries=2, backoff_s=0) as service:
        response = await service.fetch("https://example.com")

    assert response.text == "Success"
    assert len(httpx_mock.get_requests()) == 3


@pytest.mark.asyncio
async def test_base_scraper_retry_exhausted(httpx_mock):
    httpx_mock.add_response(status_code=500)
    httpx_mock.add_response(status_code=500)

    async with BaseScraperService(max_retries=1, backoff_s=0) as service:
        with pytest.raises(httpx.HTTPStatusError):
            await service.fetch("https://example.com")
