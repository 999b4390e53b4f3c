from __future__ import annotations

import json

import httpx
import pytest

from app.models.events import PipelineRequest, PipelineResponse
from app.workers import event_pipeline_bot
from tests.fixtures import make_cache, make_event


def test_parse_args_defaults() -> None:
    args = event_pipeline_bot.parse_args([])
    assert args.query == ""
    assert args.num == 10
    assert args.urls is None


def test_parse_args_window_and_urls() -> None:
    args = event_pipeline_bot.parse_args(
        ["--from", "2026-11-01", "--to", "2026-11-30", "--url", "https://a.de", "--url", "https://b.de", "--locale", "DE"]
    )
    assert (args.date_from, args.date_to) == ("2026-11-01", "2026-11-30")
    assert args.urls == ["https://a.de", "https://b.de"]
    assert args.locale == "DE"


@pytest.mark.asyncio
async def test_run_pipeline_prints_response(monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    seen = {}

    class DummyPipeline:
        def __init__(self, cache):
            self.cache = cache

        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc, tb):
            return None

        async def run(self, request: PipelineRequest) -> PipelineResponse:
            seen["request"] = request
            return PipelineResponse(provider="demo", events=[make_event()])

    monkeypatch.setattr(event_pipeline_bot, "EventPipeline", DummyPipeline)
    monkeypatch.setattr(event_pipeline_bot, "build_cache_service", make_cache)

    args = event_pipeline_bot.parse_args(["--query", "privacy", "--country", "DE", "--num", "99"])
    exit_code = await event_pipeline_bot.run_pipeline(args)

    assert exit_code == 0
    assert seen["request"].country == "de"
    assert seen["request"].result_count == 50
    payload = json.loads(capsys.readouterr().out)
    assert payload["provider"] == "demo"
    assert payload["events"][0]["title"] == "Compliance Summit 2026"


@pytest.mark.asyncio
async def test_run_pipeline_extracts_given_urls(monkeypatch: pytest.MonkeyPatch, capsys, httpx_mock) -> None:
    url = "https://legal-summit.eu/program"
    httpx_mock.add_exception(httpx.ConnectError("offline"), url=url)
    monkeypatch.setattr(event_pipeline_bot, "build_cache_service", make_cache)

    exit_code = await event_pipeline_bot.run_pipeline(event_pipeline_bot.parse_args(["--url", url]))

    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["quality_stats"]["total_extracted"] == 1


@pytest.mark.asyncio
async def test_run_pipeline_rejects_blank_urls(monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    monkeypatch.setattr(event_pipeline_bot, "build_cache_service", make_cache)

    exit_code = await event_pipeline_bot.run_pipeline(event_pipeline_bot.parse_args(["--url", "  "]))

    assert exit_code == 2
    assert capsys.readouterr().out == ""
