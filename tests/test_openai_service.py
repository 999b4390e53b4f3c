from __future__ import annotations

from types import SimpleNamespace
from typing import List

import pytest

from app.models.classification import ClassifierBatchResponse
from services.openai_service import OpenAIService, _extract_first_json


class FakeCompletions:
    def __init__(self, answers: List[object]) -> None:
        self.answers = list(answers)
        self.calls = 0

    async def create(self, **kwargs):
        self.calls += 1
        answer = self.answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        message = SimpleNamespace(content=answer)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)], usage=None)


def _service(answers: List[object], max_retries: int = 2):
    completions = FakeCompletions(answers)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return OpenAIService(client=client, max_retries=max_retries, backoff_s=0), completions


def test_extract_first_json_strips_prose_and_trailing_commas():
    text = 'Sure! {"decisions": [{"index": 0, "isEvent": true},]} hope that helps'
    assert _extract_first_json(text) == '{"decisions": [{"index": 0, "isEvent": true}]}'


@pytest.mark.asyncio
async def test_generate_json_parses_model():
    service, completions = _service(['{"decisions": [{"index": 0, "isEvent": true, "confidence": 0.9}]}'])

    parsed, meta = await service.generate_json("system", "user", ClassifierBatchResponse, action_type="events.relevance")

    assert parsed.decisions[0].is_event is True
    assert meta["ok"] is True
    assert completions.calls == 1


@pytest.mark.asyncio
async def test_generate_json_retries_invalid_json():
    service, completions = _service(["not json at all", '{"decisions": []}'])

    parsed, _ = await service.generate_json("system", "user", ClassifierBatchResponse)

    assert parsed.decisions == []
    assert completions.calls == 2


@pytest.mark.asyncio
async def test_generate_json_raises_after_retries():
    service, completions = _service([RuntimeError("rate limited"), RuntimeError("rate limited")], max_retries=1)

    with pytest.raises(RuntimeError, match="failed after retries"):
        await service.generate_json("system", "user", ClassifierBatchResponse)
    assert completions.calls == 2


def test_missing_key_is_reported():
    with pytest.raises(RuntimeError, match="OPENAI_API_KEY"):
        OpenAIService()
