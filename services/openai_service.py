# services/openai_service.py
from __future__ import annotations

import asyncio
import json
import re
import time
from typing import Any, Dict, Optional, Tuple, Type

from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from app.config import settings, require_openai
from app.core.logging import get_logger

logger = get_logger()

_JSON_HINT = (
    "Respond with exactly one valid JSON object, no explanation, "
    "no extra text, no markdown, no code fences."
)


def _pydantic_schema_dict(model: Type[BaseModel]) -> Dict[str, Any]:
    return model.model_json_schema()


def _extract_first_json(text: str) -> str:
    """
    Take the first {...} block and drop trailing commas.
    """
    m = re.search(r"\{.*\}", text, flags=re.DOTALL)
    candidate = m.group(0) if m else text.strip()
    candidate = re.sub(r",\s*([}\]])", r"\1", candidate)
    return candidate.strip()


def _to_jsonable(obj: Any) -> Any:
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    if isinstance(obj, (list, tuple)):
        return [_to_jsonable(x) for x in obj]
    if isinstance(obj, dict):
        return {k: _to_jsonable(v) for k, v in obj.items()}
    dump = getattr(obj, "model_dump", None)
    if callable(dump):
        return _to_jsonable(dump())
    return str(obj)


class OpenAIService:
    """
    JSON-forced chat completions with Pydantic validation.

    Malformed or schema-invalid answers are retried with exponential backoff;
    after the last attempt a RuntimeError is raised and the caller decides
    how to degrade.
    """

    def __init__(
        self,
        model: Optional[str] = None,
        max_retries: int = 2,
        timeout_s: Optional[float] = None,
        backoff_s: float = 0.7,
        client: Optional[AsyncOpenAI] = None,
    ):
        api_key = require_openai() if client is None else None
        self.model = model or settings.OPENAI_MODEL
        self.max_retries = max_retries
        self.timeout_s = timeout_s or settings.OPENAI_TIMEOUT_S
        self.backoff_s = backoff_s
        self.client = client or AsyncOpenAI(api_key=api_key)

    def _build_messages(self, system_prompt: str, user_prompt: str, schema: Dict[str, Any]) -> list[dict]:
        schema_hint = json.dumps(schema, ensure_ascii=False)
        system = (
            f"{system_prompt}\n\n{_JSON_HINT}\n"
            f"The JSON must match this JSON Schema exactly:\n{schema_hint}"
        )
        user = f"{user_prompt}\n\nAgain: {_JSON_HINT}"
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]

    async def generate_json(
        self,
        system_prompt: str,
        user_prompt: str,
        response_model: Type[BaseModel],
        action_type: str = "generic",
    ) -> Tuple[BaseModel, Dict[str, Any]]:
        """
        Returns: (parsed_model_instance, meta_dict)
        """
        schema = _pydantic_schema_dict(response_model)
        messages = self._build_messages(system_prompt, user_prompt, schema)

        last_err: Optional[Exception] = None
        t0 = time.perf_counter()

        for attempt in range(self.max_retries + 1):
            try:
                completion = await self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    temperature=0.2,
                    response_format={"type": "json_object"},
                    timeout=self.timeout_s,
                )
                raw_text = completion.choices[0].message.content or ""
                usage_plain = _to_jsonable(getattr(completion, "usage", None))

                data = json.loads(_extract_first_json(raw_text))
                parsed = response_model.model_validate(data)

                duration_ms = int((time.perf_counter() - t0) * 1000)
                logger.info(
                    "openai_json_ok",
                    action_type=action_type,
                    model=self.model,
                    attempt=attempt + 1,
                    duration_ms=duration_ms,
                )
                return parsed, {
                    "ok": True,
                    "model": self.model,
                    "raw_text": raw_text,
                    "usage": usage_plain,
                    "duration_ms": duration_ms,
                }

            except (ValidationError, json.JSONDecodeError) as e:
                last_err = e
                logger.warning("openai_json_invalid", action_type=action_type, attempt=attempt + 1, error=str(e))
                messages[-1]["content"] = (
                    f"{user_prompt}\n\nNOTE: {_JSON_HINT}\n"
                    "Answer exactly according to the schema, without any additional text."
                )
                if attempt < self.max_retries:
                    await asyncio.sleep(self.backoff_s * (2 ** attempt))
                continue

            except Exception as e:
                last_err = e
                logger.warning("openai_call_failed", action_type=action_type, attempt=attempt + 1, error=str(e))
                if attempt < self.max_retries:
                    await asyncio.sleep(self.backoff_s * 1.3 * (2 ** attempt))
                continue

        duration_ms = int((time.perf_counter() - t0) * 1000)
        logger.error("openai_json_failed", action_type=action_type, duration_ms=duration_ms, error=str(last_err))
        raise RuntimeError(f"OpenAIService failed after retries: {last_err}")
