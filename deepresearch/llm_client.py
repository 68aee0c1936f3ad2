"""OpenRouter LLM client built on the OpenAI-compatible SDK."""
from __future__ import annotations

import json
import math
import time
from typing import Any, AsyncIterator, TypeVar

from pydantic import BaseModel, ValidationError

from deepresearch.config import settings
from deepresearch.research_core.ports import LLMResponse, TokenUsage
from deepresearch.services.logger import log_llm_call

ModelT = TypeVar("ModelT", bound=BaseModel)


def extract_json_object(raw_text: str) -> dict[str, Any]:
    """Pull the first JSON object out of a model reply, tolerating code fences."""
    text = raw_text.strip()
    if text.startswith("```"):
        parts = text.split("```")
        if len(parts) >= 2:
            text = parts[1]
        if text.startswith("json"):
            text = text[4:]
        text = text.strip()
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        raise json.JSONDecodeError("object not found", text, 0)
    parsed = json.loads(text[start : end + 1])
    if not isinstance(parsed, dict):
        raise json.JSONDecodeError("not an object", text, 0)
    return parsed


def cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if norm == 0:
        return 0.0
    return max(0.0, min(1.0, dot / norm))


def _temperature_for_model(model: str, requested: float | None) -> float:
    # Some OpenAI GPT-5-compatible gateways reject temperature=0.
    if "gpt-5" in (model or "").lower():
        return 1
    return 0 if requested is None else requested


def get_model() -> str:
    """Get the active OpenRouter model id."""
    if settings.openrouter_model:
        return settings.openrouter_model
    return settings.default_model


class LLMClient:
    """Chat, structured output and embeddings over OpenRouter."""

    def __init__(
        self,
        openai_client: Any | None = None,
        *,
        model: str | None = None,
        embedding_model: str | None = None,
        max_tokens: int | None = None,
    ):
        if openai_client is None:
            from openai import AsyncOpenAI

            openai_client = AsyncOpenAI(
                api_key=settings.openrouter_api_key,
                base_url=settings.openrouter_base_url.strip() or "https://openrouter.ai/api/v1",
            )
        self._client = openai_client
        self.model = model or get_model()
        self.embedding_model = embedding_model or settings.embedding_model
        self.max_tokens = max_tokens or settings.llm_max_tokens

    async def _complete(self, prompt: str, caller: str, temperature: float | None) -> tuple[str, TokenUsage]:
        t0 = time.monotonic()
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=self.max_tokens,
                temperature=_temperature_for_model(self.model, temperature),
            )
        except Exception as exc:
            log_llm_call(
                self.model,
                caller,
                duration_ms=int((time.monotonic() - t0) * 1000),
                error=str(exc),
            )
            raise

        usage = getattr(response, "usage", None)
        token_usage = TokenUsage(
            prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
            total_tokens=getattr(usage, "total_tokens", 0) or 0,
        )
        log_llm_call(
            self.model,
            caller,
            input_tokens=token_usage.prompt_tokens,
            output_tokens=token_usage.completion_tokens,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        choices = getattr(response, "choices", None) or []
        text = getattr(choices[0].message, "content", None) if choices else None
        return text or "", token_usage

    async def generate(
        self,
        prompt: str,
        output_model: type[ModelT],
        *,
        temperature: float | None = None,
    ) -> LLMResponse[ModelT]:
        """Ask for JSON matching output_model and validate it.

        Raises ValueError when the reply is not valid JSON for the model.
        """
        schema = json.dumps(output_model.model_json_schema())
        full_prompt = (
            f"{prompt}\n\nRespond with a single JSON object only, matching this JSON schema:\n{schema}"
        )
        text, usage = await self._complete(full_prompt, f"generate.{output_model.__name__}", temperature)
        try:
            data = output_model.model_validate(extract_json_object(text))
        except (json.JSONDecodeError, ValidationError) as exc:
            raise ValueError(f"Model reply did not match {output_model.__name__}: {exc}") from exc
        return LLMResponse(data=data, usage=usage)

    async def generate_text(self, prompt: str, *, temperature: float | None = None) -> str:
        text, _ = await self._complete(prompt, "generate_text", temperature)
        return text.strip()

    async def stream_text(self, prompt: str, *, temperature: float | None = None) -> AsyncIterator[str]:
        t0 = time.monotonic()
        stream = await self._client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=self.max_tokens,
            temperature=_temperature_for_model(self.model, temperature),
            stream=True,
            stream_options={"include_usage": True},
        )
        input_tokens = output_tokens = 0
        try:
            async for chunk in stream:
                usage = getattr(chunk, "usage", None)
                if usage:
                    input_tokens = getattr(usage, "prompt_tokens", 0) or 0
                    output_tokens = getattr(usage, "completion_tokens", 0) or 0
                choices = getattr(chunk, "choices", None) or []
                if not choices:
                    continue
                delta = getattr(choices[0], "delta", None)
                text = getattr(delta, "content", None) if delta else None
                if text:
                    yield text
        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                await close()
            log_llm_call(
                self.model,
                "stream_text",
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                duration_ms=int((time.monotonic() - t0) * 1000),
            )

    async def embed(self, text: str) -> list[float]:
        response = await self._client.embeddings.create(model=self.embedding_model, input=text)
        return list(response.data[0].embedding)

    async def similarity(self, text_a: str, text_b: str) -> float:
        first = await self.embed(text_a)
        second = await self.embed(text_b)
        return cosine_similarity(first, second)
