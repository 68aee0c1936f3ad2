from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import BaseModel

from deepresearch.llm_client import LLMClient, cosine_similarity, extract_json_object


class Answer(BaseModel):
    answer: str
    score: float


def completion(text: str):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
        usage=SimpleNamespace(prompt_tokens=11, completion_tokens=7, total_tokens=18),
    )


def make_client(*responses) -> tuple[LLMClient, MagicMock]:
    openai_client = MagicMock()
    openai_client.chat.completions.create = AsyncMock(side_effect=list(responses))
    return LLMClient(openai_client, model="test/model"), openai_client


def test_extract_json_object_handles_code_fences():
    assert extract_json_object('```json\n{"a": 1}\n```') == {"a": 1}
    assert extract_json_object('Sure! {"a": {"b": 2}} Hope that helps.') == {"a": {"b": 2}}
    with pytest.raises(json.JSONDecodeError):
        extract_json_object("no json here")


def test_cosine_similarity_is_clamped():
    assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
    assert cosine_similarity([1, 0], [-1, 0]) == 0.0
    assert cosine_similarity([], [1]) == 0.0
    assert cosine_similarity([0, 0], [1, 1]) == 0.0


@pytest.mark.asyncio
async def test_generate_validates_structured_output():
    client, openai_client = make_client(completion('{"answer": "yes", "score": 0.9}'))

    with patch("deepresearch.llm_client.log_llm_call") as log_call:
        response = await client.generate("Is it?", Answer)

    assert response.data == Answer(answer="yes", score=0.9)
    assert response.usage.total_tokens == 18
    kwargs = openai_client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "test/model"
    assert "JSON schema" in kwargs["messages"][0]["content"]
    log_call.assert_called_once()


@pytest.mark.asyncio
async def test_generate_raises_value_error_on_bad_reply():
    client, _ = make_client(completion('{"answer": "yes"}'), completion("not json"))

    with pytest.raises(ValueError):
        await client.generate("Is it?", Answer)
    with pytest.raises(ValueError):
        await client.generate("Is it?", Answer)


@pytest.mark.asyncio
async def test_generate_text_logs_and_reraises_transport_errors():
    client, _ = make_client(RuntimeError("gateway down"))

    with patch("deepresearch.llm_client.log_llm_call") as log_call:
        with pytest.raises(RuntimeError):
            await client.generate_text("hello")

    assert log_call.call_args.kwargs["error"] == "gateway down"


@pytest.mark.asyncio
async def test_stream_text_yields_deltas():
    async def chunks():
        for text in ("Hel", None, "lo"):
            yield SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))], usage=None)
        yield SimpleNamespace(choices=[], usage=SimpleNamespace(prompt_tokens=3, completion_tokens=2))

    client, _ = make_client(chunks())

    parts = [part async for part in client.stream_text("hi")]

    assert "".join(parts) == "Hello"


@pytest.mark.asyncio
async def test_similarity_uses_embeddings():
    openai_client = MagicMock()
    openai_client.embeddings.create = AsyncMock(
        side_effect=[
            SimpleNamespace(data=[SimpleNamespace(embedding=[1.0, 0.0])]),
            SimpleNamespace(data=[SimpleNamespace(embedding=[1.0, 0.0])]),
        ]
    )
    client = LLMClient(openai_client, model="test/model", embedding_model="test/embed")

    assert await client.similarity("a", "b") == pytest.approx(1.0)
    assert openai_client.embeddings.create.call_args.kwargs["model"] == "test/embed"
