import json

import httpx
import pytest
from core import llm_interface
from core.errors import ProviderError
from core.llm_interface import LLMService, repair_truncated_json


@pytest.fixture(autouse=True)
def _offline(monkeypatch):
    monkeypatch.setattr(llm_interface, "_get_tokenizer", lambda model_name: None)

    async def _no_sleep(self, attempt):
        return None

    monkeypatch.setattr(LLMService, "_backoff_delay", _no_sleep)


def _completion(content: str) -> dict:
    return {
        "choices": [{"message": {"content": content}}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
    }


def _service(handler) -> LLMService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LLMService(
        model_name="test-model",
        api_base="http://llm.test/v1/",
        api_key="secret",
        client=client,
    )


@pytest.mark.asyncio
async def test_generate_sends_lore_and_returns_names():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_completion('{"names": ["Alaric", " Bran ", ""]}'))

    service = _service(handler)
    names = await service.generate("Give names", "Salt traders of the delta.")
    await service.aclose()

    assert names == ["Alaric", "Bran"]
    request = seen[0]
    assert str(request.url) == "http://llm.test/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer secret"
    payload = json.loads(request.content)
    assert payload["model"] == "test-model"
    assert payload["stream"] is False
    assert "max_tokens" in payload
    assert payload["messages"][0]["role"] == "system"
    assert "Salt traders" in payload["messages"][0]["content"]
    assert payload["messages"][1] == {"role": "user", "content": "Give names"}
    assert service.usage_totals["total_tokens"] == 15


@pytest.mark.asyncio
async def test_server_error_is_retried():
    responses = iter(
        [
            httpx.Response(500, text="overloaded"),
            httpx.Response(200, json=_completion('["Cedric"]')),
        ]
    )
    service = _service(lambda request: next(responses))

    assert await service.generate("p", "") == ["Cedric"]
    assert service.request_count == 2


@pytest.mark.asyncio
async def test_client_error_aborts_without_retry():
    service = _service(lambda request: httpx.Response(400, text="bad model"))

    with pytest.raises(ProviderError, match="after 1 attempt"):
        await service.generate("p", "")
    assert service.request_count == 1


@pytest.mark.asyncio
async def test_unparseable_content_exhausts_attempts():
    service = _service(
        lambda request: httpx.Response(200, json=_completion("I cannot help with that."))
    )

    with pytest.raises(ProviderError, match="after 3 attempt"):
        await service.generate("p", "")
    assert service.request_count == 3


@pytest.mark.asyncio
async def test_missing_content_is_a_failure():
    service = _service(lambda request: httpx.Response(200, json={"choices": []}))

    with pytest.raises(ProviderError):
        await service.generate("p", "")


@pytest.mark.asyncio
async def test_empty_prompt_is_rejected():
    service = _service(lambda request: httpx.Response(200, json=_completion("[]")))

    with pytest.raises(ProviderError, match="Empty prompt"):
        await service.generate("  ", "lore")
    assert service.request_count == 0


def test_parse_names_strips_reasoning_and_fences():
    service = _service(lambda request: httpx.Response(200))
    raw = '<think>maybe Bob?</think>\n```json\n{"names": ["Alaric", "Bran"]}\n```'

    assert service.parse_names(raw) == ["Alaric", "Bran"]


def test_parse_names_recovers_truncated_output():
    service = _service(lambda request: httpx.Response(200))

    assert service.parse_names('{"names": ["Alaric", "Bran", "Ced') == [
        "Alaric",
        "Bran",
        "Ced",
    ]


def test_repair_truncated_json_drops_trailing_comma():
    assert json.loads(repair_truncated_json('Sure! {"names": ["A", "B",')) == {
        "names": ["A", "B"]
    }
