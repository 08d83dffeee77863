# core/llm_interface.py
"""
Handles all direct interactions with the Large Language Model that fills in
name tables. Includes the OpenAI-compatible chat completion call with retries,
response cleaning, repair of truncated JSON and token utilities.
"""

# Standard library imports
import asyncio
import functools
import json
import random
import re

# Type hints
from typing import Any

import httpx

# Third-party imports
import structlog
import tiktoken
from pydantic import BaseModel, ValidationError

# Local imports
from config import settings
from core.errors import ProviderError

logger = structlog.get_logger(__name__)

NAMES_JSON_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {"names": {"type": "array", "items": {"type": "string"}}},
    "required": ["names"],
}


class GenerativeNamesOutput(BaseModel):
    """Shape of the JSON object the model is asked to return."""

    names: list[str]


# Token parameter handling
def _completion_token_param(api_base: str) -> str:
    """Return the token count parameter expected by the provider."""
    if "api.openai.com" in api_base or "api.anthropic.com" in api_base:
        return "max_completion_tokens"
    return "max_tokens"


@functools.lru_cache(maxsize=8)
def _get_tokenizer(model_name: str) -> tiktoken.Encoding | None:
    """
    Gets a tiktoken encoder for the given model name, with caching.
    Tries model-specific encoding, then a default, then returns None.
    """
    try:
        try:
            return tiktoken.encoding_for_model(model_name)
        except KeyError:
            logger.debug(
                f"No direct tiktoken encoding for '{model_name}'. Using default '{settings.TIKTOKEN_DEFAULT_ENCODING}'."
            )
            return tiktoken.get_encoding(settings.TIKTOKEN_DEFAULT_ENCODING)
    except Exception as e:
        logger.error(
            f"Could not load a tokenizer for '{model_name}': {e}. Falling back to character estimates."
        )
        return None


def count_tokens(text: str, model_name: str) -> int:
    """Counts the number of tokens in a string for a given model."""
    if not text:
        return 0
    encoder = _get_tokenizer(model_name)
    if encoder:
        return len(encoder.encode(text, allowed_special="all"))
    return int(len(text) / settings.FALLBACK_CHARS_PER_TOKEN)


def truncate_text_by_tokens(
    text: str,
    model_name: str,
    max_tokens: int,
    truncation_marker: str = "\n... (truncated)",
) -> str:
    """
    Truncates text to a maximum number of tokens for a given model.
    Adds a truncation marker if truncation occurs.
    """
    if not text:
        return ""

    encoder = _get_tokenizer(model_name)
    if not encoder:
        max_chars = int(max_tokens * settings.FALLBACK_CHARS_PER_TOKEN)
        if len(text) > max_chars:
            return text[: max(max_chars - len(truncation_marker), 0)] + truncation_marker
        return text

    tokens = encoder.encode(text, allowed_special="all")
    if len(tokens) <= max_tokens:
        return text

    marker_tokens_len = len(encoder.encode(truncation_marker, allowed_special="all"))
    content_tokens_to_keep = max(max_tokens - marker_tokens_len, 1)
    return encoder.decode(tokens[:content_tokens_to_keep]) + truncation_marker


def repair_truncated_json(raw: str) -> str:
    """Close off a JSON object cut short by the token limit.

    Drops anything before the first ``{``, balances quotes, removes a dangling
    empty element or trailing comma and appends missing closing brackets.
    """
    fixed = raw
    start = fixed.find("{")
    if start != -1:
        fixed = fixed[start:]
    if fixed.count('"') % 2 != 0:
        fixed += '"'
    trimmed = fixed.rstrip()
    if trimmed.endswith('""'):
        pos = fixed.rfind(',""')
        if pos != -1:
            fixed = fixed[:pos] + fixed[pos + 3 :]
    last_quote = fixed.rfind('"')
    if last_quote != -1:
        idx = last_quote + 1
        while idx < len(fixed) and fixed[idx].isspace():
            idx += 1
        if idx < len(fixed) and fixed[idx] == ",":
            fixed = fixed[:idx] + fixed[idx + 1 :]
    open_brackets = fixed.count("[") - fixed.count("]")
    if open_brackets > 0:
        fixed += "]" * open_brackets
    open_braces = fixed.count("{") - fixed.count("}")
    if open_braces > 0:
        fixed += "}" * open_braces
    return fixed


class LLMService:
    """Client for an OpenAI-compatible chat completion endpoint.

    Implements the generation capability used by the orchestrator:
    ``await generate(prompt, context)`` returns candidate names or raises
    :class:`ProviderError`.
    """

    def __init__(
        self,
        model_name: str | None = None,
        api_base: str | None = None,
        api_key: str | None = None,
        timeout: float = settings.HTTPX_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        self.model_name = model_name or settings.GENERATION_MODEL
        self.api_base = (api_base or settings.OPENAI_API_BASE).rstrip("/")
        self.api_key = api_key or settings.OPENAI_API_KEY
        # Use a single async client for all requests to reuse connections
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._semaphore = asyncio.Semaphore(settings.MAX_CONCURRENT_LLM_CALLS)
        self.request_count = 0
        self.usage_totals: dict[str, int] = {}
        logger.info(
            f"LLMService initialized for '{self.model_name}' with a concurrency limit of {settings.MAX_CONCURRENT_LLM_CALLS}."
        )

    async def _backoff_delay(self, attempt: int) -> None:
        """Sleep for an exponentially increasing delay with jitter."""
        delay = settings.LLM_RETRY_DELAY_SECONDS * (2**attempt)
        jitter = random.uniform(0, delay / 2)
        await asyncio.sleep(delay + jitter)

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    def _log_llm_usage(self, usage_data: dict[str, int] | None) -> None:
        """Log and accumulate token usage if present in the response."""
        if usage_data and isinstance(usage_data, dict):
            for field_name in ("prompt_tokens", "completion_tokens", "total_tokens"):
                value = usage_data.get(field_name)
                if isinstance(value, int):
                    self.usage_totals[field_name] = (
                        self.usage_totals.get(field_name, 0) + value
                    )
            logger.info(
                f"LLM ('{self.model_name}') Usage - Prompt: {usage_data.get('prompt_tokens', 'N/A')} tk, "
                f"Comp: {usage_data.get('completion_tokens', 'N/A')} tk, Total: {usage_data.get('total_tokens', 'N/A')} tk"
            )
        else:
            logger.debug(
                f"LLM ('{self.model_name}') response missing 'usage' information."
            )

    def _build_payload(self, prompt: str, context: str) -> dict[str, Any]:
        lore = truncate_text_by_tokens(
            context, self.model_name, settings.MAX_LORE_TOKENS
        )
        messages = []
        if lore.strip():
            messages.append(
                {"role": "system", "content": f"World lore and story:\n{lore}"}
            )
        messages.append({"role": "user", "content": prompt})
        return {
            "model": self.model_name,
            "messages": messages,
            "temperature": settings.TEMPERATURE_GENERATION,
            "top_p": settings.LLM_TOP_P,
            _completion_token_param(self.api_base): settings.MAX_GENERATION_TOKENS,
            "response_format": {
                "type": "json_schema",
                "json_schema": {"name": "names", "schema": NAMES_JSON_SCHEMA},
            },
            "stream": False,
        }

    async def _post_non_streaming(
        self, payload: dict[str, Any]
    ) -> tuple[str, dict[str, int] | None]:
        """Send a regular chat completion request."""
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        response = await self._client.post(
            f"{self.api_base}/chat/completions", json=payload, headers=headers
        )
        response.raise_for_status()
        data = response.json()
        raw_text = ""
        if data.get("choices"):
            message = data["choices"][0].get("message")
            if message and message.get("content"):
                raw_text = message["content"]
        if not raw_text:
            raise ValueError(f"Response has no message content: {str(data)[:200]}")
        return raw_text, data.get("usage")

    async def generate(self, prompt: str, context: str) -> list[str]:
        """Ask the model for names; retries transient failures with backoff.

        Raises:
            ProviderError: once every attempt failed or a client error occurred.
        """
        if not prompt or not prompt.strip():
            raise ProviderError("Empty prompt.")
        payload = self._build_payload(prompt, context)
        logger.debug(
            f"Calling LLM '{self.model_name}'. Prompt tokens (est.): {count_tokens(prompt, self.model_name)}."
        )
        async with self._semaphore:
            last_exc: Exception | None = None
            attempts_made = 0
            for attempt in range(max(settings.LLM_RETRY_ATTEMPTS, 1)):
                attempts_made += 1
                try:
                    self.request_count += 1
                    raw_text, usage = await self._post_non_streaming(payload)
                    self._log_llm_usage(usage)
                    return self.parse_names(raw_text)
                except httpx.HTTPStatusError as exc:
                    last_exc = exc
                    status = exc.response.status_code
                    logger.warning(
                        f"LLM ('{self.model_name}' Attempt {attempt + 1}): HTTP status {status}. Body: {exc.response.text[:200]}"
                    )
                    if 400 <= status < 500 and status != 429:
                        logger.error(
                            f"LLM: Client-side error {status}. Aborting retries."
                        )
                        break
                except (httpx.HTTPError, ValueError) as exc:
                    last_exc = exc
                    logger.warning(
                        f"LLM ('{self.model_name}' Attempt {attempt + 1}): {type(exc).__name__}: {exc}"
                    )
                if attempt < settings.LLM_RETRY_ATTEMPTS - 1:
                    await self._backoff_delay(attempt)
        raise ProviderError(
            f"'{self.model_name}' failed after {attempts_made} attempt(s): {last_exc}"
        ) from last_exc

    def parse_names(self, raw_text: str) -> list[str]:
        """Extract the ``names`` array from a model response.

        Raises:
            ValueError: when no usable names can be recovered.
        """
        cleaned = self.clean_model_response(raw_text)
        for candidate in (cleaned, repair_truncated_json(cleaned)):
            try:
                data = json.loads(candidate)
            except json.JSONDecodeError:
                continue
            if isinstance(data, list):
                data = {"names": data}
            try:
                names = GenerativeNamesOutput.model_validate(data).names
            except ValidationError:
                continue
            names = [n.strip() for n in names if isinstance(n, str) and n.strip()]
            if names:
                return names
        raise ValueError(f"Could not parse names from response: {cleaned[:120]!r}")

    def clean_model_response(self, text: str) -> str:
        """Removes reasoning blocks and code fences from a model response."""
        if not isinstance(text, str):
            logger.warning(
                f"clean_model_response received non-string input: {type(text)}. Returning empty string."
            )
            return ""

        cleaned_text = text
        for tag_name in ("think", "thought", "thinking", "reasoning", "analysis"):
            cleaned_text = re.sub(
                rf"<\s*{tag_name}\s*>.*?<\s*/\s*{tag_name}\s*>",
                "",
                cleaned_text,
                flags=re.DOTALL | re.IGNORECASE,
            )
            cleaned_text = re.sub(
                rf"<\s*/?\s*{tag_name}\s*/?\s*>", "", cleaned_text, flags=re.IGNORECASE
            )

        cleaned_text = re.sub(
            r"```(?:[a-zA-Z0-9_-]+)?\s*(.*?)\s*```",
            r"\1",
            cleaned_text,
            flags=re.DOTALL,
        )
        return cleaned_text.strip()
