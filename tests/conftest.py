# tests/conftest.py
import os
import sys

import pytest

# Ensure repository root is on PYTHONPATH for tests
repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if repo_root not in sys.path:
    sys.path.insert(0, repo_root)

# Keep tests quiet and offline before config is imported
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("ENABLE_RICH_PROGRESS", "false")
os.environ.setdefault("LOG_FILE", "")

from core.errors import ProviderError  # noqa: E402

SCENARIO_DSL = """NAME = {
    character_names = {
        name1 = { }
        name2 = { weight = 50
            MY_KEY }
    }
}
"""


class FakeGenerator:
    """Stands in for the LLM provider; records every call."""

    def __init__(self, names=None, fail_for=(), delay=0.0):
        self.names = list(names) if names is not None else ["Alaric", "Bran"]
        self.fail_for = tuple(fail_for)
        self.delay = delay
        self.calls: list[tuple[str, str]] = []
        self.request_count = 0

    async def generate(self, prompt: str, context: str) -> list[str]:
        import asyncio

        self.calls.append((prompt, context))
        self.request_count += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        for marker in self.fail_for:
            if marker in prompt:
                raise ProviderError(f"quota exceeded for {marker}")
        return list(self.names)


@pytest.fixture
def fake_generator():
    return FakeGenerator()


@pytest.fixture
def scenario_dsl():
    return SCENARIO_DSL
