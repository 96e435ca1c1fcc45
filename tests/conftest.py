"""Shared fixtures for the SurveyLens test suite."""

import asyncio
import json
import re
from types import SimpleNamespace

import pytest

from surveylens.config import LLMConfig, SurveyLensConfig
from surveylens.core.registry import InMemoryBackend, SessionRegistry
from surveylens.inference.summarizer import SummarizationClient

COLUMN_ID_PATTERN = re.compile(r"COLUMN ID: (\S+)")

NEUTRAL_SUMMARY = "Answers are distributed across the listed values. The leading value accounts for the largest share."


def column_id_of(call_kwargs) -> str:
    """Extract the column id from the user prompt of a completion call."""
    prompt = call_kwargs["messages"][-1]["content"]
    return COLUMN_ID_PATTERN.search(prompt).group(1)


def summary_json(column_id: str, summary: str = NEUTRAL_SUMMARY) -> str:
    return json.dumps({"column_id": column_id, "summary": summary})


class FakeCompletions:
    """Stands in for client.chat.completions with a scripted async handler."""

    def __init__(self, handler):
        self.handler = handler
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        content = await self.handler(kwargs)
        message = SimpleNamespace(content=content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeOpenAI:
    """Minimal async OpenAI-shaped client."""

    def __init__(self, handler=None):
        async def default(kwargs):
            return summary_json(column_id_of(kwargs))

        self.completions = FakeCompletions(handler or default)
        self.chat = SimpleNamespace(completions=self.completions)


def llm_config(**overrides) -> LLMConfig:
    values = dict(api_key="test-key", timeout=1.0, retry_attempts=1, retry_backoff=0.0)
    values.update(overrides)
    return LLMConfig(**values)


@pytest.fixture
def fake_openai():
    return FakeOpenAI()


@pytest.fixture
def summarizer(fake_openai):
    return SummarizationClient(llm_config(), client=fake_openai)


@pytest.fixture
def config():
    cfg = SurveyLensConfig()
    cfg.llm = llm_config()
    return cfg


@pytest.fixture
def registry():
    return SessionRegistry(InMemoryBackend())


@pytest.fixture
def scenario_a_csv():
    """Timestamp, a 3-valued major and bucketed GPA over 10 rows."""
    rows = [
        ("2024/01/01 10:00", "Computer Science", "3.5 - 4.0"),
        ("2024/01/01 10:05", "Mathematics", "3.0 - 3.5"),
        ("2024/01/01 10:10", "Computer Science", "3.5 - 4.0"),
        ("2024/01/01 10:15", "Physics", "2.5 - 3.0"),
        ("2024/01/01 10:20", "Mathematics", "3.0 - 3.5"),
        ("2024/01/01 10:25", "Computer Science", "3.0 - 3.5"),
        ("2024/01/01 10:30", "Physics", "Below 2.5"),
        ("2024/01/01 10:35", "Computer Science", "3.5 - 4.0"),
        ("2024/01/01 10:40", "Mathematics", "2.5 - 3.0"),
        ("2024/01/01 10:45", "Physics", "3.0 - 3.5"),
    ]
    return "Timestamp,Major,GPA\n" + "\n".join(",".join(r) for r in rows) + "\n"


@pytest.fixture
def five_question_csv():
    """Five chartable questions over 12 rows."""
    header = "Timestamp,Q1,Q2,Q3,Q4,Q5"
    lines = [header]
    options = ["Yes", "No", "Maybe"]
    for i in range(12):
        answers = [options[(i + k) % 3] for k in range(5)]
        lines.append(f"2024/02/01 09:{i:02d}," + ",".join(answers))
    return "\n".join(lines) + "\n"


def run(coro):
    """Drive a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)
