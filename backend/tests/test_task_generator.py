from __future__ import annotations

import asyncio
import json
from datetime import date

import httpx
import openai
import pytest

from app.services.project_descriptor import normalize_descriptor
from app.services.task_generator import GeneratorUnavailable, TaskGenerator, TextGenerator, UnavailableTextGenerator
from app.services.task_set import (
    COLLABORATOR_ERROR,
    COLLABORATOR_RATE_LIMITED,
    COLLABORATOR_TIMEOUT,
    COLLABORATOR_UNAVAILABLE,
    MALFORMED_RESPONSE,
    GeneratedTaskSet,
    GenerationFailure,
)

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


class FakeTextGenerator(TextGenerator):
    name = "fake"

    def __init__(self, reply: str = "", error: Exception | None = None, delay: float = 0.0) -> None:
        self.reply = reply
        self.error = error
        self.delay = delay
        self.prompts: list[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.reply


def _descriptor():
    return normalize_descriptor(name="Docs", description="Write docs", timeline=14, today=date(2024, 1, 1))


def _generate(text_generator: TextGenerator, timeout: float = 5.0):
    return asyncio.run(TaskGenerator(text_generator, timeout_seconds=timeout).generate(_descriptor()))


def test_valid_reply_becomes_task_set() -> None:
    reply = json.dumps({"subtasks": [{"title": "Outline", "description": "Outline docs"}]})
    fake = FakeTextGenerator(reply=reply)

    outcome = _generate(fake)

    assert isinstance(outcome, GeneratedTaskSet)
    assert outcome.subtasks[0].title == "Outline"
    assert "- Name: Docs" in fake.prompts[0]


def test_refusal_text_is_malformed() -> None:
    outcome = _generate(FakeTextGenerator(reply="Sorry, I can't help with that."))

    assert isinstance(outcome, GenerationFailure)
    assert outcome.kind == MALFORMED_RESPONSE


def test_slow_generator_times_out() -> None:
    outcome = _generate(FakeTextGenerator(reply="{}", delay=1.0), timeout=0.01)

    assert isinstance(outcome, GenerationFailure)
    assert outcome.kind == COLLABORATOR_TIMEOUT


@pytest.mark.parametrize(
    ("error", "kind"),
    [
        (GeneratorUnavailable("no key"), COLLABORATOR_UNAVAILABLE),
        (openai.APITimeoutError(request=_REQUEST), COLLABORATOR_TIMEOUT),
        (
            openai.RateLimitError(
                "slow down", response=httpx.Response(429, request=_REQUEST), body=None
            ),
            COLLABORATOR_RATE_LIMITED,
        ),
        (openai.OpenAIError("boom"), COLLABORATOR_ERROR),
        (RuntimeError("unexpected"), COLLABORATOR_ERROR),
    ],
)
def test_collaborator_errors_become_failures(error, kind) -> None:
    outcome = _generate(FakeTextGenerator(error=error))

    assert isinstance(outcome, GenerationFailure)
    assert outcome.kind == kind
    assert outcome.error is error


def test_unavailable_generator_reports_failure() -> None:
    generator = TaskGenerator(UnavailableTextGenerator())

    outcome = asyncio.run(generator.generate(_descriptor()))

    assert generator.provider == "unavailable"
    assert isinstance(outcome, GenerationFailure)
    assert outcome.kind == COLLABORATOR_UNAVAILABLE
