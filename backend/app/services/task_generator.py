"""Generative collaborator seam: prompt in, validated task set (or failure) out."""
from __future__ import annotations

import asyncio
import logging
from functools import lru_cache
from typing import Optional

import openai

from app.core.config import settings
from app.observability.tracing import trace
from app.services.project_descriptor import ProjectDescriptor
from app.services.prompt_builder import SYSTEM_PROMPT, build_task_prompt
from app.services.response_parser import parse_task_set
from app.services.task_set import (
    COLLABORATOR_ERROR,
    COLLABORATOR_RATE_LIMITED,
    COLLABORATOR_TIMEOUT,
    COLLABORATOR_UNAVAILABLE,
    GenerationFailure,
    GenerationOutcome,
)

logger = logging.getLogger(__name__)


class GeneratorUnavailable(Exception):
    """No text generator is configured for this process."""


class TextGenerator:
    """Base interface for text-generation providers."""

    name = "base"

    async def complete(self, prompt: str) -> str:
        raise NotImplementedError


class OpenAITextGenerator(TextGenerator):
    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 2048,
        client: Optional[openai.AsyncOpenAI] = None,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client or openai.AsyncOpenAI(api_key=api_key)

    async def complete(self, prompt: str) -> str:
        completion = await self._client.chat.completions.create(
            model=self.model,
            response_format={"type": "json_object"},
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        )
        return completion.choices[0].message.content or ""


class UnavailableTextGenerator(TextGenerator):
    name = "unavailable"

    async def complete(self, prompt: str) -> str:
        raise GeneratorUnavailable("OPENAI_API_KEY is not configured")


class TaskGenerator:
    """Single entry point the pipeline uses to obtain a generated task set.

    Collaborator errors, timeouts and malformed output come back as
    ``GenerationFailure`` values; nothing here raises for those cases.
    """

    def __init__(self, text_generator: TextGenerator, timeout_seconds: float = 30.0) -> None:
        self.text_generator = text_generator
        self.timeout_seconds = timeout_seconds

    @property
    def provider(self) -> str:
        return self.text_generator.name

    async def generate(self, descriptor: ProjectDescriptor) -> GenerationOutcome:
        prompt = build_task_prompt(descriptor)
        metadata = {"provider": self.provider, "timeline": descriptor.timeline, "priority": descriptor.priority}
        with trace("subtasks.generate.llm", metadata=metadata):
            try:
                text = await asyncio.wait_for(self.text_generator.complete(prompt), timeout=self.timeout_seconds)
            except GeneratorUnavailable as exc:
                return GenerationFailure(COLLABORATOR_UNAVAILABLE, str(exc), error=exc)
            except (asyncio.TimeoutError, openai.APITimeoutError) as exc:
                logger.warning("Task generation timed out after %ss", self.timeout_seconds)
                return GenerationFailure(COLLABORATOR_TIMEOUT, f"Generator timed out after {self.timeout_seconds}s", error=exc)
            except openai.RateLimitError as exc:
                logger.warning("Task generation rate limited: %s", exc)
                return GenerationFailure(COLLABORATOR_RATE_LIMITED, "Generator rate limit reached", error=exc)
            except openai.OpenAIError as exc:
                logger.warning("Task generation failed: %s", exc)
                return GenerationFailure(COLLABORATOR_ERROR, f"Generator error: {exc}", error=exc)
            except Exception as exc:
                logger.exception("Unexpected error from text generator %s", self.provider)
                return GenerationFailure(COLLABORATOR_ERROR, f"Generator error: {exc}", error=exc)

        with trace("subtasks.generate.parse", metadata={"provider": self.provider, "length": len(text or "")}):
            outcome = parse_task_set(text)
        if isinstance(outcome, GenerationFailure):
            logger.warning("Generator response rejected (%s): %s", outcome.kind, outcome.message)
        return outcome


@lru_cache
def get_task_generator() -> TaskGenerator:
    """FastAPI dependency; the provider is chosen once per process."""
    if settings.openai_api_key:
        text_generator: TextGenerator = OpenAITextGenerator(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            temperature=settings.generation_temperature,
            max_tokens=settings.generation_max_tokens,
        )
    else:
        logger.info("OPENAI_API_KEY missing; subtask generation will use the fallback template.")
        text_generator = UnavailableTextGenerator()
    return TaskGenerator(text_generator, timeout_seconds=settings.generation_timeout_seconds)
