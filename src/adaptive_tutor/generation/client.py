"""External text generation with timeout and bounded retries."""

import asyncio
from typing import Protocol

import openai
import structlog
from openai import AsyncOpenAI

from adaptive_tutor.errors import GenerationError

logger = structlog.get_logger()

SYSTEM_PROMPT = (
    "You are a patient, encouraging tutor. Answer the student's request "
    "following the instructions in the prompt exactly."
)


class Generator(Protocol):
    async def generate(self, prompt: str) -> str: ...


class OpenAIGenerator:
    """Single-shot chat completion call.

    Args:
        api_key: OpenAI API key.
        model: Chat model name.
        temperature: Sampling temperature.
    """

    def __init__(self, api_key: str | None, model: str = "gpt-4o-mini", temperature: float = 0.7):
        self.client = AsyncOpenAI(api_key=api_key)
        self.model = model
        self.temperature = temperature

    async def generate(self, prompt: str) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
            )
        except openai.OpenAIError as e:
            raise GenerationError(str(e)) from e

        content = response.choices[0].message.content
        if not content:
            raise GenerationError("empty completion")
        return content.strip()


class RetryingGenerator:
    """Wraps a generator with a per-attempt timeout and exponential backoff.

    Timeouts and GenerationError are retried; after the last attempt the
    error is raised as GenerationError. Cancellation by the caller propagates.

    Args:
        inner: Generator performing the actual call.
        timeout: Seconds allowed per attempt.
        max_attempts: Total attempts, including the first.
        backoff: Base delay; attempt ``n`` waits ``backoff * 2**n`` before retrying.
    """

    def __init__(
        self,
        inner: Generator,
        timeout: float = 30.0,
        max_attempts: int = 3,
        backoff: float = 2.0,
    ):
        self.inner = inner
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.backoff = backoff

    @property
    def backoff_delays(self) -> list[float]:
        return [self.backoff * 2**attempt for attempt in range(self.max_attempts - 1)]

    async def generate(self, prompt: str) -> str:
        delays = self.backoff_delays
        last_error: Exception | None = None

        for attempt in range(self.max_attempts):
            try:
                return await asyncio.wait_for(self.inner.generate(prompt), timeout=self.timeout)
            except (GenerationError, TimeoutError) as e:
                last_error = e
                logger.warning(
                    "generation_attempt_failed",
                    attempt=attempt + 1,
                    max_attempts=self.max_attempts,
                    error=str(e) or type(e).__name__,
                )

            if attempt < len(delays):
                delay = delays[attempt]
                if delay > 0:
                    logger.info("generation_retrying", delay_seconds=delay, attempt=attempt + 2)
                    await asyncio.sleep(delay)

        logger.error("generation_failed", attempts=self.max_attempts)
        raise GenerationError(f"generation failed after {self.max_attempts} attempts") from last_error
