"""
Inference client for the remote text-inference service.
Talks to OpenRouter's OpenAI-compatible API and picks a free model per task.
"""

import asyncio
import logging
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Union

import openai
from openai import AsyncOpenAI

from config.settings import settings
from services.errors import AIProcessingFailure, RateLimited


logger = logging.getLogger(__name__)


class TaskType(str, Enum):
    TRANSCRIPT_FIX = "transcript_fix"
    SENTENCE_SPLIT = "sentence_split"
    PHRASE_EXTRACT = "phrase_extract"
    TRANSLATION = "translation"
    ANALYSIS = "analysis"


class Model:
    """Free OpenRouter models and what they are good at."""

    MISTRAL = "mistralai/mistral-7b-instruct:free"  # fast, segmentation
    LLAMA2 = "meta-llama/llama-2-13b-chat:free"  # language understanding
    GEMMA = "google/gemma-7b-it:free"  # multilingual
    HERMES = "nousresearch/nous-hermes-2-mixtral-8x7b-sft:free"  # correction, analysis


DEFAULT_MODEL = Model.MISTRAL

TASK_MODELS: Mapping[TaskType, str] = MappingProxyType({
    TaskType.TRANSCRIPT_FIX: Model.HERMES,
    TaskType.SENTENCE_SPLIT: Model.MISTRAL,
    TaskType.PHRASE_EXTRACT: Model.LLAMA2,
    TaskType.TRANSLATION: Model.GEMMA,
    TaskType.ANALYSIS: Model.HERMES,
})

# Status codes worth another attempt besides 429 and 5xx
_RETRYABLE_STATUS = {408, 409}

Messages = List[Dict[str, str]]


class _EmptyCompletion(Exception):
    """The service answered 200 without any text."""


def select_model(task_type: Union[TaskType, str]) -> str:
    """Model for a task type; unknown task types get the default model."""
    try:
        return TASK_MODELS[TaskType(task_type)]
    except ValueError:
        return DEFAULT_MODEL


# Global client instance
_inference_client = None


def get_inference_client() -> "InferenceClient":
    """Get or create the global inference client."""
    global _inference_client
    if _inference_client is None:
        _inference_client = InferenceClient()
    return _inference_client


class InferenceClient:
    """
    Request/retry wrapper around the chat completions endpoint.

    Retry policy (one shared attempt limit):
    - 429: wait ``attempt x rate_limit_backoff`` seconds, then retry
    - timeouts, connection errors, 5xx, empty completions and any other
      failure: wait ``attempt x retry_backoff``
    - any other 4xx fails immediately
    Running out of attempts raises AIProcessingFailure carrying the last error.
    """

    def __init__(
        self,
        api_key: str = None,
        base_url: str = None,
        timeout: float = None,
        max_attempts: int = None,
        rate_limit_backoff: float = None,
        retry_backoff: float = None,
        client: Optional[Any] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.OPENROUTER_API_KEY
        self.base_url = base_url or settings.OPENROUTER_BASE_URL
        self.timeout = timeout or settings.AI_TIMEOUT
        self.max_attempts = max_attempts or settings.AI_MAX_ATTEMPTS
        self.rate_limit_backoff = (
            rate_limit_backoff if rate_limit_backoff is not None else settings.AI_RATE_LIMIT_BACKOFF
        )
        self.retry_backoff = retry_backoff if retry_backoff is not None else settings.AI_RETRY_BACKOFF

        self.temperature = settings.AI_TEMPERATURE
        self.top_p = settings.AI_TOP_P
        self.default_max_tokens = settings.AI_DEFAULT_MAX_TOKENS

        self._client = client
        self.calls = 0  # attempts sent, including retries

    @property
    def enabled(self) -> bool:
        return self._client is not None or bool(self.api_key)

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy client initialization."""
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
                default_headers={
                    "HTTP-Referer": settings.FRONTEND_URL,
                    "X-Title": settings.APP_TITLE,
                },
            )
        return self._client

    async def invoke(
        self,
        task_type: Union[TaskType, str],
        messages: Messages,
        max_tokens: int = None,
    ) -> str:
        """
        Run one chat completion for a task.

        Args:
            task_type: Selects the model
            messages: Chat messages ({"role", "content"})
            max_tokens: Response length limit

        Returns:
            Generated text

        Raises:
            AIProcessingFailure: inference disabled, non-retryable error, or attempts exhausted
        """
        task = task_type.value if isinstance(task_type, TaskType) else str(task_type)
        if not self.enabled:
            raise AIProcessingFailure("Inference is not configured (no API key)", task_type=task)

        model = select_model(task_type)
        max_tokens = max_tokens or self.default_max_tokens
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._complete(model, messages, max_tokens)
            except openai.RateLimitError as e:
                last_error = RateLimited(str(e))
                wait = attempt * self.rate_limit_backoff
                logger.warning("⏳ Rate limited on %s (attempt %d/%d)", task, attempt, self.max_attempts)
            except openai.APIStatusError as e:
                if e.status_code < 500 and e.status_code not in _RETRYABLE_STATUS:
                    raise AIProcessingFailure(
                        f"AI processing failed: HTTP {e.status_code}", task_type=task, last_error=e
                    ) from e
                last_error = e
                wait = attempt * self.retry_backoff
                logger.warning("🔄 %s request failed with HTTP %d (attempt %d/%d)", task, e.status_code, attempt, self.max_attempts)
            except Exception as e:
                # Connection errors, timeouts, undecodable bodies, empty completions
                last_error = e
                wait = attempt * self.retry_backoff
                logger.warning("🔄 %s request failed (attempt %d/%d): %s", task, attempt, self.max_attempts, e)

            if attempt < self.max_attempts:
                await asyncio.sleep(wait)

        raise AIProcessingFailure(
            f"AI processing failed after {self.max_attempts} attempts: {last_error}",
            task_type=task,
            last_error=last_error,
        ) from last_error

    async def _complete(self, model: str, messages: Messages, max_tokens: int) -> str:
        self.calls += 1
        response = await asyncio.wait_for(
            self.client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=self.temperature,
                top_p=self.top_p,
            ),
            timeout=self.timeout,
        )

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise _EmptyCompletion(f"Empty completion from {model}")
        return content
