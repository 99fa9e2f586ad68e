import os
import sys
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Union

import pytest

# Make config/, models/ and services/ importable as top-level packages
BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

from models.transcript import TimedEntry  # noqa: E402
from services.llm.client import InferenceClient, TaskType  # noqa: E402
from services.llm.prompts import EnrichmentPrompts  # noqa: E402

Reply = Union[str, BaseException]


class FakeChatClient:
    """Stands in for AsyncOpenAI: ``chat.completions.create`` answers via ``responder``."""

    def __init__(self, responder: Callable[[Dict[str, Any]], Reply]):
        self.responder = responder
        self.requests: List[Dict[str, Any]] = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    async def _create(self, **kwargs):
        self.requests.append(kwargs)
        reply = self.responder(kwargs)
        if isinstance(reply, BaseException):
            raise reply
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=reply))])


TIPS = "learning_tips"


def task_of(request: Dict[str, Any]) -> str:
    """Recover the task from the system prompt of a chat request."""
    prompt = request["messages"][0]["content"]
    if prompt.startswith("You are a professional translator"):
        return TaskType.TRANSLATION.value
    return {
        EnrichmentPrompts.TRANSCRIPT_FIX_SYSTEM: TaskType.TRANSCRIPT_FIX.value,
        EnrichmentPrompts.SENTENCE_SPLIT_SYSTEM: TaskType.SENTENCE_SPLIT.value,
        EnrichmentPrompts.PHRASE_EXTRACT_SYSTEM: TaskType.PHRASE_EXTRACT.value,
        EnrichmentPrompts.COMPLEXITY_SYSTEM: TaskType.ANALYSIS.value,
        EnrichmentPrompts.LEARNING_TIPS_SYSTEM: TIPS,
    }[prompt]


def by_task(replies: Dict[str, Reply]) -> Callable[[Dict[str, Any]], Reply]:
    """Responder answering per task; tasks without a reply get an empty completion."""

    def respond(request):
        return replies.get(task_of(request), "")

    return respond


@pytest.fixture
def make_client():
    """
    Build an InferenceClient over a FakeChatClient, with no backoff.

    ``responder`` is a callable taking the request kwargs, or a dict of replies per task.
    """

    def factory(responder, **kwargs):
        if isinstance(responder, dict):
            responder = by_task(responder)
        kwargs.setdefault("rate_limit_backoff", 0)
        kwargs.setdefault("retry_backoff", 0)
        fake = FakeChatClient(responder)
        return InferenceClient(client=fake, **kwargs), fake

    return factory


@pytest.fixture
def disabled_client():
    return InferenceClient(api_key="")


@pytest.fixture
def sample_entries():
    return [
        TimedEntry(text="Hello world.", start=0, duration=2),
        TimedEntry(text="This is a test", start=2, duration=3),
    ]


@pytest.fixture
def lesson_entries():
    return [
        TimedEntry(text="Thank you for joining", start=0.0, duration=2.0),
        TimedEntry(text="today's lesson.", start=2.0, duration=1.5),
        TimedEntry(text="How are you doing?", start=3.5, duration=2.0),
        TimedEntry(text="Pronunciation can feel like a piece of cake", start=5.5, duration=3.0),
        TimedEntry(text="once things make sense.", start=8.5, duration=2.5),
        TimedEntry(text="Let's begin", start=11.0, duration=1.0),
    ]
