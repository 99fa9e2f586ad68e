"""
Error taxonomy shared by the resolver, the inference client and the pipeline.
"""

from typing import List, Optional


class TranscriptPipelineError(Exception):
    """Base class for every error raised by this backend."""


class NetworkError(TranscriptPipelineError):
    """A single source was unreachable, timed out or answered non-2xx."""

    def __init__(self, message: str, status: Optional[int] = None, url: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.url = url


class ExtractionToolError(NetworkError):
    """The external subtitle tool is missing, timed out or exited non-zero."""


class RateLimited(TranscriptPipelineError):
    """The inference service answered 429."""


class ParseError(TranscriptPipelineError):
    """A subtitle payload, JSON body or model output could not be decoded."""


class AllSourcesExhausted(TranscriptPipelineError):
    """Every failover source failed."""

    def __init__(self, message: str, errors: Optional[List[Exception]] = None):
        super().__init__(message)
        self.errors = errors or []


class AIProcessingFailure(TranscriptPipelineError):
    """Inference retries were exhausted for one stage or sub-call."""

    def __init__(
        self,
        message: str,
        task_type: Optional[str] = None,
        last_error: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.task_type = task_type
        self.last_error = last_error


class ValidationError(TranscriptPipelineError, ValueError):
    """Malformed caller input, e.g. a video id that is not 11 characters."""
