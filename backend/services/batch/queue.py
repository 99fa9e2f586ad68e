"""
Rate-limited batch execution of enrichment requests.

Jobs (lists of requests) are taken one at a time from a FIFO queue. A job runs
in fixed-size chunks: the members of a chunk run concurrently, and every
member settles before the next chunk starts.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from config.settings import settings
from services.errors import TranscriptPipelineError


logger = logging.getLogger(__name__)

FULFILLED = "fulfilled"
REJECTED = "rejected"


@dataclass
class BatchRequest:
    type: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class BatchOutcome:
    """Settled result of one request; exactly one of value/error is meaningful."""

    index: int
    status: str
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.status == FULFILLED


Executor = Callable[[BatchRequest], Awaitable[Any]]
_Job = Tuple[List[BatchRequest], "asyncio.Future[List[BatchOutcome]]"]


class BatchQueue:
    """
    FIFO of batch jobs drained by a single worker task.

    The worker starts on the first submit and exits once the queue is empty.
    Delays: ``chunk_delay`` between chunks of one job, ``cooldown`` after each job.
    """

    def __init__(
        self,
        executor: Executor,
        chunk_size: int = None,
        chunk_delay: float = None,
        cooldown: float = None,
    ):
        self.executor = executor
        self.chunk_size = chunk_size or settings.BATCH_CHUNK_SIZE
        self.chunk_delay = chunk_delay if chunk_delay is not None else settings.BATCH_CHUNK_DELAY
        self.cooldown = cooldown if cooldown is not None else settings.BATCH_COOLDOWN

        self._jobs: "asyncio.Queue[_Job]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._active: Optional[_Job] = None

    @property
    def pending_jobs(self) -> int:
        return self._jobs.qsize()

    @property
    def is_processing(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def submit(self, requests: Sequence[BatchRequest]) -> List[BatchOutcome]:
        """
        Queue a job and wait for it.

        Returns one outcome per request, in submission order. A failing request
        becomes a rejected outcome and never affects its siblings.
        """
        future = asyncio.get_running_loop().create_future()
        self._jobs.put_nowait((list(requests), future))

        if not self.is_processing:
            self._worker = asyncio.create_task(self._drain(), name="batch-queue-worker")

        return await future

    async def _drain(self) -> None:
        try:
            while not self._jobs.empty():
                self._active = self._jobs.get_nowait()
                requests, future = self._active
                logger.info("📦 Batch job started: %d requests (%d queued)", len(requests), self.pending_jobs)

                try:
                    outcomes = await self._run_job(requests)
                except Exception as e:
                    logger.exception("❌ Batch job failed")
                    if not future.done():
                        future.set_exception(e)
                else:
                    if not future.done():
                        future.set_result(outcomes)
                    rejected = sum(1 for outcome in outcomes if not outcome.ok)
                    logger.info("✅ Batch job finished: %d fulfilled, %d rejected", len(outcomes) - rejected, rejected)

                self._active = None
                await asyncio.sleep(self.cooldown)
        except asyncio.CancelledError:
            if self._active is not None and not self._active[1].done():
                self._active[1].set_exception(TranscriptPipelineError("Batch queue closed"))
            self._active = None
            raise

    async def _run_job(self, requests: List[BatchRequest]) -> List[BatchOutcome]:
        outcomes: List[BatchOutcome] = []

        for offset in range(0, len(requests), self.chunk_size):
            if offset:
                await asyncio.sleep(self.chunk_delay)

            chunk = requests[offset:offset + self.chunk_size]
            results = await asyncio.gather(
                *(self._execute(request) for request in chunk),
                return_exceptions=True,
            )

            for index, result in enumerate(results, start=offset):
                if isinstance(result, BaseException):
                    logger.warning("⚠️ Batch request %d (%s) failed: %s", index, requests[index].type, result)
                    outcomes.append(BatchOutcome(index=index, status=REJECTED, error=result))
                else:
                    outcomes.append(BatchOutcome(index=index, status=FULFILLED, value=result))

        return outcomes

    async def _execute(self, request: BatchRequest) -> Any:
        return await self.executor(request)

    async def close(self) -> None:
        """Stop the worker and fail every job that has not finished."""
        if self.is_processing:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass

        while not self._jobs.empty():
            _, future = self._jobs.get_nowait()
            if not future.done():
                future.set_exception(TranscriptPipelineError("Batch queue closed"))
