"""Concurrent, rate-paced embedding of chunk batches."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import cast

from rag_pipeline.config import EmbeddingConfig
from rag_pipeline.errors import BatchIncomplete, EmbeddingRequestFailed
from rag_pipeline.ingest.embedder import EmbeddingClient
from rag_pipeline.types import (
    EmbeddingBatch,
    EmbeddingResponse,
    EmbeddingVector,
    UsageRecord,
    UsageReport,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _Outcome:
    index: int
    response: EmbeddingResponse | None = None
    failure: EmbeddingRequestFailed | None = None


class EmbeddingOrchestrator:
    """Embeds every chunk of a batch with bounded, paced concurrency.

    Scheduling:
    1. A submitter coroutine starts one task per chunk. Before each start it
       waits for a free concurrency slot and, from the second item on, sleeps
       `pacing_seconds` so submissions never burst past the upstream rate limit.
    2. Each task sends exactly one `_Outcome` (success or typed failure) over
       an `asyncio.Queue`. Tasks never touch shared result state.
    3. The calling coroutine is the single aggregator. It places responses by
       their source index, so completion order is irrelevant, and decides when
       the batch has failed.

    `embed_batch` is a join point: whatever the exit path (success, failure,
    or cancellation of the caller), every task it started has finished or been
    cancelled and awaited before it returns or raises.
    """

    def __init__(self, client: EmbeddingClient, config: EmbeddingConfig | None = None) -> None:
        self._client = client
        self.config = config or EmbeddingConfig()

    async def embed_one(self, text: str) -> EmbeddingVector:
        """Embed a single text, typically a query."""

        outcome = await self._request(0, text)
        if outcome.failure is not None:
            raise outcome.failure
        response = cast(EmbeddingResponse, outcome.response)
        return EmbeddingVector(index=0, values=response.values)

    async def embed_batch(self, texts: Sequence[str]) -> EmbeddingBatch:
        """Embed all texts or raise `BatchIncomplete`; never a partial result."""

        total = len(texts)
        if total == 0:
            return EmbeddingBatch(vectors=[], usage=UsageReport())

        logger.info(
            "Embedding batch of %d items (max_concurrency=%d, pacing=%.3fs)",
            total,
            self.config.max_concurrency,
            self.config.pacing_seconds,
        )
        channel: asyncio.Queue[_Outcome] = asyncio.Queue()
        slots = asyncio.Semaphore(self.config.max_concurrency)
        workers: list[asyncio.Task[None]] = []
        submitter = asyncio.create_task(self._submit_all(texts, slots, channel, workers))
        try:
            responses, failures = await self._collect(channel, total)
        finally:
            await _cancel_and_wait([submitter, *workers])

        if failures:
            logger.warning(
                "Embedding batch failed for items %s", [f.index for f in failures]
            )
            raise BatchIncomplete(failures, total)

        vectors: list[EmbeddingVector] = []
        usage = UsageReport()
        for index, slot in enumerate(responses):
            response = cast(EmbeddingResponse, slot)
            vectors.append(EmbeddingVector(index=index, values=response.values))
            usage.records.append(
                UsageRecord(
                    index=index,
                    prompt_tokens=response.prompt_tokens,
                    total_tokens=response.total_tokens,
                )
            )
        logger.info(
            "Embedding batch complete: %d vectors, %d total tokens",
            len(vectors),
            usage.total_tokens,
        )
        return EmbeddingBatch(vectors=vectors, usage=usage)

    async def _submit_all(
        self,
        texts: Sequence[str],
        slots: asyncio.Semaphore,
        channel: asyncio.Queue[_Outcome],
        workers: list[asyncio.Task[None]],
    ) -> None:
        for index, text in enumerate(texts):
            if index and self.config.pacing_seconds:
                await asyncio.sleep(self.config.pacing_seconds)
            await slots.acquire()
            workers.append(asyncio.create_task(self._work(index, text, slots, channel)))

    async def _work(
        self,
        index: int,
        text: str,
        slots: asyncio.Semaphore,
        channel: asyncio.Queue[_Outcome],
    ) -> None:
        try:
            channel.put_nowait(await self._request(index, text))
        finally:
            slots.release()

    async def _request(self, index: int, text: str) -> _Outcome:
        try:
            response = await self._client.embed(text)
        except Exception as exc:
            return _Outcome(index=index, failure=EmbeddingRequestFailed(index, exc))

        expected = self.config.dimension
        if expected is not None and len(response.values) != expected:
            mismatch = ValueError(
                f"expected dimension {expected}, got {len(response.values)}"
            )
            return _Outcome(index=index, failure=EmbeddingRequestFailed(index, mismatch))
        return _Outcome(index=index, response=response)

    async def _collect(
        self, channel: asyncio.Queue[_Outcome], total: int
    ) -> tuple[list[EmbeddingResponse | None], list[EmbeddingRequestFailed]]:
        responses: list[EmbeddingResponse | None] = [None] * total
        failures: list[EmbeddingRequestFailed] = []
        for received in range(1, total + 1):
            outcome = await channel.get()
            if outcome.failure is not None:
                failures.append(outcome.failure)
                if self.config.fail_fast:
                    break
                continue
            responses[outcome.index] = outcome.response
            logger.debug("Embedded item %d (%d/%d)", outcome.index, received, total)
        return responses, failures


async def _cancel_and_wait(tasks: list[asyncio.Task[None]]) -> None:
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
