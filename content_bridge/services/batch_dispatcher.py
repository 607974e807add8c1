"""Chunked, concurrency-bounded fan-out of text units to the translation client."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Callable, List, Optional, Sequence, Union

from content_bridge.exceptions import ContentBridgeError
from content_bridge.services.models import (
    BatchItem,
    BatchItemError,
    BatchItemResult,
    BatchResult,
    TranslationOptions,
)
from content_bridge.utils.helpers import chunk_items

if TYPE_CHECKING:  # pragma: no cover - import for typing only
    from content_bridge.chains.translation_chain import TranslationClient

LOGGER = logging.getLogger(__name__)

ChunkCallback = Callable[[List[BatchItemResult], List[BatchItemError]], Awaitable[None]]

Outcome = Union[BatchItemResult, BatchItemError]


class BatchDispatcher:
    """Runs batches of items through a :class:`TranslationClient`.

    Items are split into consecutive chunks of ``concurrency_limit``. All
    items of a chunk are in flight together; the next chunk starts after the
    whole chunk settled and ``inter_chunk_delay`` seconds passed. One item's
    failure never affects the others.
    """

    def __init__(self, client: "TranslationClient") -> None:
        self._client = client

    async def _translate_item(
        self,
        item: BatchItem,
        target_lang: str,
        source_lang: str,
        options: Optional[TranslationOptions],
    ) -> Outcome:
        try:
            result = await self._client.translate(item.text, target_lang, source_lang, options)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.error("Batch translation item %s failed: %s", item.id, exc)
            code = exc.code if isinstance(exc, ContentBridgeError) else None
            return BatchItemError(
                id=item.id,
                original_text=item.text,
                message=str(exc),
                code=code,
            )
        return BatchItemResult(id=item.id, original_text=item.text, result=result)

    async def run_batch(
        self,
        items: Sequence[BatchItem],
        target_lang: str,
        source_lang: str = "en",
        options: Optional[TranslationOptions] = None,
        concurrency_limit: int = 3,
        inter_chunk_delay: float = 0.5,
        on_chunk: Optional[ChunkCallback] = None,
    ) -> BatchResult:
        """Translate ``items`` chunk by chunk.

        Args:
            items: Text units to translate.
            target_lang: Target language code.
            source_lang: Source language code.
            options: Provider options forwarded to every call.
            concurrency_limit: Chunk size, i.e. calls in flight at once.
            inter_chunk_delay: Seconds to wait between two chunks.
            on_chunk: Awaited with each chunk's results and errors once the
                chunk has settled.

        Returns:
            All results and errors; every input item is in exactly one list.
        """

        if concurrency_limit < 1:
            raise ValueError(f"concurrency_limit must be >= 1, got {concurrency_limit}")

        chunks = chunk_items(items, concurrency_limit)
        batch = BatchResult()

        LOGGER.info(
            "Starting batch translation: %d items in %d chunks (%s -> %s)",
            len(items),
            len(chunks),
            source_lang,
            target_lang,
        )

        for index, chunk in enumerate(chunks, start=1):
            outcomes = await asyncio.gather(
                *(self._translate_item(item, target_lang, source_lang, options) for item in chunk)
            )

            chunk_results = [o for o in outcomes if isinstance(o, BatchItemResult)]
            chunk_errors = [o for o in outcomes if isinstance(o, BatchItemError)]
            batch.results.extend(chunk_results)
            batch.errors.extend(chunk_errors)

            LOGGER.debug(
                "Chunk %d/%d settled: %d ok, %d failed",
                index,
                len(chunks),
                len(chunk_results),
                len(chunk_errors),
            )

            if on_chunk is not None:
                await on_chunk(chunk_results, chunk_errors)

            if index < len(chunks) and inter_chunk_delay > 0:
                await asyncio.sleep(inter_chunk_delay)

        LOGGER.info(
            "Batch translation completed: %d successful, %d failed, %d total",
            len(batch.results),
            len(batch.errors),
            len(items),
        )
        return batch
