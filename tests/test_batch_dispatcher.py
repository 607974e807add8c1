"""Tests for chunked batch translation."""

from __future__ import annotations

import time

import pytest

from content_bridge.services.batch_dispatcher import BatchDispatcher
from content_bridge.services.models import BatchItem, TranslationOptions
from tests.fakes import FakeTranslationClient


def _items(count: int):
    return [BatchItem(id=str(i), text=f"text {i}") for i in range(1, count + 1)]


class TestRunBatch:
    @pytest.mark.asyncio
    async def test_every_item_lands_in_results_or_errors(self):
        """Each item ends up in exactly one of results and errors."""
        client = FakeTranslationClient(fail_when=lambda text: text == "text 3")
        dispatcher = BatchDispatcher(client)

        batch = await dispatcher.run_batch(_items(5), "ms", concurrency_limit=3, inter_chunk_delay=0)

        assert sorted(r.id for r in batch.results) == ["1", "2", "4", "5"]
        assert [e.id for e in batch.errors] == ["3"]
        assert batch.errors[0].code == "TRANSLATION_ERROR"
        assert batch.errors[0].original_text == "text 3"
        assert batch.summary == {"total": 5, "successful": 4, "failed": 1}

    @pytest.mark.asyncio
    async def test_in_flight_calls_never_exceed_limit(self):
        """No more than concurrency_limit translations run at once."""
        client = FakeTranslationClient(delay=0.01)
        dispatcher = BatchDispatcher(client)

        await dispatcher.run_batch(_items(7), "ms", concurrency_limit=3, inter_chunk_delay=0)

        assert client.peak_in_flight == 3
        assert len(client.calls) == 7

    @pytest.mark.asyncio
    async def test_next_chunk_starts_after_previous_settled(self):
        """A chunk starts only after the previous one settled."""
        client = FakeTranslationClient(delay=0.01)
        dispatcher = BatchDispatcher(client)

        await dispatcher.run_batch(_items(4), "ms", concurrency_limit=2, inter_chunk_delay=0)

        first_chunk_end = max(
            i for i, (kind, text) in enumerate(client.timeline) if kind == "end" and text in ("text 1", "text 2")
        )
        second_chunk_start = min(
            i for i, (kind, text) in enumerate(client.timeline) if kind == "start" and text in ("text 3", "text 4")
        )
        assert first_chunk_end < second_chunk_start

    @pytest.mark.asyncio
    async def test_on_chunk_receives_each_settled_chunk(self):
        """on_chunk is awaited once per chunk with its outcomes."""
        client = FakeTranslationClient(fail_when=lambda text: text == "text 2")
        dispatcher = BatchDispatcher(client)
        seen = []

        async def on_chunk(results, errors):
            seen.append((sorted(r.id for r in results), [e.id for e in errors]))

        await dispatcher.run_batch(
            _items(5), "ms", concurrency_limit=2, inter_chunk_delay=0, on_chunk=on_chunk
        )

        assert seen == [(["1"], ["2"]), (["3", "4"], []), (["5"], [])]

    @pytest.mark.asyncio
    async def test_delay_is_applied_between_chunks_only(self):
        """The inter-chunk delay is skipped after the last chunk."""
        dispatcher = BatchDispatcher(FakeTranslationClient())

        started = time.monotonic()
        await dispatcher.run_batch(_items(3), "ms", concurrency_limit=1, inter_chunk_delay=0.05)
        assert time.monotonic() - started >= 0.1

        started = time.monotonic()
        await dispatcher.run_batch(_items(2), "ms", concurrency_limit=3, inter_chunk_delay=1.0)
        assert time.monotonic() - started < 0.5

    @pytest.mark.asyncio
    async def test_options_and_languages_are_forwarded(self):
        """Languages and options reach the client unchanged."""
        client = FakeTranslationClient()
        dispatcher = BatchDispatcher(client)

        batch = await dispatcher.run_batch(
            _items(1), "zh", "en", options=TranslationOptions(model="gpt-4o"), inter_chunk_delay=0
        )

        result = batch.results[0].result
        assert result.translated_text == "[zh] text 1"
        assert result.model == "gpt-4o"

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        """An empty batch returns empty results."""
        batch = await BatchDispatcher(FakeTranslationClient()).run_batch([], "ms")
        assert batch.results == [] and batch.errors == []

    @pytest.mark.asyncio
    async def test_rejects_non_positive_limit(self):
        """concurrency_limit must be positive."""
        with pytest.raises(ValueError):
            await BatchDispatcher(FakeTranslationClient()).run_batch(_items(1), "ms", concurrency_limit=0)

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_isolated(self):
        """Non-domain exceptions fail only their own item."""
        client = FakeTranslationClient()

        async def explode(text, target_lang, source_lang="en", options=None):
            if text == "text 1":
                raise KeyError("boom")
            return await FakeTranslationClient.translate(client, text, target_lang, source_lang, options)

        client.translate = explode
        batch = await BatchDispatcher(client).run_batch(_items(2), "ms", inter_chunk_delay=0)

        assert [e.id for e in batch.errors] == ["1"]
        assert batch.errors[0].code is None
        assert [r.id for r in batch.results] == ["2"]
