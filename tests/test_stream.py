import asyncio

import pytest

from coaching_assistant.errors import ConfigurationError
from coaching_assistant.events import LIVE_RESPONSE, NOTIFICATION, EventBus
from coaching_assistant.history import HistoryLog
from coaching_assistant.models import EntryKind, EntryStatus, ModelQuery, QueryMode, Speaker
from coaching_assistant.stream import StreamAggregator

from conftest import FakeProvider


def _drain(queue, event_type):
    out = []
    while not queue.empty():
        event = queue.get_nowait()
        if event["type"] == event_type:
            out.append(event)
    return out


def _setup(provider, interval=0.05):
    history = HistoryLog()
    bus = EventBus()
    queue = bus.subscribe()
    aggregator = StreamAggregator(history, lambda: provider, events=bus, publish_interval=interval)
    return history, queue, aggregator


@pytest.mark.asyncio
async def test_final_publish_is_full_concatenation():
    provider = FakeProvider(chunks=["Hel", "lo", ", ", "wor", "ld"])
    history, queue, aggregator = _setup(provider)
    question = history.append(EntryKind.QUESTION, "Say hello", speaker=Speaker.B)

    result = await aggregator.start(ModelQuery(prompt="Say hello"), question_id=question.entry_id, speaker=Speaker.B)

    assert result == "Hello, world"
    live = [e["text"] for e in _drain(queue, LIVE_RESPONSE)]
    assert live[0] == "Hel"
    assert live[-1] == "Hello, world"
    assert aggregator.live_text == "Hello, world"

    entries = history.entries
    assert entries[0].status == EntryStatus.COMPLETED
    assert entries[1].kind == EntryKind.RESPONSE
    assert entries[1].status == EntryStatus.COMPLETED
    assert entries[1].text == "Hello, world"
    assert entries[1].speaker == Speaker.B
    assert not aggregator.busy


@pytest.mark.asyncio
async def test_slow_stream_is_throttled_but_ends_with_full_text():
    chunks = ["one ", "two ", "three ", "four ", "five"]
    provider = FakeProvider(chunks=chunks, chunk_delay=0.02)
    history, queue, aggregator = _setup(provider, interval=0.05)

    await aggregator.start(ModelQuery(prompt="count"))

    live = [e["text"] for e in _drain(queue, LIVE_RESPONSE)]
    assert len(live) < len(chunks) + 1
    assert live[-1] == "".join(chunks)


@pytest.mark.asyncio
async def test_mid_stream_failure_clears_live_view_and_records_one_error():
    provider = FakeProvider(chunks=["Partial", " resp", " never"], fail_after=2)
    history, queue, aggregator = _setup(provider)
    question = history.append(EntryKind.QUESTION, "Go")

    result = await aggregator.start(ModelQuery(prompt="Go"), question_id=question.entry_id)

    assert result is None
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    live = [e["text"] for e in events if e["type"] == LIVE_RESPONSE]
    assert live[-1] == ""
    assert aggregator.live_text == ""
    assert any(e["type"] == NOTIFICATION and e["severity"] == "error" for e in events)

    errors = [e for e in history.entries if e.status == EntryStatus.ERROR]
    assert len(errors) == 1
    assert errors[0].kind == EntryKind.RESPONSE
    assert "connection reset" in errors[0].text
    assert not aggregator.busy
    assert provider.closed == 1


@pytest.mark.asyncio
async def test_missing_credentials_fail_the_response():
    history = HistoryLog()

    def _provider():
        raise ConfigurationError("Missing configuration: ANTHROPIC_API_KEY")

    aggregator = StreamAggregator(history, _provider, publish_interval=0.05)
    result = await aggregator.start(ModelQuery(prompt="Go"))

    assert result is None
    assert history.entries[-1].status == EntryStatus.ERROR
    assert "ANTHROPIC_API_KEY" in history.entries[-1].text
    assert not aggregator.busy


@pytest.mark.asyncio
async def test_cancel_stops_stream_without_further_publishes():
    provider = FakeProvider(chunks=["never", "seen"])
    provider.gate = asyncio.Event()
    history, queue, aggregator = _setup(provider)

    task = asyncio.create_task(aggregator.start(ModelQuery(prompt="Go")))
    await asyncio.sleep(0.01)
    assert aggregator.busy
    assert aggregator.cancel()

    assert await task is None
    assert _drain(queue, LIVE_RESPONSE) == []
    response = history.entries[-1]
    assert response.status == EntryStatus.ERROR
    assert response.text == "Cancelled"
    assert provider.closed == 1
    assert not aggregator.busy
    assert not aggregator.cancel()


@pytest.mark.asyncio
async def test_second_stream_waits_for_the_first():
    provider = FakeProvider(chunks=["reply"])
    provider.gate = asyncio.Event()
    history, queue, aggregator = _setup(provider)

    first = asyncio.create_task(aggregator.start(ModelQuery(prompt="first")))
    await asyncio.sleep(0.01)
    second = asyncio.create_task(aggregator.start(ModelQuery(prompt="second")))
    await asyncio.sleep(0.01)

    assert [q.prompt for q in provider.queries] == ["first"]
    assert len(history.select(lambda e: e.kind == EntryKind.RESPONSE)) == 1

    provider.gate.set()
    assert await first == "reply"
    assert await second == "reply"

    assert [q.prompt for q in provider.queries] == ["first", "second"]
    responses = history.select(lambda e: e.kind == EntryKind.RESPONSE)
    assert [r.status for r in responses] == [EntryStatus.COMPLETED, EntryStatus.COMPLETED]


@pytest.mark.asyncio
async def test_single_shot_queries_are_rejected():
    _, _, aggregator = _setup(FakeProvider())
    with pytest.raises(ValueError):
        await aggregator.start(ModelQuery(prompt="x", mode=QueryMode.SINGLE_SHOT))


@pytest.mark.asyncio
async def test_cancel_before_the_stream_runs_settles_every_entry():
    provider = FakeProvider(chunks=["never"])
    history, queue, aggregator = _setup(provider)
    question = history.append(EntryKind.QUESTION, "Go")

    task = asyncio.create_task(aggregator.start(ModelQuery(prompt="Go"), question_id=question.entry_id))
    await asyncio.sleep(0)
    assert aggregator.cancel()

    assert await task is None
    assert provider.queries == []
    assert [(e.kind, e.status) for e in history.entries] == [
        (EntryKind.QUESTION, EntryStatus.COMPLETED),
        (EntryKind.RESPONSE, EntryStatus.ERROR),
    ]
    assert history.entries[-1].text == "Cancelled"
    assert not aggregator.busy


@pytest.mark.asyncio
async def test_cancel_drops_partial_live_text():
    provider = FakeProvider(chunks=["partial", " never"], chunk_delay=0.05)
    history, queue, aggregator = _setup(provider)

    task = asyncio.create_task(aggregator.start(ModelQuery(prompt="Go")))
    await asyncio.sleep(0.07)
    assert aggregator.live_text == "partial"
    assert aggregator.cancel()

    assert await task is None
    assert aggregator.live_text == ""


@pytest.mark.asyncio
async def test_query_builder_runs_once_the_slot_is_held():
    provider = FakeProvider(chunks=["reply"])
    provider.gate = asyncio.Event()
    history, queue, aggregator = _setup(provider)
    built = []

    def build():
        built.append(len(history))
        return ModelQuery(prompt="second")

    first = asyncio.create_task(aggregator.start(ModelQuery(prompt="first")))
    await asyncio.sleep(0.01)
    second = asyncio.create_task(aggregator.start(build))
    await asyncio.sleep(0.01)
    assert built == []

    provider.gate.set()
    await asyncio.gather(first, second)

    assert built == [1]
    assert [q.prompt for q in provider.queries] == ["first", "second"]
