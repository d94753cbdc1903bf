"""
Property-based tests with hypothesis.

Invariants checked:
1. The queue hands out messages in insertion order across sessions
2. Thread id propagation only fills rows that have no thread yet
3. Formatting helpers never exceed Discord's limits
"""
import pytest
from hypothesis import given, settings as h_settings, HealthCheck
from hypothesis.strategies import (
    dictionaries,
    integers,
    just,
    lists,
    none,
    one_of,
    sampled_from,
    text,
    tuples,
)

from discord_notify.domain.services.formatting import (
    MAX_DESCRIPTION_LENGTH,
    build_todo_checklist,
    normalize_thread_title,
    truncate_text,
)

SESSIONS = sampled_from(["s1", "s2", "s3"])
THREADS = one_of(none(), sampled_from(["t1", "t2"]))
ENQUEUES = lists(tuples(SESSIONS, THREADS), min_size=1, max_size=15)

TODOS = lists(
    dictionaries(
        keys=sampled_from(["status", "content"]),
        values=one_of(
            sampled_from(["completed", "in_progress", "pending", "cancelled"]),
            text(max_size=300),
            just(None),
        ),
    ),
    max_size=40,
)


async def _drain(queue) -> None:
    for message in await queue.dequeue(1000):
        await queue.delete(message.id)


class TestQueueProperties:

    @pytest.mark.asyncio
    @given(enqueues=ENQUEUES)
    @h_settings(
        max_examples=30,
        suppress_health_check=[HealthCheck.function_scoped_fixture],
        deadline=None,
    )
    async def test_dequeue_preserves_insertion_order(self, enqueues, queue):
        await _drain(queue)

        ids = []
        for index, (session_id, thread_id) in enumerate(enqueues):
            ids.append(await queue.enqueue(session_id, thread_id, {"n": index}))

        messages = await queue.dequeue(len(enqueues) + 5)

        assert [m.id for m in messages] == ids
        assert [m.webhook_body["n"] for m in messages] == list(range(len(enqueues)))

    @pytest.mark.asyncio
    @given(enqueues=ENQUEUES, target=SESSIONS)
    @h_settings(
        max_examples=30,
        suppress_health_check=[HealthCheck.function_scoped_fixture],
        deadline=None,
    )
    async def test_update_thread_id_only_fills_missing(self, enqueues, target, queue):
        await _drain(queue)

        for session_id, thread_id in enqueues:
            await queue.enqueue(session_id, thread_id, {"content": "x"})

        await queue.update_thread_id(target, "new")

        messages = await queue.dequeue(len(enqueues))
        for message, (session_id, thread_id) in zip(messages, enqueues):
            if session_id == target and thread_id is None:
                assert message.thread_id == "new"
            else:
                assert message.thread_id == thread_id


class TestFormattingProperties:

    @pytest.mark.unit
    @given(value=text(max_size=300), max_length=integers(min_value=0, max_value=200))
    def test_truncate_never_exceeds_limit(self, value, max_length):
        result = truncate_text(value, max_length)

        assert len(result) <= max_length
        if len(value) <= max_length:
            assert result == value

    @pytest.mark.unit
    @given(todos=TODOS)
    def test_checklist_fits_description(self, todos):
        result = build_todo_checklist(todos)

        assert 0 < len(result) <= MAX_DESCRIPTION_LENGTH
        assert all(line.startswith("> ") for line in result.split("\n"))

    @pytest.mark.unit
    @given(value=text(max_size=200))
    def test_thread_title_has_no_runs_of_whitespace(self, value):
        result = normalize_thread_title(value)

        assert result == result.strip()
        assert "  " not in result
        assert "\n" not in result
