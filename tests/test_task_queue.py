import pytest
from core.task_queue import TaskQueue
from models.task import ResultStatus, Task

class TestEnqueueDequeue:
    """Tests for FIFO behaviour and TTL."""

    def test_fifo_order(self, queue):
        """Tasks come out in the order they went in."""
        first = queue.enqueue("navigate", "https://example.com/a")
        second = queue.enqueue("navigate", "https://example.com/b")

        assert queue.dequeue().id == first.id
        assert queue.dequeue().id == second.id
        assert queue.dequeue() is None

    def test_enqueue_defaults(self, queue, clock):
        """Generated id, clock timestamp, default TTL and empty params."""
        task = queue.enqueue("scrape")

        assert task.id
        assert task.created_at == clock()
        assert task.ttl_seconds == 300
        assert task.params == {}
        assert task.target_url is None

    def test_no_deduplication(self, queue):
        """Identical submissions are separate tasks."""
        queue.enqueue("navigate", "https://example.com")
        queue.enqueue("navigate", "https://example.com")

        assert queue.status()['total_in_queue'] == 2

    def test_expired_task_never_dequeued(self, queue, clock):
        """A task past its TTL is recorded as expired instead of being handed out."""
        task = queue.enqueue("navigate", "https://example.com/a", ttl_seconds=5)
        clock.advance(6)

        assert queue.dequeue() is None
        latest = queue.list_results(1)[0]
        assert latest.task_id == task.id
        assert latest.status == ResultStatus.EXPIRED

    def test_task_at_exact_ttl_still_live(self, queue, clock):
        """Expiry is strictly greater than the TTL."""
        task = queue.enqueue("navigate", ttl_seconds=5)
        clock.advance(5)

        assert queue.dequeue().id == task.id

    def test_expired_head_swept_before_live_task(self, queue, clock):
        """Dequeue skips over stale heads to the first live task."""
        stale = queue.enqueue("click", ttl_seconds=1)
        clock.advance(2)
        live = queue.enqueue("click", ttl_seconds=60)

        assert queue.dequeue().id == live.id
        assert queue.get_result(stale.id).status == ResultStatus.EXPIRED
        assert queue.get_stats()['total_expired'] == 1

    def test_dequeue_empty(self, queue):
        """Empty queue yields None and records nothing."""
        assert queue.dequeue() is None
        assert queue.list_results() == []

class TestResults:
    """Tests for the bounded result log."""

    def test_most_recent_first(self, queue):
        """Newest result is at the front."""
        queue.add_result("a", ResultStatus.SUCCESS)
        queue.add_result("b", ResultStatus.ERROR, error="boom")

        results = queue.list_results()
        assert [r.task_id for r in results] == ["b", "a"]
        assert results[0].error == "boom"

    def test_capacity_bound(self, clock):
        """Only the newest max_results entries are kept."""
        queue = TaskQueue(max_results=3, clock=clock)
        for i in range(5):
            queue.add_result(f"t{i}", ResultStatus.SUCCESS)

        results = queue.list_results(10)
        assert len(results) == 3
        assert [r.task_id for r in results] == ["t4", "t3", "t2"]

    def test_get_result_returns_latest(self, queue):
        """A task reported twice resolves to its latest result."""
        queue.add_result("dup", ResultStatus.ERROR, error="first")
        queue.add_result("dup", ResultStatus.SUCCESS, data={"ok": True})

        assert queue.get_result("dup").status == ResultStatus.SUCCESS
        assert queue.get_result("missing") is None

    def test_result_ids_unique(self, queue):
        """Each stored result gets its own id."""
        a = queue.add_result("x", ResultStatus.SUCCESS)
        b = queue.add_result("x", ResultStatus.SUCCESS)
        assert a.id != b.id

class TestStatus:
    """Tests for the read-only summary."""

    def test_status_does_not_mutate(self, queue, clock):
        """Calling status twice gives the same answer and sweeps nothing."""
        queue.enqueue("navigate", ttl_seconds=1)
        queue.enqueue("navigate", ttl_seconds=100)
        clock.advance(2)

        first = queue.status()
        second = queue.status()

        assert first == second
        assert first['pending_count'] == 1
        assert first['total_in_queue'] == 2
        assert first['results_stored'] == 0

    def test_recent_results_limited(self, clock):
        """recent_results shows at most recent_limit entries."""
        queue = TaskQueue(max_results=50, recent_limit=2, clock=clock)
        for i in range(4):
            queue.add_result(f"t{i}", ResultStatus.SUCCESS)

        recent = queue.status()['recent_results']
        assert [r['task_id'] for r in recent] == ["t3", "t2"]

    def test_list_pending_filters_expired(self, queue, clock):
        """Pending listing hides stale tasks."""
        queue.enqueue("click", ttl_seconds=1)
        live = queue.enqueue("click", ttl_seconds=100)
        clock.advance(2)

        assert [t.id for t in queue.list_pending()] == [live.id]

    def test_clear(self, queue):
        """Clear drops tasks and results."""
        queue.enqueue("click")
        queue.add_result("x", ResultStatus.SUCCESS)
        queue.clear()

        status = queue.status()
        assert status['total_in_queue'] == 0
        assert status['results_stored'] == 0

class TestCancelAndCallbacks:
    """Tests for cancellation and callback bookkeeping."""

    def test_cancel_pending(self, queue):
        """A pending task can be cancelled."""
        task = queue.enqueue("click")
        assert queue.cancel(task.id) == 1
        assert queue.dequeue() is None
        assert queue.get_stats()['total_cancelled'] == 1

    def test_ghost_cancel_is_reported_only(self, queue):
        """Cancelling an already dequeued task removes nothing and only logs."""
        task = queue.enqueue("click")
        queue.dequeue()

        assert queue.cancel(task.id) == 0
        assert queue.get_stats()['total_cancelled'] == 0

    def test_callback_task_returned_once(self, queue):
        """Dequeued tasks with a callback_url are handed back exactly once."""
        task = queue.enqueue("click", callback_url="https://hooks.example.com/done")
        queue.dequeue()

        assert queue.pop_callback_task(task.id).id == task.id
        assert queue.pop_callback_task(task.id) is None

    def test_no_callback_bookkeeping_without_url(self, queue):
        """Tasks without a callback are not remembered."""
        task = queue.enqueue("click")
        queue.dequeue()
        assert queue.pop_callback_task(task.id) is None

    def test_stale_callback_entries_pruned(self, queue, clock):
        """A callback task with no result long after dequeue is forgotten on the next dequeue."""
        stale = queue.enqueue("click", ttl_seconds=30, callback_url="https://hooks.example.com/done")
        queue.dequeue()

        clock.advance(30 + queue.callback_grace + 1)
        fresh = queue.enqueue("click", callback_url="https://hooks.example.com/done")
        queue.dequeue()

        assert queue.pop_callback_task(stale.id) is None
        assert queue.pop_callback_task(fresh.id).id == fresh.id
        assert queue.get_stats()['total_callbacks_dropped'] == 1

    def test_callback_entry_kept_within_grace(self, queue, clock):
        task = queue.enqueue("click", ttl_seconds=30, callback_url="https://hooks.example.com/done")
        queue.dequeue()

        clock.advance(30 + queue.callback_grace - 1)
        queue.dequeue()

        assert queue.pop_callback_task(task.id).id == task.id

class TestTaskModel:
    """Tests for task serialisation."""

    def test_round_trip_keeps_fields(self, queue):
        """from_dict(to_dict()) restores the task."""
        task = queue.enqueue(
            "type", "https://example.com",
            params={"selector": "#q", "text": "hi"},
            ttl_seconds=42, source="ext", correlation_id="c-1"
        )
        assert Task.from_dict(task.to_dict()) == task

    def test_timestamps_are_iso_z(self, queue):
        """Wire timestamps are millisecond ISO-8601 with a Z suffix."""
        data = queue.enqueue("click").to_dict()
        assert data['created_at'] == "2024-01-01T12:00:00.000Z"

    def test_task_is_immutable(self, queue):
        """Tasks cannot be modified after creation."""
        task = queue.enqueue("click")
        with pytest.raises(Exception):
            task.action = "type"
