"""Tests for the queue consumer loop."""

import threading
from unittest.mock import MagicMock

from prgate_core.worker import ReviewWorker
from prgate_store.queue import Task


def _worker(orchestrator=None, dispatcher=None, **kwargs):
    return ReviewWorker(orchestrator or MagicMock(), dispatcher or MagicMock(), **kwargs)


class TestRunOnce:
    def test_idle_queue_returns_false(self):
        dispatcher = MagicMock()
        dispatcher.dequeue.return_value = None
        orchestrator = MagicMock()

        assert _worker(orchestrator, dispatcher).run_once() is False
        orchestrator.execute.assert_not_called()

    def test_executes_and_acks(self):
        dispatcher = MagicMock()
        dispatcher.dequeue.return_value = Task(id=3, review_id="r-1", attempts=1)
        orchestrator = MagicMock()

        assert _worker(orchestrator, dispatcher, lease_seconds=120).run_once() is True

        dispatcher.dequeue.assert_called_once_with(120)
        orchestrator.execute.assert_called_once_with("r-1")
        dispatcher.ack.assert_called_once_with(3)
        dispatcher.nack.assert_not_called()

    def test_crash_nacks_task(self):
        dispatcher = MagicMock()
        dispatcher.dequeue.return_value = Task(id=3, review_id="r-1", attempts=1)
        orchestrator = MagicMock()
        orchestrator.execute.side_effect = RuntimeError("database is locked")

        assert _worker(orchestrator, dispatcher).run_once() is True

        dispatcher.ack.assert_not_called()
        task_id, error = dispatcher.nack.call_args.args
        assert task_id == 3
        assert "database is locked" in error
        assert dispatcher.nack.call_args.kwargs["delay"] > 0


class TestRun:
    def test_stops_when_event_set(self):
        stop = threading.Event()
        dispatcher = MagicMock()
        dispatcher.dequeue.return_value = None
        dispatcher.dequeue.side_effect = lambda lease: stop.set()

        _worker(dispatcher=dispatcher, poll_interval=0.01).run(stop)

        assert dispatcher.dequeue.call_count == 1

    def test_dispatcher_error_does_not_kill_loop(self):
        stop = threading.Event()
        calls = []

        def dequeue(lease):
            calls.append(lease)
            if len(calls) == 1:
                raise RuntimeError("database is locked")
            stop.set()
            return None

        dispatcher = MagicMock()
        dispatcher.dequeue.side_effect = dequeue

        _worker(dispatcher=dispatcher, poll_interval=0.01).run(stop)

        assert len(calls) == 2

    def test_drains_tasks_end_to_end(self, tmp_path):
        from prgate_store.queue import SQLiteDispatcher

        dispatcher = SQLiteDispatcher(db_path=str(tmp_path / "q.db"))
        try:
            for n in range(3):
                dispatcher.enqueue(f"r-{n}")
            orchestrator = MagicMock()
            worker = _worker(orchestrator, dispatcher)

            while worker.run_once():
                pass

            assert [c.args[0] for c in orchestrator.execute.call_args_list] == ["r-0", "r-1", "r-2"]
            assert dispatcher.counts()["done"] == 3
        finally:
            dispatcher.close()
