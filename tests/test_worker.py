import threading
import time
import uuid
from datetime import timedelta

import pytest
from django.core.management import call_command
from django.db import DatabaseError, connection
from django.utils import timezone

from compression.models import Task
from compression.queue import WorkQueue
from compression.worker import Worker

pytestmark = pytest.mark.django_db


class Recorder:
    def __init__(self, failures=0):
        self.failures = failures
        self.calls = []
        self.exhausted = []

    def handle(self, task):
        self.calls.append(task.pk)
        if len(self.calls) <= self.failures:
            raise RuntimeError(f"attempt {len(self.calls)} failed")

    def on_exhausted(self, task, message):
        self.exhausted.append((task.pk, message))


def _worker(queue, rec):
    return Worker(queue, rec.handle, rec.on_exhausted, concurrency=1, poll_seconds=0)


def test_run_once_idle(queue):
    rec = Recorder()
    assert _worker(queue, rec).run_once() is False
    assert rec.calls == []


def test_run_once_completes_task(queue):
    task = queue.enqueue(uuid.uuid4(), "/tmp/a.jpg", "image/jpeg", 80)
    rec = Recorder()

    assert _worker(queue, rec).run_once() is True

    task.refresh_from_db()
    assert task.status == Task.STATUS_COMPLETED
    assert rec.calls == [task.pk]


def test_transient_failure_is_retried_then_succeeds(queue):
    task = queue.enqueue(uuid.uuid4(), "/tmp/a.jpg", "image/jpeg", 80)
    rec = Recorder(failures=1)
    worker = _worker(queue, rec)
    now = timezone.now()

    assert worker.run_once(now=now) is True
    task.refresh_from_db()
    assert task.status == Task.STATUS_QUEUED

    assert worker.run_once(now=now + timedelta(seconds=2)) is True
    task.refresh_from_db()
    assert task.status == Task.STATUS_COMPLETED
    assert rec.exhausted == []


def test_exhaustion_calls_hook_once_with_last_error(queue):
    task = queue.enqueue(uuid.uuid4(), "/tmp/a.jpg", "image/jpeg", 80)
    rec = Recorder(failures=10)
    worker = _worker(queue, rec)
    now = timezone.now()

    for step in range(5):
        worker.run_once(now=now + timedelta(minutes=step))

    assert len(rec.calls) == 3
    assert rec.exhausted == [(task.pk, "attempt 3 failed")]
    task.refresh_from_db()
    assert task.status == Task.STATUS_FAILED


def test_bad_task_does_not_stop_the_next_one(queue):
    queue.enqueue(uuid.uuid4(), "/tmp/bad.jpg", "image/jpeg", 80)
    good = queue.enqueue(uuid.uuid4(), "/tmp/good.jpg", "image/jpeg", 80)
    rec = Recorder(failures=1)
    worker = _worker(queue, rec)

    assert worker.run_once() is True
    assert worker.run_once() is True

    good.refresh_from_db()
    assert good.status == Task.STATUS_COMPLETED


def test_concurrency_is_at_least_one(queue):
    rec = Recorder()
    assert Worker(queue, rec.handle, rec.on_exhausted, concurrency=0).concurrency == 1
    assert Worker(queue, rec.handle, rec.on_exhausted).concurrency == 4


def _wait_for(predicate, timeout=15.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return False


def _completed():
    return Task.objects.filter(status=Task.STATUS_COMPLETED).count()


@pytest.mark.django_db(transaction=True)
def test_pool_drains_the_queue_and_stops():
    queue = WorkQueue()
    tasks = [queue.enqueue(uuid.uuid4(), f"/tmp/{i}.jpg", "image/jpeg", 80) for i in range(5)]
    rec = Recorder()
    worker = Worker(queue, rec.handle, rec.on_exhausted, concurrency=2, poll_seconds=0.05)

    worker.start()
    threads = list(worker._threads)
    try:
        assert len(threads) == 2
        assert _wait_for(lambda: _completed() == 5)
    finally:
        worker.stop(timeout=10)

    assert not any(t.is_alive() for t in threads)
    assert sorted(rec.calls) == sorted(t.pk for t in tasks)


class FlakyQueue(WorkQueue):
    """Fails its first claim the way a dropped database connection would."""

    def __init__(self):
        super().__init__()
        self.claim_errors = 1

    def claim(self, now=None):
        if self.claim_errors:
            self.claim_errors -= 1
            raise DatabaseError("connection lost")
        return super().claim(now=now)


@pytest.mark.django_db(transaction=True)
def test_loop_survives_a_queue_error():
    queue = FlakyQueue()
    queue.enqueue(uuid.uuid4(), "/tmp/a.jpg", "image/jpeg", 80)
    rec = Recorder()
    worker = Worker(queue, rec.handle, rec.on_exhausted, concurrency=1, poll_seconds=0.05)

    worker.start()
    try:
        assert _wait_for(lambda: _completed() == 1)
    finally:
        worker.stop(timeout=10)

    assert queue.claim_errors == 0
    assert len(rec.calls) == 1


@pytest.mark.django_db(transaction=True)
def test_run_forever_returns_once_stopped():
    queue = WorkQueue()
    queue.enqueue(uuid.uuid4(), "/tmp/a.jpg", "image/jpeg", 80)
    rec = Recorder()
    worker = Worker(queue, rec.handle, rec.on_exhausted, concurrency=2, poll_seconds=0.05)

    def stop_when_done():
        try:
            _wait_for(lambda: _completed() == 1)
        finally:
            connection.close()
            worker.stop(timeout=10)

    stopper = threading.Thread(target=stop_when_done)
    stopper.start()
    worker.run_forever()
    stopper.join(10)

    assert _completed() == 1
    assert worker._threads == []


@pytest.mark.django_db(transaction=True)
def test_worker_command_builds_the_pool(monkeypatch, capsys):
    started = []
    monkeypatch.setattr(Worker, "run_forever", lambda self: started.append(self))

    call_command("worker", "--concurrency", "3", "--poll", "0.5")

    assert len(started) == 1
    assert started[0].concurrency == 3
    assert started[0].poll_seconds == 0.5
    assert "Worker started (concurrency=3, storage=local)" in capsys.readouterr().out
