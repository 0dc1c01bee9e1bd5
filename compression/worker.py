import logging
import threading

from django.db import close_old_connections, connection

logger = logging.getLogger(__name__)


class Worker:
    """Fixed-size pool of polling threads draining a WorkQueue.

    handler(task) does the work. When a task runs out of attempts,
    on_exhausted(task, message) is called once. A bad task never stops
    the pool.
    """

    def __init__(self, queue, handler, on_exhausted, concurrency=4, poll_seconds=2.0):
        self.queue = queue
        self.handler = handler
        self.on_exhausted = on_exhausted
        self.concurrency = max(1, int(concurrency))
        self.poll_seconds = poll_seconds
        self._stop = threading.Event()
        self._threads = []

    def run_once(self, now=None) -> bool:
        """Claim and execute at most one task. Returns False when idle."""
        task = self.queue.claim(now=now)
        if task is None:
            return False

        try:
            self.handler(task)
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.exception("task %s (job %s) attempt %s failed", task.pk, task.job_id, task.attempts)
            if self.queue.fail(task, message, now=now):
                logger.error("task %s (job %s) exhausted after %s attempts", task.pk, task.job_id, task.attempts)
                self.on_exhausted(task, message)
        else:
            self.queue.complete(task)
        return True

    def _loop(self):
        try:
            while not self._stop.is_set():
                close_old_connections()
                try:
                    busy = self.run_once()
                except Exception:
                    # queue bookkeeping itself failed (e.g. database hiccup)
                    logger.exception("worker loop error")
                    busy = False
                if not busy:
                    self._stop.wait(self.poll_seconds)
        finally:
            connection.close()

    def start(self):
        for i in range(self.concurrency):
            t = threading.Thread(target=self._loop, name=f"compression-worker-{i}", daemon=True)
            t.start()
            self._threads.append(t)

    def stop(self, timeout=None):
        self._stop.set()
        for t in self._threads:
            t.join(timeout)
        self._threads = []

    def run_forever(self):
        self.start()
        try:
            while any(t.is_alive() for t in self._threads):
                for t in self._threads:
                    t.join(0.5)
        except KeyboardInterrupt:
            logger.info("stopping workers")
        finally:
            self.stop()
