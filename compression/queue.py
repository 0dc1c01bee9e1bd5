import logging
from datetime import timedelta

from django.db import transaction
from django.utils import timezone

from .models import Task

logger = logging.getLogger(__name__)


class WorkQueue:
    """Durable task queue on the Task table.

    Delivery is at-least-once. A claimed task is RUNNING and invisible to
    other workers; failures are redelivered after an exponential backoff
    until max_attempts is reached.
    """

    def __init__(self, max_attempts=3, backoff_seconds=2, keep_completed=100, keep_failed=50):
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.keep_completed = keep_completed
        self.keep_failed = keep_failed

    def enqueue(self, job_id, input_path, mime_type, quality) -> Task:
        return Task.objects.create(
            job_id=job_id,
            input_path=input_path,
            mime_type=mime_type,
            quality=quality,
            max_attempts=self.max_attempts,
            run_after=timezone.now(),
        )

    def claim(self, now=None):
        now = now or timezone.now()
        with transaction.atomic():
            task = (
                Task.objects.select_for_update(skip_locked=True)
                .filter(status=Task.STATUS_QUEUED, run_after__lte=now)
                .order_by("run_after", "id")
                .first()
            )
            if task is None:
                return None
            task.status = Task.STATUS_RUNNING
            task.attempts += 1
            task.save(update_fields=["status", "attempts", "updated_at"])
        return task

    def complete(self, task: Task) -> None:
        task.status = Task.STATUS_COMPLETED
        task.finished_at = timezone.now()
        task.save(update_fields=["status", "finished_at", "updated_at"])
        self.prune()

    def backoff_for(self, attempts: int) -> timedelta:
        return timedelta(seconds=self.backoff_seconds * (2 ** max(0, attempts - 1)))

    def fail(self, task: Task, message: str, now=None) -> bool:
        """Record a failed attempt. Returns True when the task is exhausted."""
        now = now or timezone.now()
        task.last_error = message

        if task.attempts < task.max_attempts:
            task.status = Task.STATUS_QUEUED
            task.run_after = now + self.backoff_for(task.attempts)
            task.save(update_fields=["status", "run_after", "last_error", "updated_at"])
            logger.info(
                "task %s attempt %s/%s failed, retry at %s",
                task.pk, task.attempts, task.max_attempts, task.run_after.isoformat(),
            )
            return False

        task.status = Task.STATUS_FAILED
        task.finished_at = now
        task.save(update_fields=["status", "finished_at", "last_error", "updated_at"])
        self.prune()
        return True

    def prune(self) -> int:
        removed = 0
        for status, keep in ((Task.STATUS_COMPLETED, self.keep_completed), (Task.STATUS_FAILED, self.keep_failed)):
            stale = list(
                Task.objects.filter(status=status)
                .order_by("-finished_at", "-id")
                .values_list("id", flat=True)[keep:]
            )
            if stale:
                removed += Task.objects.filter(id__in=stale).delete()[0]
        return removed
