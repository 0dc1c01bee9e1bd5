from django.conf import settings
from django.core.management.base import BaseCommand
from django.db import connection

from compression.services import build_service
from compression.worker import Worker


class Command(BaseCommand):
    help = "Run the compression worker pool (drains the task queue)."

    def add_arguments(self, parser):
        parser.add_argument(
            "--concurrency",
            type=int,
            default=settings.WORKER_CONCURRENCY,
            help="Number of tasks processed at the same time",
        )
        parser.add_argument(
            "--poll",
            type=float,
            default=settings.WORKER_POLL_SECONDS,
            help="Seconds to wait when the queue is empty",
        )

    def handle(self, *args, **opts):
        # Configuration problems are fatal: bad driver, missing bucket, no database.
        service = build_service()
        connection.ensure_connection()
        connection.close()

        worker = Worker(
            service.queue,
            service.process_task,
            service.mark_failed,
            concurrency=opts["concurrency"],
            poll_seconds=opts["poll"],
        )

        driver = "s3" if service.storage.is_remote else "local"
        self.stdout.write(
            self.style.SUCCESS(f"Worker started (concurrency={worker.concurrency}, storage={driver})")
        )
        worker.run_forever()
