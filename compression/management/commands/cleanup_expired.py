import time

from django.conf import settings
from django.core.management.base import BaseCommand

from compression.storage import build_storage
from compression.sweeper import ExpirySweeper


class Command(BaseCommand):
    help = "Delete expired compression jobs and their files."

    def add_arguments(self, parser):
        parser.add_argument("--loop", action="store_true", help="Keep sweeping every --interval seconds")
        parser.add_argument(
            "--interval",
            type=int,
            default=settings.SWEEP_INTERVAL_SECONDS,
            help="Seconds between sweeps in --loop mode",
        )

    def handle(self, *args, **opts):
        sweeper = ExpirySweeper(build_storage())
        interval = max(1, int(opts["interval"]))

        while True:
            n = sweeper.sweep()
            self.stdout.write(self.style.SUCCESS(f"Deleted {n} expired jobs"))
            if not opts["loop"]:
                return
            time.sleep(interval)
