import logging

from django.utils import timezone

from .models import CompressionJob
from .storage import best_effort, remove_local

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """Delete expired jobs together with their artifacts.

    Artifacts go first and best-effort; the records are then removed in one
    bulk delete. A crash in between leaves orphaned files, never a record
    whose files were deleted without the record being swept as well.
    """

    def __init__(self, storage):
        self.storage = storage

    def sweep(self, now=None) -> int:
        now = now or timezone.now()
        expired = list(
            CompressionJob.objects.filter(expires_at__lt=now).values_list("id", "input_path", "output_path")
        )

        for job_id, input_path, output_path in expired:
            if output_path:
                best_effort(self.storage.delete, output_path)
            # uploads always land on local disk, whatever the driver
            if input_path:
                best_effort(remove_local, input_path)

        if not expired:
            return 0

        CompressionJob.objects.filter(id__in=[row[0] for row in expired]).delete()
        logger.info("cleaned up %s expired compression jobs", len(expired))
        return len(expired)
