import logging
import math
import os
import tempfile
import uuid
import zipfile
from dataclasses import dataclass
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from . import engine as codec
from .disk_storage import ensure_dirs
from .errors import (
    BatchNotReady,
    CompressionError,
    Expired,
    FileTooLarge,
    InvalidFileType,
    JobNotFound,
    NoFile,
    NoFiles,
    NotReady,
    QuotaExceeded,
    TooManyFiles,
)
from .models import CompressionJob, UserQuota, quality_to_level
from .queue import WorkQueue
from .storage import ObjectNotFound, best_effort, build_storage, remove_local

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = ("image/jpeg", "image/png", "image/webp", "image/avif")

MAX_PAGE_SIZE = 50


@dataclass
class StagedFile:
    """An accepted upload sitting in the local upload directory."""

    path: str
    original_name: str
    size: int
    mime_type: str


class CompressionService:
    def __init__(
        self,
        storage,
        queue,
        upload_dir,
        engine=codec.compress,
        max_upload_bytes=25 * 1024 * 1024,
        max_batch_files=20,
        job_ttl=timedelta(hours=24),
    ):
        self.storage = storage
        self.queue = queue
        self.upload_dir = upload_dir
        self.engine = engine
        self.max_upload_bytes = max_upload_bytes
        self.max_batch_files = max_batch_files
        self.job_ttl = job_ttl

    # Submission

    def validate(self, mime_type: str, size: int) -> None:
        if mime_type not in ALLOWED_MIME_TYPES:
            raise InvalidFileType(f"Unsupported file type: {mime_type or 'unknown'}. Allowed: JPG, PNG, WebP, AVIF")
        if size > self.max_upload_bytes:
            raise FileTooLarge(f"File too large (max {self.max_upload_bytes // (1024 * 1024)} MB)")

    def stage_upload(self, uploaded) -> StagedFile:
        if uploaded is None:
            raise NoFile()

        mime_type = (getattr(uploaded, "content_type", "") or "").lower()
        size = int(uploaded.size or 0)
        self.validate(mime_type, size)

        name = os.path.basename(getattr(uploaded, "name", "") or "upload")[:180]
        ext = os.path.splitext(name)[1].lower()
        dst = os.path.join(self.upload_dir, f"{uuid.uuid4().hex}{ext}")

        ensure_dirs(self.upload_dir)
        with open(dst, "wb") as out:
            for chunk in uploaded.chunks():
                out.write(chunk)

        return StagedFile(path=dst, original_name=name, size=size, mime_type=mime_type)

    def submit(self, staged: StagedFile, quality, user=None, batch_id=None) -> CompressionJob:
        """Create a PENDING job for a staged file and enqueue its task.

        Quota, job row and task row commit together; on any rejection the
        staged file is removed and nothing is persisted.
        """
        try:
            self.validate(staged.mime_type, staged.size)
            q = codec.clamp_quality(quality)
            with transaction.atomic():
                if user is not None:
                    self.consume_quota(user)
                now = timezone.now()
                job = CompressionJob.objects.create(
                    user=user,
                    batch_id=batch_id,
                    status=CompressionJob.STATUS_PENDING,
                    original_name=staged.original_name,
                    original_size=staged.size,
                    mime_type=staged.mime_type,
                    quality=q,
                    level=quality_to_level(q),
                    input_path=staged.path,
                    created_at=now,
                    expires_at=now + self.job_ttl,
                )
                self.queue.enqueue(job.id, staged.path, staged.mime_type, q)
        except Exception:
            best_effort(remove_local, staged.path)
            raise

        logger.info("job %s queued (%s, %s bytes, quality %s)", job.id, job.mime_type, job.original_size, job.quality)
        return job

    def submit_upload(self, uploaded, quality, user=None, batch_id=None) -> CompressionJob:
        return self.submit(self.stage_upload(uploaded), quality, user=user, batch_id=batch_id)

    def submit_batch(self, files, quality, user=None):
        """Submit each file on its own; one rejected file does not undo the others."""
        if not files:
            raise NoFiles()
        if len(files) > self.max_batch_files:
            raise TooManyFiles(f"At most {self.max_batch_files} files per batch")

        batch_id = uuid.uuid4()
        results = []
        for f in files:
            try:
                job = self.submit_upload(f, quality, user=user, batch_id=batch_id)
            except CompressionError as e:
                logger.info("batch %s: rejected %s (%s)", batch_id, getattr(f, "name", "?"), e.code)
                results.append(
                    {
                        "jobId": None,
                        "originalName": getattr(f, "name", ""),
                        "status": "REJECTED",
                        "errorCode": e.code,
                        "error": e.message,
                    }
                )
                continue
            results.append({"jobId": str(job.id), "originalName": job.original_name, "status": job.status})
        return batch_id, results

    def consume_quota(self, user) -> UserQuota:
        """Count one upload against the user's daily quota. Must run inside a transaction."""
        today = timezone.now().date()
        UserQuota.objects.get_or_create(user=user, defaults={"daily_reset_at": today})
        quota = UserQuota.objects.select_for_update().get(user=user)

        if quota.daily_reset_at < today:
            quota.daily_uploads = 0
            quota.daily_reset_at = today

        limit = quota.daily_limit
        if limit is not None and quota.daily_uploads >= limit:
            raise QuotaExceeded()

        # row is locked for the rest of the transaction
        quota.daily_uploads += 1
        quota.save(update_fields=["daily_uploads", "daily_reset_at"])
        return quota

    # Reads

    def get_status(self, job_id) -> CompressionJob:
        job_id = _as_uuid(job_id)
        job = CompressionJob.objects.filter(id=job_id).first() if job_id else None
        if job is None:
            raise JobNotFound()
        return job

    def describe(self, job: CompressionJob) -> dict:
        file_url = None
        if job.status == CompressionJob.STATUS_DONE and job.output_path:
            file_url = self.storage.get_url(job.output_path)

        return {
            "jobId": str(job.id),
            "batchId": str(job.batch_id) if job.batch_id else None,
            "status": job.status,
            "originalName": job.original_name,
            "originalSize": job.original_size,
            "compressedSize": job.compressed_size,
            "savingsPercent": job.savings_percent,
            "mimeType": job.mime_type,
            "level": job.level,
            "errorMessage": job.error_message,
            "createdAt": job.created_at.isoformat(),
            "completedAt": job.completed_at.isoformat() if job.completed_at else None,
            "expiresAt": job.expires_at.isoformat(),
            "fileUrl": file_url,
        }

    def fetch_output(self, job_id):
        """Return (bytes, job) for a finished job."""
        job = self.get_status(job_id)
        if job.status != CompressionJob.STATUS_DONE or not job.output_path:
            raise NotReady()
        try:
            data = self.storage.get_buffer(job.output_path)
        except ObjectNotFound:
            raise Expired()
        return data, job

    def build_batch_archive(self, batch_id):
        """Zip every finished job of a batch. Returns (file object, archive name)."""
        batch_id = _as_uuid(batch_id)
        if batch_id is None:
            raise BatchNotReady()

        jobs = CompressionJob.objects.filter(
            batch_id=batch_id, status=CompressionJob.STATUS_DONE
        ).order_by("created_at", "id")

        fh = tempfile.SpooledTemporaryFile(max_size=32 * 1024 * 1024)
        names = set()
        with zipfile.ZipFile(fh, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=6) as zf:
            for job in jobs:
                try:
                    data = self.storage.get_buffer(job.output_path)
                except ObjectNotFound:
                    logger.info("batch %s: artifact of job %s is gone", batch_id, job.id)
                    continue
                zf.writestr(_unique_name(job.download_name, names), data)

        if not names:
            fh.close()
            raise BatchNotReady()

        fh.seek(0)
        return fh, f"compressed_batch_{batch_id}.zip"

    def list_history(self, user, page=1, page_size=20) -> dict:
        page = max(1, int(page))
        page_size = max(1, min(MAX_PAGE_SIZE, int(page_size)))

        qs = CompressionJob.objects.filter(user=user).order_by("-created_at", "-id")
        total = qs.count()
        offset = (page - 1) * page_size
        items = [self.describe(job) for job in qs[offset:offset + page_size]]

        return {
            "items": items,
            "total": total,
            "page": page,
            "pageSize": page_size,
            "totalPages": math.ceil(total / page_size),
        }

    def usage(self, user) -> dict:
        today = timezone.now().date()
        quota = UserQuota.objects.filter(user=user).first()
        tier = quota.tier if quota else UserQuota.TIER_FREE
        used = quota.daily_uploads if quota and quota.daily_reset_at >= today else 0
        limit = UserQuota.DAILY_LIMITS[tier]

        done = CompressionJob.objects.filter(user=user, status=CompressionJob.STATUS_DONE)
        sizes = done.aggregate(original=Sum("original_size"), compressed=Sum("compressed_size"))

        return {
            "tier": tier,
            "dailyUploads": used,
            "dailyLimit": -1 if limit is None else limit,
            "totalJobs": done.count(),
            "totalBytesSaved": (sizes["original"] or 0) - (sizes["compressed"] or 0),
            "resetAt": today.isoformat(),
        }

    # Worker side

    def process_task(self, task) -> None:
        """Compress one task's input and finish its job.

        Engine and storage errors propagate so the queue can retry; the job
        stays PROCESSING until mark_failed() runs on the final attempt.
        """
        job = CompressionJob.objects.filter(id=task.job_id).first()
        if job is None:
            logger.warning("task %s: job %s no longer exists, skipping", task.pk, task.job_id)
            return
        if job.status in CompressionJob.TERMINAL_STATUSES:
            logger.info("task %s: job %s already %s, skipping redelivery", task.pk, job.id, job.status)
            return

        CompressionJob.objects.filter(
            id=job.id, status__in=[CompressionJob.STATUS_PENDING, CompressionJob.STATUS_PROCESSING]
        ).update(status=CompressionJob.STATUS_PROCESSING)
        logger.info("processing job %s at quality %s", job.id, task.quality)

        with open(task.input_path, "rb") as fh:
            data = fh.read()
        output = self.engine(data, task.mime_type, task.quality)

        stem, ext = os.path.splitext(task.input_path)
        local_output = f"{stem}_compressed{ext}"
        with open(local_output, "wb") as fh:
            fh.write(output)

        locator = local_output
        if self.storage.is_remote:
            try:
                locator = self.storage.save(local_output, f"compressed/{job.id}{ext}")
            finally:
                # input is kept for retries
                best_effort(remove_local, local_output)
            best_effort(remove_local, task.input_path)

        updated = CompressionJob.objects.filter(id=job.id, status=CompressionJob.STATUS_PROCESSING).update(
            status=CompressionJob.STATUS_DONE,
            output_path=locator,
            compressed_size=len(output),
            completed_at=timezone.now(),
        )
        if updated:
            logger.info("job %s done, %s -> %s bytes", job.id, job.original_size, len(output))
        else:
            logger.warning("job %s left PROCESSING before it could be marked done", job.id)

    def mark_failed(self, task, message: str) -> None:
        """Failure hook for exhausted tasks."""
        updated = (
            CompressionJob.objects.filter(id=task.job_id)
            .exclude(status__in=CompressionJob.TERMINAL_STATUSES)
            .update(status=CompressionJob.STATUS_FAILED, error_message=message or "Processing failed")
        )
        if updated:
            logger.error("job %s failed: %s", task.job_id, message)


def _as_uuid(value):
    """Parse a job or batch id from a URL; None when it is not a UUID."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _unique_name(name: str, taken: set) -> str:
    candidate = name
    base, ext = os.path.splitext(name)
    n = 2
    while candidate in taken:
        candidate = f"{base}_{n}{ext}"
        n += 1
    taken.add(candidate)
    return candidate


def build_service(conf=settings, storage=None) -> CompressionService:
    """Wire the pipeline from settings. Call once per process."""
    queue = WorkQueue(
        max_attempts=conf.QUEUE_MAX_ATTEMPTS,
        backoff_seconds=conf.QUEUE_BACKOFF_SECONDS,
        keep_completed=conf.QUEUE_KEEP_COMPLETED,
        keep_failed=conf.QUEUE_KEEP_FAILED,
    )
    return CompressionService(
        storage=storage or build_storage(conf),
        queue=queue,
        upload_dir=conf.UPLOAD_DIR,
        max_upload_bytes=conf.MAX_UPLOAD_BYTES,
        max_batch_files=conf.MAX_BATCH_FILES,
        job_ttl=timedelta(hours=conf.JOB_TTL_HOURS),
    )
