import os
import uuid

from django.conf import settings
from django.db import models


def quality_to_level(quality: int) -> str:
    # Higher quality means lighter compression.
    if quality >= 70:
        return CompressionJob.LEVEL_LOW
    if quality >= 40:
        return CompressionJob.LEVEL_MEDIUM
    return CompressionJob.LEVEL_HIGH


class CompressionJob(models.Model):
    STATUS_PENDING = "PENDING"
    STATUS_PROCESSING = "PROCESSING"
    STATUS_DONE = "DONE"
    STATUS_FAILED = "FAILED"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_PROCESSING, "Processing"),
        (STATUS_DONE, "Done"),
        (STATUS_FAILED, "Failed"),
    ]

    TERMINAL_STATUSES = (STATUS_DONE, STATUS_FAILED)

    LEVEL_LOW = "LOW"
    LEVEL_MEDIUM = "MEDIUM"
    LEVEL_HIGH = "HIGH"

    LEVEL_CHOICES = [
        (LEVEL_LOW, "Low"),
        (LEVEL_MEDIUM, "Medium"),
        (LEVEL_HIGH, "High"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    batch_id = models.UUIDField(null=True, blank=True, db_index=True)

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="compression_jobs",
    )

    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)

    original_name = models.CharField(max_length=255)
    original_size = models.BigIntegerField(default=0)
    mime_type = models.CharField(max_length=64)
    quality = models.PositiveSmallIntegerField(default=75)
    level = models.CharField(max_length=8, choices=LEVEL_CHOICES, default=LEVEL_LOW)

    # input_path is always a local temp file; output_path is a storage locator
    input_path = models.CharField(max_length=512)
    output_path = models.CharField(max_length=512, null=True, blank=True)
    compressed_size = models.BigIntegerField(null=True, blank=True)

    error_message = models.TextField(null=True, blank=True)

    created_at = models.DateTimeField(db_index=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(db_index=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.id} {self.status} {self.original_name}"

    @property
    def savings_percent(self) -> int:
        if self.compressed_size is None or self.original_size <= 0:
            return 0
        return round((self.original_size - self.compressed_size) / self.original_size * 100)

    @property
    def download_name(self) -> str:
        base, ext = os.path.splitext(os.path.basename(self.original_name))
        return f"{base}_compressed{ext}"


class Task(models.Model):
    """A queue message for one processing attempt series of a job."""

    STATUS_QUEUED = "QUEUED"
    STATUS_RUNNING = "RUNNING"
    STATUS_COMPLETED = "COMPLETED"
    STATUS_FAILED = "FAILED"

    STATUS_CHOICES = [
        (STATUS_QUEUED, "Queued"),
        (STATUS_RUNNING, "Running"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_FAILED, "Failed"),
    ]

    job_id = models.UUIDField(db_index=True)
    input_path = models.CharField(max_length=512)
    mime_type = models.CharField(max_length=64)
    quality = models.PositiveSmallIntegerField()

    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_QUEUED, db_index=True)
    attempts = models.PositiveIntegerField(default=0)
    max_attempts = models.PositiveIntegerField(default=3)
    run_after = models.DateTimeField(db_index=True)
    last_error = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    finished_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return f"task {self.pk} job={self.job_id} {self.status} {self.attempts}/{self.max_attempts}"


class UserQuota(models.Model):
    TIER_FREE = "FREE"
    TIER_PRO = "PRO"
    TIER_ENTERPRISE = "ENTERPRISE"

    TIER_CHOICES = [
        (TIER_FREE, "Free"),
        (TIER_PRO, "Pro"),
        (TIER_ENTERPRISE, "Enterprise"),
    ]

    # None means unlimited
    DAILY_LIMITS = {
        TIER_FREE: 10,
        TIER_PRO: 500,
        TIER_ENTERPRISE: None,
    }

    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="compression_quota")
    tier = models.CharField(max_length=16, choices=TIER_CHOICES, default=TIER_FREE)
    daily_uploads = models.PositiveIntegerField(default=0)
    daily_reset_at = models.DateField()

    def __str__(self):
        return f"{self.user_id} {self.tier} {self.daily_uploads}"

    @property
    def daily_limit(self):
        return self.DAILY_LIMITS.get(self.tier)
