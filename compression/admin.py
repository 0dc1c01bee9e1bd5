from django.contrib import admin
from .models import CompressionJob, Task, UserQuota


@admin.register(CompressionJob)
class CompressionJobAdmin(admin.ModelAdmin):
    list_display = ("id", "status", "original_name", "original_size", "compressed_size", "level", "created_at", "expires_at")
    list_filter = ("status", "level", "mime_type")
    search_fields = ("id", "batch_id", "original_name", "input_path", "output_path")


@admin.register(Task)
class TaskAdmin(admin.ModelAdmin):
    list_display = ("id", "job_id", "status", "attempts", "max_attempts", "run_after", "finished_at")
    list_filter = ("status",)
    search_fields = ("job_id", "last_error")


@admin.register(UserQuota)
class UserQuotaAdmin(admin.ModelAdmin):
    list_display = ("user", "tier", "daily_uploads", "daily_reset_at")
    list_filter = ("tier",)
