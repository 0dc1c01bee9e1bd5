from django.urls import path

from . import views
from .services import build_service

# One pipeline per process; driver selection happens here, at startup.
service = build_service()

urlpatterns = [
    path("compress", views.CompressView.as_view(service=service), name="compress"),
    path("compress/batch", views.BatchView.as_view(service=service), name="compress_batch"),
    path("compress/batch/<str:batch_id>/zip", views.BatchZipView.as_view(service=service), name="compress_batch_zip"),
    path("compress/history", views.HistoryView.as_view(service=service), name="compress_history"),
    path("compress/files/<path:name>", views.LocalFileView.as_view(service=service), name="compress_file"),
    path("compress/<str:job_id>", views.JobStatusView.as_view(service=service), name="job_status"),
    path("compress/<str:job_id>/download", views.DownloadView.as_view(service=service), name="job_download"),
    path("compress/<str:job_id>/preview", views.PreviewView.as_view(service=service), name="job_preview"),
    path("user/usage", views.UsageView.as_view(service=service), name="user_usage"),
]
