import io
import mimetypes
import os

from django.core.exceptions import TooManyFilesSent
from django.http import FileResponse, JsonResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from .errors import AuthRequired, CompressionError, NoFile, TooManyFiles, ValidationFailed
from .forms import HistoryQueryForm, UploadOptionsForm, first_error
from .storage import ObjectNotFound


def healthz(request):
    return JsonResponse({"ok": True})


def _caller(request):
    user = getattr(request, "user", None)
    if user is not None and user.is_authenticated:
        return user
    return None


def _quality(request) -> int:
    form = UploadOptionsForm(request.POST)
    if not form.is_valid():
        raise ValidationFailed(first_error(form.errors))
    return form.cleaned_data["quality"]


@method_decorator(csrf_exempt, name="dispatch")
class ServiceView(View):
    """Base for API views. The pipeline service is injected through as_view()."""

    service = None

    def dispatch(self, request, *args, **kwargs):
        try:
            return super().dispatch(request, *args, **kwargs)
        except TooManyFilesSent:
            e = TooManyFiles(f"At most {self.service.max_batch_files} files per batch")
        except CompressionError as err:
            e = err
        return JsonResponse({"ok": False, "error": e.message, "error_code": e.code}, status=e.status)

    def http_method_not_allowed(self, request, *args, **kwargs):
        return JsonResponse({"ok": False, "error": "Method not allowed"}, status=405)


class CompressView(ServiceView):
    def post(self, request):
        f = request.FILES.get("image") or request.FILES.get("file")
        if not f:
            raise NoFile()

        job = self.service.submit_upload(f, _quality(request), user=_caller(request))
        return JsonResponse({"ok": True, "jobId": str(job.id), "status": job.status}, status=202)


class JobStatusView(ServiceView):
    def get(self, request, job_id):
        job = self.service.get_status(job_id)
        return JsonResponse({"ok": True, **self.service.describe(job)})


class DownloadView(ServiceView):
    def get(self, request, job_id):
        data, job = self.service.fetch_output(job_id)
        return FileResponse(io.BytesIO(data), as_attachment=True, filename=job.download_name, content_type=job.mime_type)


class PreviewView(ServiceView):
    def get(self, request, job_id):
        data, job = self.service.fetch_output(job_id)
        resp = FileResponse(io.BytesIO(data), filename=job.download_name, content_type=job.mime_type)
        resp["Cache-Control"] = "public, max-age=3600"
        return resp


class BatchView(ServiceView):
    def post(self, request):
        files = request.FILES.getlist("images") or request.FILES.getlist("files")
        batch_id, jobs = self.service.submit_batch(files, _quality(request), user=_caller(request))
        return JsonResponse({"ok": True, "batchId": str(batch_id), "jobs": jobs}, status=202)


class BatchZipView(ServiceView):
    def get(self, request, batch_id):
        fh, filename = self.service.build_batch_archive(batch_id)
        return FileResponse(fh, as_attachment=True, filename=filename, content_type="application/zip")


class HistoryView(ServiceView):
    def get(self, request):
        user = _caller(request)
        if user is None:
            raise AuthRequired()

        form = HistoryQueryForm(request.GET)
        if not form.is_valid():
            raise ValidationFailed(first_error(form.errors))

        page = self.service.list_history(user, form.cleaned_data["page"], form.cleaned_data["pageSize"])
        return JsonResponse({"ok": True, **page})


class UsageView(ServiceView):
    def get(self, request):
        user = _caller(request)
        if user is None:
            raise AuthRequired()
        return JsonResponse({"ok": True, **self.service.usage(user)})


class LocalFileView(ServiceView):
    """Serves artifacts of the local storage backend (target of its get_url)."""

    def get(self, request, name):
        storage = self.service.storage
        if storage.is_remote:
            return JsonResponse({"ok": False, "error": "Not found"}, status=404)

        try:
            path = storage.resolve(name)
        except ObjectNotFound:
            return JsonResponse({"ok": False, "error": "Not found"}, status=404)
        if not os.path.isfile(path):
            return JsonResponse({"ok": False, "error": "Not found"}, status=404)

        content_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
        return FileResponse(open(path, "rb"), content_type=content_type)
