import io
import os

from django.core.files.uploadedfile import SimpleUploadedFile
from PIL import Image

from compression.storage import ObjectNotFound, StorageBackend
from compression.worker import Worker


class MemoryStorage(StorageBackend):
    """Remote-style backend kept in a dict; locators are keys."""

    is_remote = True

    def __init__(self):
        self.objects = {}

    def save(self, source_path, key):
        with open(source_path, "rb") as fh:
            self.objects[key] = fh.read()
        return key

    def get_buffer(self, locator):
        try:
            return self.objects[locator]
        except KeyError:
            raise ObjectNotFound(locator)

    def delete(self, locator):
        self.objects.pop(locator, None)

    def get_url(self, locator):
        return f"https://bucket.example/{locator}"


def noise_image(width=128, height=96, mode="RGB"):
    channels = len(mode)
    return Image.frombytes(mode, (width, height), os.urandom(width * height * channels))


def gradient_image(width=128, height=96):
    img = Image.new("RGB", (width, height))
    img.putdata([(x * 255 // width, y * 255 // height, 128) for y in range(height) for x in range(width)])
    return img


def encode(img, fmt="JPEG", **params):
    buf = io.BytesIO()
    img.save(buf, format=fmt, **params)
    return buf.getvalue()


def jpeg_bytes(width=128, height=96):
    return encode(noise_image(width, height), "JPEG", quality=100)


def upload_file(name="photo.jpg", data=None, content_type="image/jpeg"):
    return SimpleUploadedFile(name, jpeg_bytes() if data is None else data, content_type=content_type)


def make_worker(service):
    return Worker(service.queue, service.process_task, service.mark_failed, concurrency=1, poll_seconds=0)


def drain(worker, now=None, limit=100):
    """Run tasks until the queue has nothing eligible at `now`."""
    n = 0
    while n < limit and worker.run_once(now=now):
        n += 1
    return n
