import pytest

from compression.disk_storage import LocalStorage
from compression.queue import WorkQueue
from compression.services import CompressionService
from compression.storage import LOCAL_FILES_URL

from .helpers import MemoryStorage


@pytest.fixture
def local_storage(tmp_path):
    return LocalStorage(str(tmp_path / "uploads"), LOCAL_FILES_URL)


@pytest.fixture
def remote_storage():
    return MemoryStorage()


@pytest.fixture
def queue():
    return WorkQueue(max_attempts=3, backoff_seconds=2)


@pytest.fixture
def make_service(queue, tmp_path):
    def factory(storage, **kwargs):
        return CompressionService(storage, queue, upload_dir=str(tmp_path / "uploads"), **kwargs)

    return factory


@pytest.fixture
def service(make_service, local_storage):
    return make_service(local_storage)


@pytest.fixture
def remote_service(make_service, remote_storage):
    return make_service(remote_storage)
