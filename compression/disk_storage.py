import os
import shutil
from pathlib import Path

from django.core.exceptions import SuspiciousFileOperation
from django.utils._os import safe_join

from .storage import ObjectNotFound, StorageBackend


def ensure_dirs(*dirs):
    for d in dirs:
        Path(d).mkdir(parents=True, exist_ok=True)


class LocalStorage(StorageBackend):
    """Artifacts on the local filesystem; locators are absolute paths."""

    def __init__(self, base_dir: str, base_url: str):
        self.base_dir = os.path.abspath(base_dir)
        self.base_url = base_url
        ensure_dirs(self.base_dir)

    def save(self, source_path: str, key: str) -> str:
        dest = self.resolve(key)
        ensure_dirs(os.path.dirname(dest))
        if os.path.abspath(source_path) != dest:
            shutil.copyfile(source_path, dest)
        return dest

    def get_buffer(self, locator: str) -> bytes:
        try:
            with open(locator, "rb") as fh:
                return fh.read()
        except FileNotFoundError as e:
            raise ObjectNotFound(locator) from e

    def delete(self, locator: str) -> None:
        try:
            os.remove(locator)
        except FileNotFoundError:
            pass

    def get_url(self, locator: str) -> str:
        rel = os.path.relpath(os.path.abspath(locator), self.base_dir)
        return self.base_url + rel.replace(os.sep, "/")

    def resolve(self, name: str) -> str:
        """Map a key or URL-relative name to a path inside base_dir."""
        try:
            return safe_join(self.base_dir, name)
        except SuspiciousFileOperation as e:
            raise ObjectNotFound(name) from e
