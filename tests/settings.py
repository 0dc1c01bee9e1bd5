import os
import tempfile

from pixpress.settings import *  # noqa: F401,F403

_TMP = tempfile.mkdtemp(prefix="pixpress-tests-")

DEBUG = False
SECRET_KEY = "tests-only"
ALLOWED_HOSTS = ["testserver", "localhost"]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.path.join(_TMP, "db.sqlite3"),
        # a file, not the in-memory default, so worker threads share it
        "TEST": {"NAME": os.path.join(_TMP, "test.sqlite3")},
        "OPTIONS": {"timeout": 20, "transaction_mode": "IMMEDIATE"},
    }
}

MEDIA_ROOT = _TMP
UPLOAD_DIR = os.path.join(_TMP, "uploads")
STORAGE_DRIVER = "local"
S3_BUCKET = ""

STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {"BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage"},
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]
SECURE_SSL_REDIRECT = False
