class CompressionError(Exception):
    """Base for errors reported to API callers with a status and a code."""

    status = 400
    code = "BAD_REQUEST"
    message = "Bad request"

    def __init__(self, message=None):
        self.message = message or self.message
        super().__init__(self.message)


class NoFile(CompressionError):
    code = "NO_FILE"
    message = "No file uploaded"


class NoFiles(CompressionError):
    code = "NO_FILES"
    message = "No files uploaded"


class TooManyFiles(CompressionError):
    code = "TOO_MANY_FILES"
    message = "Too many files in one batch"


class InvalidFileType(CompressionError):
    code = "INVALID_FILE_TYPE"
    message = "Unsupported file type. Allowed: JPG, PNG, WebP, AVIF"


class FileTooLarge(CompressionError):
    status = 413
    code = "FILE_TOO_LARGE"
    message = "File too large"


class ValidationFailed(CompressionError):
    code = "VALIDATION_ERROR"
    message = "Validation error"


class AuthRequired(CompressionError):
    status = 401
    code = "AUTH_REQUIRED"
    message = "Authentication required"


class QuotaExceeded(CompressionError):
    status = 429
    code = "QUOTA_EXCEEDED"
    message = "Daily upload quota exceeded. Upgrade to Pro for more."


class JobNotFound(CompressionError):
    status = 404
    code = "JOB_NOT_FOUND"
    message = "Job not found"


class NotReady(CompressionError):
    code = "NOT_READY"
    message = "File not ready yet"


class Expired(CompressionError):
    status = 410
    code = "FILE_EXPIRED"
    message = "File expired or deleted"


class BatchNotReady(CompressionError):
    status = 404
    code = "BATCH_NOT_READY"
    message = "No completed jobs in batch"
