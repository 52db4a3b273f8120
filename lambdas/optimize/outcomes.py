"""
Outcomes of a single invocation and the errors that lead to them.

Every event ends in exactly one Outcome. Skips are routine filtering,
failures are tied to one pipeline stage. Anything else is a fault and
propagates out of the handler.
"""
from dataclasses import dataclass
from enum import Enum


class Outcome(Enum):
    # (exit code, kind, detail)
    SUCCESS = (0, 'success', None)
    TEMPORARY_PATH = (1 << 0, 'skipped', 'TemporaryPath')
    UNSUPPORTED_CONTENT_TYPE = (1 << 1, 'skipped', 'UnsupportedContentType')
    FILE_LOOKUP_ERROR = (1 << 2, 'failed', 'FileLookupError')
    ALREADY_PROCESSED = (1 << 3, 'skipped', 'AlreadyProcessed')
    DOWNLOAD_ERROR = (1 << 4, 'failed', 'DownloadError')
    METADATA_ERROR = (1 << 5, 'failed', 'MetadataError')
    TRANSFORM_ERROR = (1 << 6, 'failed', 'TransformError')
    UPLOAD_ERROR = (1 << 7, 'failed', 'UploadError')

    def __init__(self, code, kind, detail):
        self.code = code
        self.kind = kind
        self.detail = detail

    @property
    def label(self):
        if self.detail is None:
            return 'Success'
        return f"{self.kind.capitalize()}({self.detail})"


@dataclass(frozen=True)
class ProcessingResult:
    outcome: Outcome
    path: str
    reason: str

    @property
    def ok(self):
        return self.outcome.kind != 'failed'

    def as_dict(self):
        return {
            'outcome': self.outcome.label,
            'code': self.outcome.code,
            'path': self.path,
            'reason': self.reason,
        }


class ProcessingError(Exception):
    """Base for modelled failures; each subclass maps to one Outcome."""

    outcome = None

    def __init__(self, path, message, cause=None):
        super().__init__(f"{path}: {message}")
        self.path = path
        self.message = message
        self.cause = cause


class FileLookupError(ProcessingError):
    outcome = Outcome.FILE_LOOKUP_ERROR


class MetadataError(ProcessingError):
    outcome = Outcome.METADATA_ERROR


class PipelineError(ProcessingError):
    """Raised by the fetch, transform and publish stages."""


class DownloadError(PipelineError):
    outcome = Outcome.DOWNLOAD_ERROR


class TransformError(PipelineError):
    outcome = Outcome.TRANSFORM_ERROR


class UploadError(PipelineError):
    outcome = Outcome.UPLOAD_ERROR

    def __init__(self, path, message, cause=None, stage='upload'):
        super().__init__(path, message, cause)
        self.stage = stage
