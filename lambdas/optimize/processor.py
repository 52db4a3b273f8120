"""
The optimize-in-place workflow for a single object event.

Order is fixed: filter, derive paths, check the processed marker, fetch,
transform, upload to the working path, mark, move over the canonical path.
The move is the commit point. Until it happens the canonical object is
untouched, so a crash anywhere earlier is safe to redeliver.

There is no lock around the canonical object. Two invocations for the same
generation can both pass the marker check and both publish; the marker is
advisory.
"""
import logging
import os

from . import transform
from .events import check_eligibility, derive_paths, new_token
from .outcomes import (
    DownloadError,
    MetadataError,
    Outcome,
    ProcessingError,
    ProcessingResult,
    TransformError,
    UploadError,
)
from .reporting import ErrorReporter
from .retry import RetryError, retry
from .storage import StoreError

logger = logging.getLogger(__name__)

TRANSFER_ERRORS = StoreError + (OSError,)


class ObjectProcessor:
    def __init__(self, config, store, reporter=None, optimizer=None):
        self.config = config
        self.store = store
        self.reporter = reporter or ErrorReporter()
        self.optimizer = optimizer or transform.optimize_file

    def is_marked(self, metadata):
        if not metadata:
            return False
        value = metadata.get(self.config.marker_key, '')
        return str(value).strip().lower() == 'true'

    def check_processed(self, path):
        """True when the object at `path` already carries the marker."""
        try:
            metadata = retry(
                self.config.metadata_attempts,
                lambda: self.store.get_metadata(path),
                retry_on=StoreError,
            )
        except RetryError as e:
            raise MetadataError(path, f"metadata fetch failed: {e.last_error}", e.last_error) from e
        return self.is_marked(metadata)

    def fetch(self, paths):
        try:
            self.store.download(paths.canonical, paths.scratch)
        except TRANSFER_ERRORS as e:
            raise DownloadError(paths.canonical, self.download_reason(paths.canonical, e), e) from e
        logger.info("Downloaded %s to %s", paths.canonical, paths.scratch)

    def download_reason(self, path, error):
        # Only looked up on failure, so a deleted object is told apart from access errors
        try:
            missing = not self.store.exists(path)
        except StoreError as lookup_error:
            logger.info("Existence check for %s failed: %s", path, lookup_error)
            missing = False
        if missing:
            return 'object does not exist'
        return f"download failed: {error}"

    def optimize(self, paths, content_type):
        try:
            before, after = self.optimizer(
                paths.scratch,
                content_type,
                preserve_metadata=True,
                jpeg_quality=self.config.jpeg_quality,
            )
        except (transform.OptimizeError, OSError) as e:
            raise TransformError(paths.canonical, f"optimize failed: {e}", e) from e
        logger.info("Optimized %s: %d -> %d bytes", paths.scratch, before, after)

    def publish(self, paths, content_type):
        try:
            self.store.upload(paths.scratch, paths.working, content_type)
        except TRANSFER_ERRORS as e:
            raise UploadError(paths.canonical, f"upload to {paths.working} failed: {e}", e) from e
        logger.info("Uploaded %s to %s", paths.scratch, paths.working)

        try:
            self.store.set_metadata(paths.working, {self.config.marker_key: 'true'})
        except StoreError as e:
            raise UploadError(paths.canonical, f"marking {paths.working} failed: {e}", e, stage='mark') from e
        logger.info("Added metadata to %s", paths.working)

        try:
            self.store.move(paths.working, paths.canonical)
        except StoreError as e:
            raise UploadError(paths.canonical, f"move from {paths.working} failed: {e}", e, stage='move') from e
        logger.info("Moved %s to %s", paths.working, paths.canonical)

    def process(self, paths, content_type):
        """Fetch, transform and publish. Scratch space is always cleared."""
        try:
            self.fetch(paths)
            self.optimize(paths, content_type)
            self.publish(paths, content_type)
        finally:
            if os.path.exists(paths.scratch):
                os.remove(paths.scratch)

    def handle(self, event, token=None):
        """Run the workflow for one event and return its ProcessingResult."""
        skip = check_eligibility(event, self.config)
        if skip is Outcome.TEMPORARY_PATH:
            logger.info("Event %s is a temporary file, ignoring.", event.id)
            return ProcessingResult(skip, event.id, 'object is under the working prefix')
        if skip is Outcome.UNSUPPORTED_CONTENT_TYPE:
            logger.info("Event %s has %s content-type, ignoring.", event.id, event.content_type)
            return ProcessingResult(skip, event.id, f"content type {event.content_type!r} is not supported")

        try:
            paths = derive_paths(event.id, event.bucket, self.config, token or new_token())

            if self.check_processed(paths.canonical):
                logger.info("File %s has already been optimized, ignoring.", paths.canonical)
                return ProcessingResult(Outcome.ALREADY_PROCESSED, paths.canonical, 'processed marker is set')

            self.process(paths, event.content_type)
        except ProcessingError as e:
            logger.warning("%s for %s: %s", e.outcome.label, e.path, e.message)
            return ProcessingResult(e.outcome, e.path, e.message)

        return ProcessingResult(Outcome.SUCCESS, paths.canonical, 'optimized and published')

    def handle_event(self, event, token=None):
        """Like handle, but report unmodelled faults before re-raising."""
        try:
            return self.handle(event, token)
        except Exception as e:
            logger.exception("Unexpected fault while processing %s", event.id)
            self.reporter.capture_exception(e, event_id=event.id, bucket=event.bucket)
            self.reporter.flush(self.config.flush_timeout)
            raise
