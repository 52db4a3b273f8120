"""
Fault reporting.

Unhandled faults are published to an SNS topic before the handler
re-raises. Publishing happens on a worker thread so the flush can be
bounded; a slow or failing topic never holds up the invocation past the
timeout and never replaces the original exception.
"""
import json
import logging
import traceback
from concurrent.futures import ThreadPoolExecutor, wait

import boto3
from botocore.config import Config

logger = logging.getLogger(__name__)


class ErrorReporter:
    """No-op reporter used when no topic is configured."""

    def capture_exception(self, error, **context):
        pass

    def flush(self, timeout):
        return True


class SnsErrorReporter(ErrorReporter):
    def __init__(self, topic_arn, release='', tags=None, client=None):
        self.topic_arn = topic_arn
        self.release = release
        self.tags = dict(tags or {})
        self.client = client or boto3.client(
            'sns',
            config=Config(connect_timeout=2, read_timeout=2, retries={'max_attempts': 1}),
        )
        self._pending = []

    def build_message(self, error, context):
        return {
            'release': self.release,
            'tags': self.tags,
            'context': context,
            'error': type(error).__name__,
            'message': str(error),
            'traceback': ''.join(
                traceback.format_exception(type(error), error, error.__traceback__)
            ),
        }

    def capture_exception(self, error, **context):
        self._pending.append(self.build_message(error, context))

    def _publish(self, message):
        self.client.publish(
            TopicArn=self.topic_arn,
            Subject=f"Image optimizer fault: {message['error']}"[:100],
            Message=json.dumps(message, default=str),
        )

    def flush(self, timeout):
        """Publish captured faults, waiting at most `timeout` seconds."""
        if not self._pending:
            return True
        pending, self._pending = self._pending, []

        executor = ThreadPoolExecutor(max_workers=1)
        futures = [executor.submit(self._publish, message) for message in pending]
        done, not_done = wait(futures, timeout=timeout)
        executor.shutdown(wait=False, cancel_futures=True)

        for future in done:
            if future.exception() is not None:
                logger.error("Failed to publish fault report: %s", future.exception())
        if not_done:
            logger.warning("Fault report flush timed out after %.1fs", timeout)
            return False
        return all(future.exception() is None for future in done)


def build_reporter(config):
    if not config.reporting_enabled:
        return ErrorReporter()
    return SnsErrorReporter(
        config.error_topic_arn,
        release=config.release,
        tags={'bucket': config.bucket_tag},
    )
