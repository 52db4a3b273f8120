import logging

logger = logging.getLogger(__name__)


class RetryError(Exception):
    """All attempts failed. `last_error` holds the final exception."""

    def __init__(self, attempts, last_error):
        super().__init__(f"gave up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


def retry(times, operation, retry_on=(Exception,)):
    """
    Call `operation` until it returns, at most `times` times, with no delay.

    Exceptions outside `retry_on` propagate at once. When every attempt
    fails a RetryError chained to the last failure is raised.
    """
    if times < 1:
        raise ValueError('times must be at least 1')

    last_error = None
    for attempt in range(1, times + 1):
        try:
            return operation()
        except retry_on as e:
            last_error = e
            logger.info("Attempt %d/%d failed: %s", attempt, times, e)

    raise RetryError(times, last_error) from last_error
