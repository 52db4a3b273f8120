import logging
import os

import boto3

from .config import OptimizerConfig
from .events import iter_events, new_token
from .processor import ObjectProcessor
from .reporting import build_reporter
from .storage import S3ObjectStore

logger = logging.getLogger()
logger.setLevel(os.environ.get('LOG_LEVEL', 'INFO').upper())

# Read once per container; invocations only ever read these
CONFIG = OptimizerConfig.from_env()
REPORTER = build_reporter(CONFIG)

_s3_client = None


def get_s3_client():
    global _s3_client
    if _s3_client is None:
        _s3_client = boto3.client('s3')
    return _s3_client


def s3_store(bucket):
    return S3ObjectStore(
        bucket,
        client=get_s3_client(),
        gzip_upload=CONFIG.gzip_upload,
        validate_checksum=CONFIG.validate_checksum,
    )


def optimize_handler(event, context, store_factory=s3_store, config=None, reporter=None):
    """
    Optimize Lambda - Process every object event in the invocation

    Modelled failures are returned in the summary; anything else is
    reported and re-raised so the transport redelivers.
    """
    config = config or CONFIG
    reporter = reporter or REPORTER
    request_id = getattr(context, 'aws_request_id', None) or new_token()

    try:
        object_events = list(iter_events(event))
    except Exception as e:
        logger.exception("Could not read object events from invocation %s", request_id)
        reporter.capture_exception(e, request_id=request_id)
        reporter.flush(config.flush_timeout)
        raise

    results = []
    for index, object_event in enumerate(object_events):
        processor = ObjectProcessor(config, store_factory(object_event.bucket), reporter)
        result = processor.handle_event(object_event, token=f"{request_id}-{index}")
        results.append(result)

    failed_count = sum(1 for r in results if not r.ok)
    summary = {
        'statusCode': 200 if failed_count == 0 else 207,  # 207 = multi-status
        'processed': len(results) - failed_count,
        'failed': failed_count,
        'results': [r.as_dict() for r in results],
    }

    logger.info("Processing complete: %d handled, %d failed", len(results) - failed_count, failed_count)
    return summary


handler = optimize_handler
