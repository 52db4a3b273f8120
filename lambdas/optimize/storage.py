"""
Object store access.

The processor only talks to the ObjectStore protocol. S3ObjectStore binds
it to one S3 bucket through boto3. S3 has no rename and no in-place
metadata update, so both are done with server-side copies.
"""
import gzip
import logging
import os
import shutil
from typing import Optional, Protocol

import boto3
from boto3.exceptions import S3TransferFailedError, S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {'404', 'NoSuchKey', 'NotFound'}

# upload_file and download_file re-wrap ClientError in boto3 transfer errors
StoreError = (BotoCoreError, ClientError, S3UploadFailedError, S3TransferFailedError)


class ObjectStore(Protocol):
    def get_metadata(self, path: str) -> Optional[dict]:
        """User metadata of the object, or None when it does not exist."""

    def download(self, path: str, local_file: str) -> None: ...

    def upload(self, local_file: str, path: str, content_type: str) -> None: ...

    def set_metadata(self, path: str, metadata: dict) -> None: ...

    def move(self, src: str, dst: str) -> None: ...

    def exists(self, path: str) -> bool: ...


def is_not_found(error):
    if not isinstance(error, ClientError):
        return False
    return str(error.response.get('Error', {}).get('Code')) in NOT_FOUND_CODES


class S3ObjectStore:
    def __init__(self, bucket, client=None, gzip_upload=False, validate_checksum=True):
        self.bucket = bucket
        self.client = client or boto3.client('s3')
        self.gzip_upload = gzip_upload
        self.validate_checksum = validate_checksum

    def _head(self, path):
        try:
            return self.client.head_object(Bucket=self.bucket, Key=path)
        except ClientError as e:
            if is_not_found(e):
                return None
            raise

    def get_metadata(self, path):
        head = self._head(path)
        if head is None:
            return None
        return dict(head.get('Metadata') or {})

    def exists(self, path):
        return self._head(path) is not None

    def download(self, path, local_file):
        self.client.download_file(self.bucket, path, local_file)

    def upload(self, local_file, path, content_type):
        extra_args = {'ContentType': content_type}
        if self.validate_checksum:
            extra_args['ChecksumAlgorithm'] = 'SHA256'

        if not self.gzip_upload:
            self.client.upload_file(local_file, self.bucket, path, ExtraArgs=extra_args)
            return

        # Stored gzip-encoded; clients that honour Content-Encoding see the original bytes
        extra_args['ContentEncoding'] = 'gzip'
        compressed = f"{local_file}.gz"
        try:
            with open(local_file, 'rb') as src, gzip.open(compressed, 'wb') as dst:
                shutil.copyfileobj(src, dst)
            self.client.upload_file(compressed, self.bucket, path, ExtraArgs=extra_args)
        finally:
            if os.path.exists(compressed):
                os.remove(compressed)

    def set_metadata(self, path, metadata):
        head = self.client.head_object(Bucket=self.bucket, Key=path)
        merged = dict(head.get('Metadata') or {})
        merged.update({k: str(v) for k, v in metadata.items()})

        # A REPLACE copy drops system headers that are not passed back in
        kwargs = {
            'Bucket': self.bucket,
            'Key': path,
            'CopySource': {'Bucket': self.bucket, 'Key': path},
            'Metadata': merged,
            'MetadataDirective': 'REPLACE',
        }
        for header in ('ContentType', 'ContentEncoding', 'CacheControl'):
            if head.get(header):
                kwargs[header] = head[header]
        self.client.copy_object(**kwargs)

    def move(self, src, dst):
        self.client.copy_object(
            Bucket=self.bucket,
            Key=dst,
            CopySource={'Bucket': self.bucket, 'Key': src},
            MetadataDirective='COPY',
        )
        self.client.delete_object(Bucket=self.bucket, Key=src)
