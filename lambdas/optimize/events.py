"""Inbound events, eligibility filtering and path derivation.

Nothing in here touches the network or the filesystem.
"""
import json
import os
import posixpath
import re
import uuid
from dataclasses import dataclass

from .outcomes import FileLookupError, Outcome

GENERATION_SUFFIX = re.compile(r'/[0-9]+$')


@dataclass(frozen=True)
class ObjectEvent:
    id: str
    bucket: str
    content_type: str

    @classmethod
    def from_payload(cls, payload):
        """Build an event from a storage notification payload."""
        return cls(
            id=str(payload.get('id') or ''),
            bucket=str(payload.get('bucket') or ''),
            content_type=str(payload.get('contentType') or ''),
        )


def iter_events(event):
    """
    Yield ObjectEvents from a Lambda event.

    Accepts either a bare notification payload or an SNS batch whose
    messages each hold one payload.
    """
    records = event.get('Records')
    if records is None:
        yield ObjectEvent.from_payload(event)
        return

    for sns_record in records:
        message = json.loads(sns_record['Sns']['Message'])
        yield ObjectEvent.from_payload(message)


def check_eligibility(event, config):
    """Return the skip Outcome for an ineligible event, or None."""
    if f"/{config.temp_dir}/" in event.id:
        return Outcome.TEMPORARY_PATH
    if event.content_type not in config.mime_types:
        return Outcome.UNSUPPORTED_CONTENT_TYPE
    return None


def is_eligible(event, config):
    return check_eligibility(event, config) is None


@dataclass(frozen=True)
class PathSet:
    canonical: str
    working: str
    scratch: str


def canonical_path(raw_id, bucket):
    path = raw_id
    if bucket:
        path = path.replace(f"{bucket}/", '', 1)
    path = GENERATION_SUFFIX.sub('', path, count=1)
    return path.strip()


def new_token():
    return uuid.uuid4().hex


def derive_paths(raw_id, bucket, config, token):
    """
    Compute canonical, working and scratch paths for an event id.

    `token` namespaces the scratch file so two invocations on objects with
    the same base name never share it.
    """
    if '/' not in raw_id:
        raise FileLookupError(raw_id, 'identifier has no path separator')

    canonical = canonical_path(raw_id, bucket)
    name = posixpath.basename(canonical)
    if not canonical or not name:
        raise FileLookupError(raw_id, 'identifier does not name an object')

    return PathSet(
        canonical=canonical,
        working=f"{config.temp_dir}/{canonical}",
        scratch=os.path.join(config.scratch_dir, f"{token}-{name}"),
    )
