import os
import tempfile
from dataclasses import dataclass, field

DEFAULT_MIME_TYPES = frozenset([
    'image/bmp',
    'image/jpeg',
    'image/tiff',
    'image/png',
])


class ConfigError(ValueError):
    """Raised when an environment variable holds an unusable value."""


def _get_bool(env, name, default):
    raw = env.get(name)
    if raw is None or raw.strip() == '':
        return default
    value = raw.strip().lower()
    if value in {'1', 'true', 'yes', 'y'}:
        return True
    if value in {'0', 'false', 'no', 'n'}:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def _get_int(env, name, default, minimum=None):
    raw = env.get(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if minimum is not None and value < minimum:
        raise ConfigError(f"{name} must be at least {minimum}, got {value}")
    return value


def _get_float(env, name, default):
    raw = env.get(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def _get_quality(env, name):
    raw = env.get(name, 'keep').strip().lower() or 'keep'
    if raw == 'keep':
        return raw
    quality = _get_int(env, name, None)
    if not 1 <= quality <= 95:
        raise ConfigError(f"{name} must be 'keep' or between 1 and 95, got {quality}")
    return quality


@dataclass(frozen=True)
class OptimizerConfig:
    """Settings read once per container and shared read-only by invocations."""

    mime_types: frozenset = DEFAULT_MIME_TYPES
    temp_dir: str = 'tmp-optimize'
    marker_key: str = 'processed'
    metadata_attempts: int = 5
    scratch_dir: str = field(default_factory=tempfile.gettempdir)
    gzip_upload: bool = False
    # S3 checksums are computed over the stored bytes; with gzip on they still
    # match, so the switch only exists for stores with unreliable validation.
    validate_checksum: bool = True
    jpeg_quality: object = 'keep'
    release: str = ''
    error_topic_arn: str = ''
    bucket_tag: str = ''
    flush_timeout: float = 2.0

    @property
    def reporting_enabled(self):
        return bool(self.error_topic_arn)

    @classmethod
    def from_env(cls, env=None):
        env = os.environ if env is None else env

        mimes = env.get('MIME_TYPES', '')
        mime_types = frozenset(m.strip() for m in mimes.split(',') if m.strip())

        temp_dir = env.get('TEMP_DIR', '').strip().strip('/') or cls.temp_dir
        if '/' in temp_dir:
            raise ConfigError(f"TEMP_DIR must be a single path segment, got {temp_dir!r}")

        return cls(
            mime_types=mime_types or DEFAULT_MIME_TYPES,
            temp_dir=temp_dir,
            marker_key=env.get('MARKER_KEY', '').strip().lower() or cls.marker_key,
            metadata_attempts=_get_int(env, 'METADATA_ATTEMPTS', cls.metadata_attempts, minimum=1),
            scratch_dir=env.get('SCRATCH_DIR', '').strip() or tempfile.gettempdir(),
            gzip_upload=_get_bool(env, 'GZIP_UPLOAD', cls.gzip_upload),
            validate_checksum=_get_bool(env, 'VALIDATE_CHECKSUM', cls.validate_checksum),
            jpeg_quality=_get_quality(env, 'JPEG_QUALITY'),
            release=env.get('RELEASE', ''),
            error_topic_arn=env.get('ERROR_TOPIC_ARN', '').strip(),
            bucket_tag=env.get('BUCKET', ''),
            flush_timeout=_get_float(env, 'REPORT_FLUSH_TIMEOUT', cls.flush_timeout),
        )
