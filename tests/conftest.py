import io

import pytest
from botocore.exceptions import ClientError
from PIL import Image

from lambdas.optimize.config import OptimizerConfig


def client_error(code, operation='HeadObject'):
    return ClientError({'Error': {'Code': code, 'Message': code}}, operation)


def make_image(fmt='PNG', size=(32, 24), color=(200, 30, 30), **save_options):
    image = Image.new('RGB', size, color)
    buffer = io.BytesIO()
    image.save(buffer, format=fmt, **save_options)
    return buffer.getvalue()


class FakeObjectStore:
    """In-memory ObjectStore that records every call."""

    def __init__(self):
        self.objects = {}
        self.calls = []
        self.failures = {}

    def put(self, path, data, metadata=None, content_type='image/png'):
        self.objects[path] = {
            'data': data,
            'metadata': dict(metadata or {}),
            'content_type': content_type,
        }

    def fail(self, operation, error, times=None):
        """Make `operation` raise `error`, forever or for `times` calls."""
        self.failures[operation] = [error, times]

    def _call(self, operation, *args):
        self.calls.append((operation,) + args)
        failure = self.failures.get(operation)
        if failure is not None:
            error, times = failure
            if times is None or times > 0:
                if times is not None:
                    failure[1] -= 1
                raise error

    def ops(self, operation):
        return [c for c in self.calls if c[0] == operation]

    def get_metadata(self, path):
        self._call('get_metadata', path)
        if path not in self.objects:
            return None
        return dict(self.objects[path]['metadata'])

    def exists(self, path):
        self._call('exists', path)
        return path in self.objects

    def download(self, path, local_file):
        self._call('download', path, local_file)
        if path not in self.objects:
            raise client_error('404', 'GetObject')
        with open(local_file, 'wb') as f:
            f.write(self.objects[path]['data'])

    def upload(self, local_file, path, content_type):
        self._call('upload', local_file, path, content_type)
        with open(local_file, 'rb') as f:
            self.put(path, f.read(), content_type=content_type)

    def set_metadata(self, path, metadata):
        self._call('set_metadata', path, metadata)
        if path not in self.objects:
            raise client_error('404', 'CopyObject')
        self.objects[path]['metadata'].update(metadata)

    def move(self, src, dst):
        self._call('move', src, dst)
        if src not in self.objects:
            raise client_error('404', 'CopyObject')
        self.objects[dst] = self.objects.pop(src)


@pytest.fixture
def config(tmp_path):
    return OptimizerConfig(scratch_dir=str(tmp_path))


@pytest.fixture
def store():
    return FakeObjectStore()
