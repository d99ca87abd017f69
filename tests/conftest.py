"""Pytest configuration and shared fixtures."""

import os
from datetime import datetime, timedelta, timezone

import pytest

from vidupload.core.auth import StaticCredentialProvider
from vidupload.core.config import UploaderConfig
from vidupload.core.exceptions import ProtocolFatalError
from vidupload.core.models import LocalFile
from vidupload.core.retry import RetryPolicy
from vidupload.core.session import UploadSession
from vidupload.core.state_store import InMemoryStateStore

CHUNK = 256 * 1024
ENDPOINT = "https://storage.test/storage/v1/upload/resumable"


class FakeTusServer:
    """In-memory tus endpoint shared by every client a test creates.

    ``patch_failures`` is a queue of ``(when, exception)`` pairs consumed by
    successive PATCH requests: ``"before"`` fails without storing the bytes,
    ``"after"`` stores them and then fails, like a lost response.
    """

    def __init__(self):
        self.uploads = {}
        self.requests = []
        self.accepted = []  # (url, offset, size) of every stored chunk
        self.patch_failures = []
        self.after_chunk = None
        self.tokens = []
        self.clients = []
        self._counter = 0

    def client(self, access_token):
        self.tokens.append(access_token)
        client = FakeTusClient(self)
        self.clients.append(client)
        return client

    def add_upload(self, url, length, data=b""):
        self.uploads[url] = {"length": length, "metadata": {}, "data": bytearray(data)}

    def data(self, url=None):
        if url is None:
            url = list(self.uploads)[-1]
        return bytes(self.uploads[url]["data"])

    def methods(self):
        return [request[0] for request in self.requests]

    def patch_offsets(self):
        return [request[2] for request in self.requests if request[0] == "PATCH"]

    def _store(self, url, offset, data):
        upload = self.uploads[url]
        upload["data"] += data
        self.accepted.append((url, offset, len(data)))
        if self.after_chunk is not None:
            self.after_chunk(len(self.accepted))


class FakeTusClient:
    def __init__(self, server):
        self.server = server
        self.closed = False

    def create_upload(self, file_size, metadata, data=None):
        server = self.server
        server._counter += 1
        url = f"https://storage.test/upload/{server._counter}"
        server.uploads[url] = {"length": file_size, "metadata": dict(metadata), "data": bytearray()}
        server.requests.append(("POST", url, 0, len(data) if data else 0))
        if data:
            server._store(url, 0, data)
        return url, len(server.uploads[url]["data"])

    def get_offset(self, upload_url):
        self.server.requests.append(("HEAD", upload_url, None, 0))
        upload = self.server.uploads.get(upload_url)
        if upload is None:
            return None
        return len(upload["data"])

    def upload_chunk(self, upload_url, offset, data):
        server = self.server
        server.requests.append(("PATCH", upload_url, offset, len(data)))
        upload = server.uploads[upload_url]
        if offset != len(upload["data"]):
            raise ProtocolFatalError("offset mismatch", 409)

        when, exc = server.patch_failures.pop(0) if server.patch_failures else (None, None)
        if when == "before":
            raise exc
        server._store(upload_url, offset, data)
        if when == "after":
            raise exc
        return len(upload["data"])

    def close(self):
        self.closed = True


class RecordingSleep:
    """Stands in for the retry wait; records delays instead of sleeping."""

    def __init__(self):
        self.delays = []

    def __call__(self, token, delay):
        self.delays.append(delay)
        return token.cancelled


@pytest.fixture
def fake_server():
    return FakeTusServer()


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
def store():
    return InMemoryStateStore()


@pytest.fixture
def config(tmp_path):
    return UploaderConfig(
        endpoint_url=ENDPOINT,
        chunk_size=CHUNK,
        state_dir=tmp_path / "state",
    )


@pytest.fixture
def credentials():
    return StaticCredentialProvider("token-123", "user-1")


@pytest.fixture
def make_file(tmp_path):
    """Create a file of ``size`` random bytes and return its LocalFile."""

    def factory(name="video.mp4", size=6 * CHUNK, mtime=None):
        path = tmp_path / name
        path.write_bytes(os.urandom(size))
        if mtime is not None:
            os.utime(path, (mtime, mtime))
        return LocalFile.from_path(path)

    return factory


@pytest.fixture
def make_session(config, credentials, store, fake_server, sleeper):
    sessions = []

    def factory(**overrides):
        kwargs = dict(
            config=config,
            credentials=credentials,
            store=store,
            client_factory=fake_server.client,
            retry_policy=RetryPolicy(config.retry_delays, config.max_retries, sleep=sleeper),
        )
        kwargs.update(overrides)
        session = UploadSession(**kwargs)
        sessions.append(session)
        return session

    yield factory

    for session in sessions:
        session.close()


class FixedClock:
    def __init__(self, now=None):
        self.now = now or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FixedClock()
