"""Tests for the chunked transfer engine."""

import pytest

from conftest import CHUNK, FakeTusClient
from vidupload.core.cancellation import CancellationToken, CancelReason
from vidupload.core.exceptions import ProtocolFatalError, UploadPausedError, UserCancelledError
from vidupload.core.models import UploadState
from vidupload.core.transfer import ChunkedTransferEngine


@pytest.fixture
def client(fake_server):
    return FakeTusClient(fake_server)


def make_state(file, **updates):
    return UploadState(
        file_id="user-1-id",
        file_name=file.name,
        file_size=file.size,
        remote_object_path=f"user-1/{file.name}",
        **updates,
    )


def test_sends_fixed_size_chunks_in_order(client, fake_server, make_file):
    file = make_file(size=5 * CHUNK + 100)
    engine = ChunkedTransferEngine(client, chunk_size=CHUNK)
    progress = []
    sessions = []

    result = engine.upload(
        file,
        make_state(file),
        CancellationToken(),
        on_session=lambda url, offset: sessions.append((url, offset)),
        on_progress=lambda sent, total: progress.append((sent, total)),
    )

    assert result == "user-1/video.mp4"
    assert fake_server.data() == file.path.read_bytes()
    assert [size for _, _, size in fake_server.accepted] == [CHUNK] * 5 + [100]
    assert fake_server.patch_offsets() == [CHUNK * i for i in range(1, 6)]
    assert sessions == [("https://storage.test/upload/1", CHUNK)]
    assert progress[0] == (CHUNK, file.size)
    assert progress[-1] == (file.size, file.size)
    assert len(progress) == 6


def test_creation_without_data(client, fake_server, make_file):
    file = make_file(size=2 * CHUNK)
    engine = ChunkedTransferEngine(client, chunk_size=CHUNK, upload_data_during_creation=False)

    engine.upload(file, make_state(file), CancellationToken())

    assert fake_server.requests[0] == ("POST", "https://storage.test/upload/1", 0, 0)
    assert fake_server.patch_offsets() == [0, CHUNK]


def test_resumes_from_remote_offset(client, fake_server, make_file):
    file = make_file(size=4 * CHUNK)
    url = "https://storage.test/upload/abc"
    fake_server.add_upload(url, file.size, file.path.read_bytes()[: 3 * CHUNK])
    engine = ChunkedTransferEngine(client, chunk_size=CHUNK)

    engine.upload(file, make_state(file, remote_upload_url=url, bytes_uploaded=CHUNK), CancellationToken())

    assert fake_server.methods() == ["HEAD", "PATCH"]
    assert fake_server.patch_offsets() == [3 * CHUNK]
    assert fake_server.data(url) == file.path.read_bytes()


def test_remote_offset_beyond_file_size_is_fatal(client, fake_server, make_file):
    file = make_file(size=CHUNK)
    url = "https://storage.test/upload/abc"
    fake_server.add_upload(url, file.size, b"x" * (CHUNK + 1))
    engine = ChunkedTransferEngine(client, chunk_size=CHUNK)

    with pytest.raises(ProtocolFatalError):
        engine.upload(file, make_state(file, remote_upload_url=url), CancellationToken())


def test_stops_at_chunk_boundary_when_paused(client, fake_server, make_file):
    file = make_file(size=4 * CHUNK)
    token = CancellationToken()
    fake_server.after_chunk = lambda count: token.cancel(CancelReason.PAUSE) if count == 2 else None
    engine = ChunkedTransferEngine(client, chunk_size=CHUNK)

    with pytest.raises(UploadPausedError):
        engine.upload(file, make_state(file), token)

    # the in-flight chunk completed before the signal was observed
    assert len(fake_server.accepted) == 2


def test_cancelled_before_start_sends_nothing(client, fake_server, make_file):
    file = make_file()
    token = CancellationToken()
    token.cancel()
    engine = ChunkedTransferEngine(client, chunk_size=CHUNK)

    with pytest.raises(UserCancelledError):
        engine.upload(file, make_state(file), token)

    assert fake_server.requests == []


def test_empty_file(client, fake_server, make_file):
    file = make_file(size=0)
    progress = []
    engine = ChunkedTransferEngine(client, chunk_size=CHUNK)

    engine.upload(file, make_state(file), CancellationToken(), on_progress=lambda s, t: progress.append((s, t)))

    assert fake_server.methods() == ["POST"]
    assert progress == [(0, 0)]


def test_offset_that_does_not_advance_is_fatal(make_file):
    file = make_file(size=2 * CHUNK)

    class StuckClient:
        def create_upload(self, file_size, metadata, data=None):
            return "https://storage.test/upload/1", 0

        def upload_chunk(self, upload_url, offset, data):
            return offset

    engine = ChunkedTransferEngine(StuckClient(), chunk_size=CHUNK, upload_data_during_creation=False)

    with pytest.raises(ProtocolFatalError):
        engine.upload(file, make_state(file), CancellationToken())


def test_file_shorter_than_declared_is_fatal(client, make_file):
    file = make_file(size=2 * CHUNK)
    file.path.write_bytes(b"short")
    engine = ChunkedTransferEngine(client, chunk_size=CHUNK)

    with pytest.raises(ProtocolFatalError):
        engine.upload(file, make_state(file), CancellationToken())


def test_rejects_non_positive_chunk_size(client):
    with pytest.raises(ValueError):
        ChunkedTransferEngine(client, chunk_size=0)
