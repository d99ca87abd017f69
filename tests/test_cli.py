"""Tests for the command line interface."""

import pytest
from click.testing import CliRunner

from conftest import CHUNK
from vidupload.cli import main as cli_main
from vidupload.core.models import UploadState
from vidupload.core.session import UploadSession
from vidupload.core.state_store import FileStateStore


@pytest.fixture
def state_dir(tmp_path, monkeypatch):
    path = tmp_path / "cli-state"
    monkeypatch.setenv("VIDUPLOAD_STATE_DIR", str(path))
    monkeypatch.setenv("VIDUPLOAD_STORAGE_URL", "https://storage.test")
    monkeypatch.setenv("VIDUPLOAD_ACCESS_TOKEN", "token-123")
    monkeypatch.setenv("VIDUPLOAD_USER_ID", "user-1")
    monkeypatch.setenv("VIDUPLOAD_CHUNK_SIZE", str(CHUNK))
    return path


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def fake_sessions(monkeypatch, fake_server):
    def factory(config, credentials):
        return UploadSession(config, credentials, client_factory=fake_server.client)

    monkeypatch.setattr(cli_main, "UploadSession", factory)


def seed_state(state_dir, **updates):
    values = dict(
        file_id="user-1-video.mp4-1000-1700000000000",
        file_name="video.mp4",
        file_size=1000,
        remote_object_path="user-1/1700000000000-video.mp4",
        remote_upload_url="https://storage.test/upload/9",
        bytes_uploaded=250,
    )
    values.update(updates)
    state = UploadState(**values)
    FileStateStore(state_dir).save(state)
    return state


def test_status_without_upload(runner, state_dir):
    result = runner.invoke(cli_main.cli, ["status"])

    assert result.exit_code == 0
    assert "No resumable upload" in result.output


def test_status_shows_resumable_upload(runner, state_dir):
    seed_state(state_dir)

    result = runner.invoke(cli_main.cli, ["status"])

    assert result.exit_code == 0
    assert "video.mp4" in result.output
    assert "25%" in result.output


def test_clear_with_yes(runner, state_dir):
    seed_state(state_dir)

    result = runner.invoke(cli_main.cli, ["clear", "--yes"])

    assert result.exit_code == 0
    assert "cleared" in result.output
    assert FileStateStore(state_dir).load() is None


def test_clear_declined_keeps_state(runner, state_dir):
    seed_state(state_dir)

    result = runner.invoke(cli_main.cli, ["clear"], input="n\n")

    assert result.exit_code == 0
    assert FileStateStore(state_dir).load() is not None


def test_upload(runner, state_dir, fake_sessions, fake_server, make_file):
    file = make_file(size=3 * CHUNK)

    result = runner.invoke(cli_main.cli, ["upload", str(file.path), "--path", "user-1/clip.mp4"])

    assert result.exit_code == 0, result.output
    assert "Upload completed" in result.output
    assert fake_server.data() == file.path.read_bytes()
    assert FileStateStore(state_dir).load() is None


def test_resume_without_state_fails(runner, state_dir, fake_sessions, make_file):
    file = make_file(size=CHUNK)

    result = runner.invoke(cli_main.cli, ["resume", str(file.path)])

    assert result.exit_code == 1
    assert "no upload to resume" in result.output


def test_resume_other_file_fails(runner, state_dir, fake_sessions, make_file):
    seed_state(state_dir)
    file = make_file(name="other.mp4", size=CHUNK)

    result = runner.invoke(cli_main.cli, ["resume", str(file.path)])

    assert result.exit_code == 1
    assert FileStateStore(state_dir).load().file_name == "video.mp4"


def test_format_size():
    assert cli_main.format_size(512) == "512 B"
    assert cli_main.format_size(2048) == "2.0 KB"
    assert cli_main.format_size(6 * 1024 * 1024) == "6.0 MB"
