#!/usr/bin/env python3
"""
Basic usage examples for vidupload.

This script demonstrates the most common operations:
- Uploading a file in one call
- Driving an upload session with progress events
- Pausing and resuming
- Error handling
"""

import os
import sys
import tempfile
import threading

from vidupload import (
    AuthExpiredError,
    FileMismatchError,
    LocalFile,
    NoResumableUploadError,
    ProgressEvent,
    RetryEvent,
    StatusEvent,
    UploadSession,
    VidUploadError,
    upload_file,
)


def main():
    """Demonstrate basic vidupload operations."""

    # Requires VIDUPLOAD_STORAGE_URL, VIDUPLOAD_ACCESS_TOKEN and VIDUPLOAD_USER_ID
    if not os.getenv("VIDUPLOAD_ACCESS_TOKEN") or not os.getenv("VIDUPLOAD_USER_ID"):
        print("Set VIDUPLOAD_ACCESS_TOKEN and VIDUPLOAD_USER_ID to run this demo")
        sys.exit(1)

    with tempfile.NamedTemporaryFile(suffix=".mp4", delete=False) as f:
        f.write(os.urandom(20 * 1024 * 1024))
        test_file_path = f.name

    try:
        print("\n1. One-call upload...")
        try:
            remote_path = upload_file(test_file_path)
            print(f"   Uploaded to {remote_path}")
        except AuthExpiredError:
            print("   Session expired, sign in again")
            return
        except VidUploadError as e:
            print(f"   Upload failed: {e}")
            return

        print("\n2. Session with progress, pause and resume...")
        demonstrate_session(test_file_path)

        print("\n3. Demonstrating error handling...")
        demonstrate_error_handling(test_file_path)
    finally:
        os.unlink(test_file_path)


def demonstrate_session(path: str):
    """Start an upload, pause it halfway, then resume it."""
    file = LocalFile.from_path(path)
    halfway = threading.Event()

    with UploadSession() as session:

        def on_event(event):
            if isinstance(event, ProgressEvent):
                print(f"   {event.percent}% ({event.bytes_uploaded}/{event.bytes_total} bytes)")
                if event.percent >= 50:
                    halfway.set()
            elif isinstance(event, RetryEvent):
                print(f"   Retry {event.attempt} in {event.delay}s: {event.message}")
            elif isinstance(event, StatusEvent):
                print(f"   Status: {event.status.value}")

        session.events.subscribe(on_event)
        user_id = session.credentials.get_credentials().user_id

        future = session.start(file, user_id)
        halfway.wait(timeout=120)
        session.pause()
        print(f"   Paused result: {future.result()}")
        print(f"   Can resume: {session.snapshot.can_resume}")

        remote_path = session.resume(file).result()
        print(f"   Resumed upload finished: {remote_path}")


def demonstrate_error_handling(path: str):
    """Demonstrate proper error handling."""
    with UploadSession() as session:
        # Nothing is persisted after a completed upload
        try:
            session.resume(LocalFile.from_path(path))
            print("   Expected NoResumableUploadError but didn't get one")
        except NoResumableUploadError:
            print("   NoResumableUploadError handled correctly")

        # Resuming with a different file is refused and keeps the saved state
        user_id = session.credentials.get_credentials().user_id
        session.start(LocalFile.from_path(path), user_id)
        session.pause()
        with tempfile.NamedTemporaryFile(suffix=".mp4") as other:
            other.write(b"different file")
            other.flush()
            try:
                session.resume(LocalFile.from_path(other.name))
            except FileMismatchError as e:
                print(f"   FileMismatchError handled correctly: {e}")
        session.cancel()


if __name__ == "__main__":
    main()
