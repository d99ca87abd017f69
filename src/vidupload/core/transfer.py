"""Chunked transfer over the tus resumable upload protocol."""

import logging
import time
from typing import Callable, Dict, Optional

from .cancellation import CancellationToken
from .client import TusClient
from .config import DEFAULT_CHUNK_SIZE
from .exceptions import ProtocolFatalError
from .models import LocalFile, UploadState

logger = logging.getLogger(__name__)

SessionCallback = Callable[[str, int], None]
ProgressCallback = Callable[[int, int], None]


class ChunkedTransferEngine:
    """Move a file's bytes to the endpoint in fixed-size sequential chunks.

    The server offset is the only source of truth for where to continue; the
    locally recorded ``bytes_uploaded`` is never used to seek. The engine
    performs no retries: every failure propagates to the caller.
    """

    def __init__(
        self,
        client: TusClient,
        *,
        bucket: str = "videos",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        cache_control: str = "3600",
        upload_data_during_creation: bool = True,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.client = client
        self.bucket = bucket
        self.chunk_size = chunk_size
        self.cache_control = cache_control
        self.upload_data_during_creation = upload_data_during_creation

    @staticmethod
    def human_mb_per_s(num_bytes: int, seconds: float) -> float:
        """Return MB/s as float, avoiding divide-by-zero."""
        return (num_bytes / (1024 * 1024)) / seconds if seconds > 0 else float("inf")

    def build_metadata(self, file: LocalFile, state: UploadState) -> Dict[str, str]:
        return {
            "bucketName": self.bucket,
            "objectName": state.remote_object_path,
            "contentType": file.content_type,
            "cacheControl": self.cache_control,
        }

    def _read_chunk(self, fh, offset: int, file_size: int) -> bytes:
        fh.seek(offset)
        data = fh.read(min(self.chunk_size, file_size - offset))
        if not data:
            raise ProtocolFatalError(
                f"Local file ended at {offset} bytes, expected {file_size}"
            )
        return data

    def _check_offset(self, offset: int, previous: int, file_size: int, action: str) -> None:
        if offset > file_size:
            raise ProtocolFatalError(
                f"{action}: server offset {offset} exceeds file size {file_size}"
            )
        if offset <= previous:
            raise ProtocolFatalError(
                f"{action}: server offset did not advance (was {previous}, now {offset})"
            )

    def _open_session(self, file: LocalFile, state: UploadState, token: CancellationToken, fh):
        """Find the previous remote upload or create one.

        Returns (upload URL, remote offset, offset this run started from).
        """
        upload_url = state.remote_upload_url
        if upload_url:
            offset = self.client.get_offset(upload_url)
            if offset is not None:
                if offset > file.size:
                    raise ProtocolFatalError(
                        f"Remote offset {offset} exceeds file size {file.size}"
                    )
                if offset != state.bytes_uploaded:
                    logger.info(
                        f"Remote offset {offset} differs from local checkpoint "
                        f"{state.bytes_uploaded}; continuing from remote offset"
                    )
                logger.info(f"Resuming upload {upload_url} from byte {offset} of {file.size}")
                return upload_url, offset, offset
            logger.info("Previous upload session is gone, creating a new one")

        token.raise_if_cancelled()
        metadata = self.build_metadata(file, state)
        data = None
        if self.upload_data_during_creation and file.size > 0:
            data = self._read_chunk(fh, 0, file.size)
        upload_url, offset = self.client.create_upload(file.size, metadata, data=data)
        if offset > file.size:
            raise ProtocolFatalError(
                f"create upload: server offset {offset} exceeds file size {file.size}"
            )
        return upload_url, offset, 0

    def upload(
        self,
        file: LocalFile,
        state: UploadState,
        token: CancellationToken,
        on_session: Optional[SessionCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> str:
        """Transfer ``file`` into ``state.remote_object_path``.

        Args:
            file: Local file to send
            state: Persisted record; its ``remote_upload_url`` is reused when set
            token: Checked before every chunk; raises when paused or cancelled
            on_session: Called with (upload URL, remote offset) once the session is known
            on_progress: Called with (bytes uploaded, total bytes) on every chunk boundary

        Returns:
            The remote object path
        """
        file_size = file.size
        start_time = time.time()

        def report(offset: int) -> None:
            if on_progress:
                on_progress(offset, file_size)

        with open(file.path, "rb") as fh:
            upload_url, offset, start_offset = self._open_session(file, state, token, fh)
            if on_session:
                on_session(upload_url, offset)
            report(offset)

            while offset < file_size:
                token.raise_if_cancelled()

                data = self._read_chunk(fh, offset, file_size)
                logger.debug(f"Sending bytes {offset}-{offset + len(data)} of {file_size}")
                new_offset = self.client.upload_chunk(upload_url, offset, data)
                self._check_offset(new_offset, offset, file_size, f"upload chunk at {offset}")

                offset = new_offset
                report(offset)

        sent = file_size - start_offset
        elapsed = time.time() - start_time
        speed = self.human_mb_per_s(sent, elapsed)
        logger.info(
            f"Upload of {file.name} to {state.remote_object_path} complete "
            f"({sent} bytes this run, {speed:.2f} MB/s)"
        )
        return state.remote_object_path
