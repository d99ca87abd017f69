"""Upload session controller: the public start/pause/resume/cancel surface."""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Optional, Union

from .auth import CredentialProvider, Credentials, EnvCredentialProvider
from .cancellation import CancellationToken, CancelReason
from .client import TusClient
from .config import UploaderConfig
from .events import EventStream
from .exceptions import (
    AuthExpiredError,
    ErrorKind,
    FileMismatchError,
    NetworkTransientError,
    NoResumableUploadError,
    ProtocolFatalError,
    SessionStateError,
    VidUploadError,
)
from .fingerprint import fingerprint
from .models import (
    LocalFile,
    ProgressEvent,
    RetryEvent,
    StatusEvent,
    UploadSnapshot,
    UploadState,
    UploadStatus,
    progress_percent,
)
from .retry import RetryAction, RetryPolicy
from .state_store import FileStateStore, UploadStateStore
from .transfer import ChunkedTransferEngine

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], TusClient]


class UploadSession:
    """Single-flight resumable upload controller.

    States are ``idle``, ``uploading``, ``paused``, ``succeeded`` and
    ``failed``. Transfers run on a one-thread executor; ``start`` and
    ``resume`` return a ``Future`` that resolves with the remote object path,
    with ``None`` when the upload was paused or cancelled, or raises the
    classified error when it failed.

    Every transfer run owns a ``CancellationToken``. ``pause`` and ``cancel``
    only signal it; the worker notices at the next chunk boundary.
    """

    def __init__(
        self,
        config: Optional[UploaderConfig] = None,
        credentials: Optional[CredentialProvider] = None,
        store: Optional[UploadStateStore] = None,
        client_factory: Optional[ClientFactory] = None,
        retry_policy: Optional[RetryPolicy] = None,
        events: Optional[EventStream] = None,
    ):
        self.config = config or UploaderConfig.from_env()
        self.credentials = credentials or EnvCredentialProvider()
        self.store = store or FileStateStore(
            self.config.state_dir, ttl_seconds=self.config.state_ttl_seconds
        )
        self.retry_policy = retry_policy or RetryPolicy(
            self.config.retry_delays, self.config.max_retries
        )
        self.events = events or EventStream()
        self._client_factory = client_factory or self._default_client

        self._lock = threading.RLock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="vidupload")

        self._status = UploadStatus.IDLE
        self._state: Optional[UploadState] = None
        self._token: Optional[CancellationToken] = None
        # bumped whenever a new logical upload begins or state is purged
        self._generation = 0
        self._retries = 0
        self._bytes_uploaded = 0
        self._bytes_total = 0
        self._checkpoint_bucket = 0
        self._error_kind: Optional[ErrorKind] = None
        self._error_message: Optional[str] = None
        self._remote_object_path: Optional[str] = None

        existing = self.store.load()
        if existing is not None:
            logger.info(
                f"Found resumable upload of {existing.file_name} "
                f"({existing.bytes_uploaded}/{existing.file_size} bytes)"
            )
            self._state = existing
            self._status = UploadStatus.PAUSED
            self._bytes_uploaded = existing.bytes_uploaded
            self._bytes_total = existing.file_size

    def _default_client(self, access_token: str) -> TusClient:
        return TusClient(self.config.endpoint, access_token, timeout=self.config.chunk_timeout)

    # Introspection
    @property
    def status(self) -> UploadStatus:
        with self._lock:
            return self._status

    @property
    def snapshot(self) -> UploadSnapshot:
        with self._lock:
            can_resume = self._state is not None and self._status in (
                UploadStatus.PAUSED,
                UploadStatus.FAILED,
            )
            if self._status == UploadStatus.SUCCEEDED:
                progress = 100
            elif self._bytes_total:
                progress = progress_percent(self._bytes_uploaded, self._bytes_total)
            else:
                progress = 0
            return UploadSnapshot(
                status=self._status,
                progress=progress,
                bytes_uploaded=self._bytes_uploaded,
                bytes_total=self._bytes_total,
                retry_attempt=self._retries,
                can_resume=can_resume,
                error_kind=self._error_kind,
                error_message=self._error_message,
                remote_object_path=self._remote_object_path,
                resumable_state=self._state.model_copy() if self._state else None,
            )

    # Control surface
    def start(
        self, file: LocalFile, user_id: str, destination_path_hint: Optional[str] = None
    ) -> "Future[Optional[str]]":
        """Begin uploading ``file``.

        A persisted upload of the same file to the same destination is continued
        from the remote offset; any other persisted upload is replaced.
        """
        credentials = self._require_credentials()

        with self._lock:
            if self._status == UploadStatus.UPLOADING:
                raise SessionStateError("start", self._status.value)

            client = self._client_factory(credentials.access_token)
            file_id = fingerprint(user_id, file)
            previous = self._resumable_state()
            if (
                previous is not None
                and previous.file_id == file_id
                and destination_path_hint in (None, previous.remote_object_path)
            ):
                # the remote session is bound to its object name, so both carry over
                logger.info(
                    f"Found previous upload of {file.name} to {previous.remote_object_path} "
                    f"({previous.bytes_uploaded}/{previous.file_size} bytes)"
                )
                state = previous
            else:
                state = UploadState(
                    file_id=file_id,
                    file_name=file.name,
                    file_size=file.size,
                    remote_object_path=(
                        destination_path_hint or f"{user_id}/{int(time.time() * 1000)}-{file.name}"
                    ),
                    bytes_uploaded=0,
                    created_at=self.store.clock(),
                )

            if self._token is not None:
                self._token.cancel(CancelReason.CANCEL)
            self._generation += 1
            self._retries = 0
            self._state = state
            self._bytes_uploaded = state.bytes_uploaded
            self._bytes_total = file.size
            self._checkpoint_bucket = self._bucket(state.bytes_uploaded, file.size)
            self.store.save(state)

            logger.info(
                f"Starting upload of {file.name} ({file.size} bytes) to {state.remote_object_path}"
            )
            return self._launch(file, client)

    def resume(self, file: LocalFile) -> "Future[Optional[str]]":
        """Continue the persisted upload with ``file``, which must match it."""
        with self._lock:
            if self._status == UploadStatus.UPLOADING:
                raise SessionStateError("resume", self._status.value)

        state = self._resumable_state()
        if state is None:
            raise NoResumableUploadError()

        credentials = self._require_credentials()
        file_id = fingerprint(credentials.user_id, file)
        if file_id != state.file_id:
            logger.warning(f"Refusing to resume {state.file_name} with a different file {file.name}")
            raise FileMismatchError(state.file_id, file_id)

        with self._lock:
            if self._status == UploadStatus.UPLOADING:
                raise SessionStateError("resume", self._status.value)
            client = self._client_factory(credentials.access_token)
            if self._state is None or self._state.file_id != state.file_id:
                self._generation += 1
            self._state = state
            self._bytes_uploaded = state.bytes_uploaded
            self._bytes_total = state.file_size
            self._checkpoint_bucket = self._bucket(state.bytes_uploaded, state.file_size)

            logger.info(
                f"Resuming upload of {file.name} to {state.remote_object_path} "
                f"(last checkpoint {state.bytes_uploaded}/{state.file_size} bytes)"
            )
            return self._launch(file, client)

    def pause(self) -> None:
        """Ask the running transfer to stop at the next chunk boundary."""
        with self._lock:
            if self._status != UploadStatus.UPLOADING:
                return
            self._token.cancel(CancelReason.PAUSE)
            self._status = UploadStatus.PAUSED
            if self._state is not None:
                self.store.save(self._state)
            logger.info(f"Upload paused at {self._bytes_uploaded}/{self._bytes_total} bytes")
        self.events.publish(StatusEvent(status=UploadStatus.PAUSED))

    def cancel(self) -> None:
        """Abort any transfer and purge all upload state."""
        with self._lock:
            if self._token is not None:
                self._token.cancel(CancelReason.CANCEL)
            self._generation += 1
            self.store.clear()
            self._reset()
            logger.info("Upload cancelled")
        self.events.publish(StatusEvent(status=UploadStatus.IDLE))

    def clear_resumable_upload(self) -> None:
        """Forget the persisted upload without needing the file."""
        with self._lock:
            if self._status == UploadStatus.UPLOADING:
                raise SessionStateError("clear resumable upload", self._status.value)
            if self._token is not None:
                self._token.cancel(CancelReason.CANCEL)
            self._generation += 1
            self.store.clear()
            changed = self._status != UploadStatus.IDLE
            self._reset()
            logger.info("Cleared resumable upload state")
        if changed:
            self.events.publish(StatusEvent(status=UploadStatus.IDLE))

    def close(self) -> None:
        """Pause any running transfer and stop the worker thread."""
        self.pause()
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "UploadSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # Internals
    def _require_credentials(self) -> Credentials:
        credentials = self.credentials.get_credentials()
        if credentials is None:
            raise AuthExpiredError()
        return credentials

    def _resumable_state(self) -> Optional[UploadState]:
        """The persisted record, else the in-process copy while it is unexpired."""
        state = self.store.load()
        if state is not None:
            return state

        with self._lock:
            # checkpoint writes may have failed; the in-process copy still counts
            if self._state is None or self._status not in (UploadStatus.PAUSED, UploadStatus.FAILED):
                return None
            if not self._state.is_expired(self.store.clock(), self.store.ttl_seconds):
                return self._state
            logger.info(f"Discarding expired upload state for {self._state.file_name}")
            self._generation += 1
            self._reset()
        self.events.publish(StatusEvent(status=UploadStatus.IDLE))
        return None

    def _reset(self) -> None:
        self._status = UploadStatus.IDLE
        self._state = None
        self._bytes_uploaded = 0
        self._bytes_total = 0
        self._checkpoint_bucket = 0
        self._error_kind = None
        self._error_message = None
        self._remote_object_path = None

    def _bucket(self, bytes_uploaded: int, bytes_total: int) -> int:
        return progress_percent(bytes_uploaded, bytes_total) // self.config.checkpoint_interval_percent

    def _launch(self, file: LocalFile, client: TusClient) -> "Future[Optional[str]]":
        """Hand a transfer run to the worker. Caller holds the lock."""
        token = CancellationToken()
        self._token = token
        self._status = UploadStatus.UPLOADING
        self._error_kind = None
        self._error_message = None
        self._remote_object_path = None
        self.events.publish(StatusEvent(status=UploadStatus.UPLOADING))
        return self._executor.submit(self._run, file, client, token, self._generation)

    def _owns(self, token: CancellationToken, generation: int) -> bool:
        """Whether a run may still write state. Caller holds the lock."""
        return (
            generation == self._generation
            and self._state is not None
            and token.reason != CancelReason.CANCEL
        )

    def _run(
        self, file: LocalFile, client: TusClient, token: CancellationToken, generation: int
    ) -> Optional[str]:
        engine = ChunkedTransferEngine(
            client,
            bucket=self.config.bucket,
            chunk_size=self.config.chunk_size,
            cache_control=self.config.cache_control,
            upload_data_during_creation=self.config.upload_data_during_creation,
        )

        def on_session(upload_url: str, offset: int) -> None:
            with self._lock:
                if not self._owns(token, generation):
                    return
                if upload_url != self._state.remote_upload_url:
                    logger.info(f"Recording upload session {upload_url}")
                self._state = self._state.model_copy(
                    update={"remote_upload_url": upload_url, "bytes_uploaded": offset}
                )
                self._bytes_uploaded = offset
                self._checkpoint_bucket = self._bucket(offset, file.size)
                self.store.save(self._state)

        def on_progress(uploaded: int, total: int) -> None:
            with self._lock:
                if not self._owns(token, generation):
                    return
                self._bytes_uploaded = uploaded
                self._bytes_total = total
                self._state = self._state.model_copy(update={"bytes_uploaded": uploaded})
                bucket = self._bucket(uploaded, total)
                if bucket > self._checkpoint_bucket:
                    self._checkpoint_bucket = bucket
                    self.store.save(self._state)
            self.events.publish(
                ProgressEvent(
                    percent=progress_percent(uploaded, total),
                    bytes_uploaded=uploaded,
                    bytes_total=total,
                )
            )

        try:
            while True:
                with self._lock:
                    if not self._owns(token, generation):
                        return self._finished_path(generation)
                    state = self._state
                try:
                    token.raise_if_cancelled()
                    remote_object_path = engine.upload(
                        file, state, token, on_session=on_session, on_progress=on_progress
                    )
                except Exception as exc:
                    with self._lock:
                        retries = self._retries
                    # a pause or cancel outranks whatever failed mid-chunk
                    decision = self.retry_policy.decide(token.stop_error() or exc, retries)

                    if decision.action == RetryAction.RETRY:
                        with self._lock:
                            if not self._owns(token, generation):
                                return None
                            self._retries += 1
                            attempt = self._retries
                        logger.warning(
                            f"Upload attempt failed ({exc}); retry {attempt} "
                            f"of {self.retry_policy.max_retries} in {decision.delay}s"
                        )
                        self.events.publish(
                            RetryEvent(
                                attempt=attempt,
                                delay=decision.delay,
                                error_kind=decision.kind,
                                message=str(exc),
                            )
                        )
                        self.retry_policy.wait(token, decision.delay)
                        continue

                    if decision.action == RetryAction.SUSPEND:
                        self._suspend(token, generation)
                        return None
                    if decision.action == RetryAction.DISCARD:
                        logger.info("Transfer stopped after cancellation")
                        return None
                    raise self._fail(token, generation, exc, decision.kind)
                else:
                    return self._succeed(token, generation, remote_object_path)
        finally:
            client.close()

    def _finished_path(self, generation: int) -> Optional[str]:
        """Path of an upload an earlier run of this generation completed. Caller holds the lock."""
        if generation == self._generation and self._status == UploadStatus.SUCCEEDED:
            return self._remote_object_path
        return None

    def _suspend(self, token: CancellationToken, generation: int) -> None:
        with self._lock:
            if self._owns(token, generation):
                self.store.save(self._state)
                logger.info(
                    f"Transfer suspended at {self._state.bytes_uploaded}/{self._state.file_size} bytes"
                )

    def _fail(
        self, token: CancellationToken, generation: int, exc: Exception, kind: ErrorKind
    ) -> VidUploadError:
        if isinstance(exc, VidUploadError):
            error = exc
        elif kind == ErrorKind.NETWORK_TRANSIENT:
            error = NetworkTransientError(f"Upload failed: {exc}")
        else:
            error = ProtocolFatalError(f"Upload failed: {exc}")
        if error is not exc:
            error.__cause__ = exc

        publish = False
        with self._lock:
            if self._owns(token, generation):
                self.store.save(self._state)
            if token is self._token and self._status in (UploadStatus.UPLOADING, UploadStatus.PAUSED):
                self._status = UploadStatus.FAILED
                self._error_kind = kind
                self._error_message = str(error)
                publish = True
        logger.error(f"Upload failed ({kind.value}): {error}")
        if publish:
            self.events.publish(
                StatusEvent(status=UploadStatus.FAILED, error_kind=kind, message=str(error))
            )
        return error

    def _succeed(self, token: CancellationToken, generation: int, remote_object_path: str) -> Optional[str]:
        with self._lock:
            if not self._owns(token, generation):
                logger.info(f"Upload to {remote_object_path} finished after it was cancelled")
                return None
            # a paused run whose last chunk landed still completes the upload
            self.store.clear()
            self._state = None
            self._bytes_uploaded = self._bytes_total
            self._checkpoint_bucket = 0
            self._status = UploadStatus.SUCCEEDED
            self._remote_object_path = remote_object_path
        logger.info(f"Upload succeeded: {remote_object_path}")
        self.events.publish(
            StatusEvent(status=UploadStatus.SUCCEEDED, remote_object_path=remote_object_path)
        )
        return remote_object_path


def upload_file(
    local_path: Union[str, Path],
    config: Optional[UploaderConfig] = None,
    credentials: Optional[CredentialProvider] = None,
    destination_path_hint: Optional[str] = None,
    store: Optional[UploadStateStore] = None,
) -> Optional[str]:
    """Quick function to upload a file, resuming a matching persisted upload.

    Blocks until the upload finishes and returns the remote object path.
    """
    file = LocalFile.from_path(local_path)
    with UploadSession(config, credentials, store=store) as session:
        saved = session.snapshot.resumable_state
        creds = session.credentials.get_credentials()
        if creds is None:
            raise AuthExpiredError()
        if saved is not None and saved.file_id == fingerprint(creds.user_id, file):
            future = session.resume(file)
        else:
            future = session.start(file, creds.user_id, destination_path_hint)
        return future.result()
