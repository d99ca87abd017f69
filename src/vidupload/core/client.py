"""tus resumable upload protocol client."""

import base64
import logging
from typing import Dict, Optional, Tuple
from urllib.parse import urljoin

import requests

from .exceptions import NetworkTransientError, ProtocolFatalError

logger = logging.getLogger(__name__)

TUS_VERSION = "1.0.0"
OFFSET_CONTENT_TYPE = "application/offset+octet-stream"

# Statuses a tus client retries instead of giving up
RETRYABLE_STATUSES = {409, 423}
# HEAD statuses meaning the server has forgotten the upload
GONE_STATUSES = {403, 404, 410}


def encode_metadata(metadata: Dict[str, str]) -> str:
    """Encode ``Upload-Metadata`` as comma separated ``key base64(value)`` pairs."""
    pairs = []
    for key, value in metadata.items():
        if not key or " " in key or "," in key:
            raise ValueError(f"Invalid tus metadata key: {key!r}")
        encoded = base64.b64encode(str(value).encode("utf-8")).decode("ascii")
        pairs.append(f"{key} {encoded}")
    return ",".join(pairs)


class TusClient:
    """Client for a tus 1.0.0 endpoint authenticated with a bearer token."""

    def __init__(self, endpoint: str, access_token: str, timeout: float = 300, upsert: bool = True):
        """Initialize the tus client.

        Args:
            endpoint: Creation endpoint, e.g. ``https://host/storage/v1/upload/resumable``
            access_token: Bearer token from the auth collaborator
            timeout: Timeout in seconds for each request (one chunk at most)
            upsert: Ask the storage service to overwrite an existing object
        """
        self.endpoint = endpoint
        self.timeout = timeout

        self.session = requests.Session()
        self.session.headers.update({
            "Tus-Resumable": TUS_VERSION,
            "Authorization": f"Bearer {access_token}",
        })
        if upsert:
            self.session.headers["x-upsert"] = "true"

    def _make_request(self, method: str, url: str, action: str, **kwargs) -> requests.Response:
        """Send a request, mapping transport and HTTP failures to upload errors."""
        kwargs.setdefault("timeout", self.timeout)
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.exceptions.Timeout as e:
            logger.warning(f"{action}: request timed out after {self.timeout}s: {e}")
            raise NetworkTransientError(f"{action} timed out") from e
        except requests.exceptions.RequestException as e:
            logger.warning(f"{action}: request failed: {e}")
            raise NetworkTransientError(f"{action} failed: {e}") from e

        if response.ok:
            return response

        status = response.status_code
        if status in RETRYABLE_STATUSES or status >= 500:
            logger.warning(f"{action}: server responded {status}")
            raise NetworkTransientError(f"{action} failed with status {status}", status)

        logger.error(f"{action}: server rejected request with {status}: {response.text[:200]}")
        raise ProtocolFatalError(f"{action} rejected with status {status}", status, response.text)

    @staticmethod
    def _read_offset(response: requests.Response, action: str) -> int:
        value = response.headers.get("Upload-Offset")
        try:
            offset = int(value)
        except (TypeError, ValueError):
            raise ProtocolFatalError(
                f"{action}: missing or invalid Upload-Offset header: {value!r}",
                response.status_code,
            )
        if offset < 0:
            raise ProtocolFatalError(f"{action}: negative Upload-Offset {offset}", response.status_code)
        return offset

    def create_upload(
        self, file_size: int, metadata: Dict[str, str], data: Optional[bytes] = None
    ) -> Tuple[str, int]:
        """Create an upload session.

        Args:
            file_size: Total upload length in bytes
            metadata: tus metadata (bucket, object name, content type...)
            data: Optional first chunk sent with the creation request

        Returns:
            Tuple of (upload URL, offset accepted by the server)
        """
        headers = {
            "Upload-Length": str(file_size),
            "Upload-Metadata": encode_metadata(metadata),
        }
        if data is not None:
            headers["Content-Type"] = OFFSET_CONTENT_TYPE

        response = self._make_request(
            "POST", self.endpoint, "create upload", headers=headers, data=data
        )

        location = response.headers.get("Location")
        if not location:
            raise ProtocolFatalError("create upload: response has no Location header", response.status_code)
        upload_url = urljoin(self.endpoint, location)

        offset = self._read_offset(response, "create upload") if data is not None else 0
        logger.info(f"Created upload session {upload_url} (offset {offset}/{file_size})")
        return upload_url, offset

    def get_offset(self, upload_url: str) -> Optional[int]:
        """Return the server's offset for ``upload_url``, or None if the upload is gone."""
        try:
            response = self._make_request("HEAD", upload_url, "query offset")
        except ProtocolFatalError as e:
            if e.status_code in GONE_STATUSES:
                logger.info(f"Upload session {upload_url} no longer exists ({e.status_code})")
                return None
            raise
        return self._read_offset(response, "query offset")

    def upload_chunk(self, upload_url: str, offset: int, data: bytes) -> int:
        """PATCH ``data`` at ``offset``; returns the new server offset."""
        headers = {
            "Upload-Offset": str(offset),
            "Content-Type": OFFSET_CONTENT_TYPE,
        }
        response = self._make_request(
            "PATCH", upload_url, f"upload chunk at {offset}", headers=headers, data=data
        )
        return self._read_offset(response, f"upload chunk at {offset}")

    def close(self) -> None:
        self.session.close()
