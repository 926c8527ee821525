"""Send a scanned chart (image or PDF) to an extraction endpoint.

The endpoint accepts a JSON body::

    {"fileData": "<base64>", "mimeType": "image/png", "filename": "scan.png"}

and answers with an extraction payload (see :mod:`.payload`).
"""

import base64
import logging
import mimetypes
from pathlib import Path

import httpx

from ..exceptions import FetchError
from .base import ExtractionSource

logger = logging.getLogger(__name__)

SUPPORTED_MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".pdf": "application/pdf",
}


class EndpointSource(ExtractionSource):
    """Uploads a local image or PDF and returns the service's payload."""

    def __init__(self, endpoint_url: str, timeout: float = 60.0, client: httpx.Client | None = None):
        self.endpoint_url = endpoint_url
        self.timeout = timeout
        self.client = client

    @classmethod
    def can_handle(cls, location: str) -> bool:
        return Path(location).suffix.lower() in SUPPORTED_MIME_TYPES

    def build_request_body(self, path: Path) -> dict:
        suffix = path.suffix.lower()
        mime_type = SUPPORTED_MIME_TYPES.get(suffix) or mimetypes.guess_type(path.name)[0]
        return {
            "fileData": base64.b64encode(path.read_bytes()).decode("ascii"),
            "mimeType": mime_type,
            "filename": path.name,
        }

    def fetch(self, location: str) -> dict | str:
        body = self.build_request_body(Path(location))
        logger.info("Uploading %s (%s) to %s", body["filename"], body["mimeType"], self.endpoint_url)
        post = self.client.post if self.client is not None else httpx.post
        try:
            resp = post(self.endpoint_url, json=body, timeout=self.timeout)
        except httpx.RequestError as exc:
            raise FetchError(self.endpoint_url, 0) from exc
        if resp.status_code != 200:
            raise FetchError(self.endpoint_url, resp.status_code)
        try:
            return resp.json()
        except ValueError:
            return resp.text
