"""Client for the remote media host (Cloudinary)."""

import io
import logging
import os
import re
import time
import uuid
from dataclasses import dataclass
from typing import AsyncIterator

import cloudinary
import cloudinary.uploader
import httpx

from config import Settings

logger = logging.getLogger(__name__)


class MediaHostError(Exception):
    """The media host rejected or failed a request."""


@dataclass
class UploadedMedia:
    url: str
    public_id: str
    resource_type: str


@dataclass
class RemoteFile:
    content_type: str
    chunks: AsyncIterator[bytes]


def make_public_id(filename: str, resource_type: str) -> str:
    stem, ext = os.path.splitext(os.path.basename(filename))
    stem = re.sub(r"[^\w\-]+", "_", stem).strip("_") or "file"
    public_id = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}-{stem}"
    # Raw assets keep their extension in the public id; images and videos get it from the format.
    if resource_type == "raw" and ext:
        public_id += ext.lower()
    return public_id


class MediaHost:
    def __init__(self, settings: Settings, timeout: float = 60.0):
        self.timeout = timeout
        cloudinary.config(
            cloud_name=settings.cloudinary_cloud_name,
            api_key=settings.cloudinary_api_key,
            api_secret=settings.cloudinary_api_secret,
            secure=True,
        )

    def upload(self, data: bytes, folder: str, filename: str, resource_type: str, **options) -> UploadedMedia:
        """Blocking upload; callers on the event loop should use a worker thread.

        Extra ``options`` (e.g. ``transformation``) go straight to the Cloudinary upload call.
        """
        public_id = make_public_id(filename, resource_type)
        try:
            result = cloudinary.uploader.upload(
                io.BytesIO(data),
                folder=folder,
                public_id=public_id,
                resource_type=resource_type,
                overwrite=False,
                **options,
            )
        except Exception as e:
            raise MediaHostError(f"Upload of {filename} failed: {e}") from e

        url = result.get("secure_url")
        if not url:
            raise MediaHostError(f"Upload of {filename} returned no URL")
        return UploadedMedia(url=url, public_id=result.get("public_id", public_id),
                             resource_type=result.get("resource_type", resource_type))

    async def fetch(self, url: str) -> RemoteFile:
        """Open a streaming GET on ``url``; the returned chunks close the connection when exhausted."""
        client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        try:
            response = await client.send(client.build_request("GET", url), stream=True)
        except httpx.RequestError as e:
            await client.aclose()
            raise MediaHostError(f"Request to media host failed: {e}") from e

        if response.status_code >= 400:
            await response.aclose()
            await client.aclose()
            raise MediaHostError(f"Media host returned {response.status_code} for {url}")

        async def chunks():
            try:
                async for chunk in response.aiter_bytes():
                    yield chunk
            finally:
                await response.aclose()
                await client.aclose()

        content_type = response.headers.get("content-type", "application/octet-stream")
        return RemoteFile(content_type=content_type, chunks=chunks())
