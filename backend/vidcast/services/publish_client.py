"""Async client for a YouTube-compatible video upload API.

Provides:
- OAuth refresh-token exchange for an access token
- Resumable upload session creation with video metadata
- Upload of the video bytes to the session URL

Usage:
    client = PublishClient(settings.publish)
    video_id = await client.publish(video_path, metadata)
    await client.close()
"""

import logging
from pathlib import Path
from typing import Any, Optional

import httpx

from vidcast.config import PublishConfig

logger = logging.getLogger(__name__)

UPLOAD_PATH = "/upload/youtube/v3/videos"


class PublishAuthError(RuntimeError):
    """No usable credentials for the publishing platform."""


class PublishClient:
    """Async client for the publishing platform's upload API.

    Args:
        config: Endpoint, credential and timeout settings.
        transport: Optional httpx transport (tests pass httpx.MockTransport).
    """

    def __init__(self, config: PublishConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._access_token: Optional[str] = config.access_token
        self._refreshed = False

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.config.api_base.rstrip("/"),
                follow_redirects=True,
                timeout=httpx.Timeout(self.config.timeout_seconds, connect=30.0),
                transport=self._transport,
            )
        return self._client

    async def get_access_token(self) -> str:
        """Return an access token, exchanging the refresh token if configured.

        The exchanged token is cached for the lifetime of the client.

        Raises:
            PublishAuthError: If neither a refresh token triple nor an access
                token is configured.
        """
        cfg = self.config
        can_refresh = bool(cfg.refresh_token and cfg.client_id and cfg.client_secret)
        if can_refresh and not self._refreshed:
            logger.info("POST %s (refresh_token grant)", cfg.token_url)
            response = await self.client.post(
                cfg.token_url,
                data={
                    "client_id": cfg.client_id,
                    "client_secret": cfg.client_secret,
                    "refresh_token": cfg.refresh_token,
                    "grant_type": "refresh_token",
                },
            )
            logger.info("  token response: HTTP %d", response.status_code)
            response.raise_for_status()
            self._access_token = response.json()["access_token"]
            self._refreshed = True
        if not self._access_token:
            raise PublishAuthError(
                "No publishing credentials configured. Set publish.access_token or "
                "publish.refresh_token, publish.client_id and publish.client_secret."
            )
        return self._access_token

    async def create_upload_session(self, metadata: dict[str, Any], size: int) -> str:
        """Start a resumable upload and return the session URL."""
        token = await self.get_access_token()
        logger.info("POST %s%s (resumable, %d bytes)", self.config.api_base, UPLOAD_PATH, size)
        response = await self.client.post(
            UPLOAD_PATH,
            params={"uploadType": "resumable", "part": "snippet,status"},
            headers={
                "Authorization": f"Bearer {token}",
                "X-Upload-Content-Type": "video/mp4",
                "X-Upload-Content-Length": str(size),
            },
            json=metadata,
        )
        logger.info("  session response: HTTP %d", response.status_code)
        response.raise_for_status()
        location = response.headers.get("Location")
        if not location:
            raise RuntimeError("Upload session response has no Location header")
        return location

    async def upload_bytes(self, session_url: str, data: bytes) -> str:
        """Send the video bytes to an upload session and return the video ID."""
        token = await self.get_access_token()
        logger.info("PUT upload session (%d bytes)", len(data))
        response = await self.client.put(
            session_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "video/mp4",
            },
            content=data,
        )
        logger.info("  upload response: HTTP %d", response.status_code)
        response.raise_for_status()
        video_id = response.json().get("id")
        if not video_id:
            raise RuntimeError("Upload response has no video id")
        return video_id

    async def publish(self, video_path: Path, metadata: dict[str, Any]) -> str:
        """Upload a video file with metadata and return the platform video ID."""
        data = video_path.read_bytes()
        session_url = await self.create_upload_session(metadata, len(data))
        return await self.upload_bytes(session_url, data)

    def watch_url(self, video_id: str) -> str:
        """Public URL of a published video."""
        return self.config.watch_url_template.format(video_id=video_id)

    async def close(self):
        """Close the underlying HTTP client and forget any exchanged token."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
        if self._refreshed:
            self._access_token = self.config.access_token
            self._refreshed = False
