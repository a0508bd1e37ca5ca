"""Fetch remote artwork and re-encode it as inline data URIs."""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import Iterable, List, Optional

import httpx

from spotify_card.utils.http import RetryConfig, request_with_retry

logger = logging.getLogger(__name__)

# 1x1 transparent PNG
BLANK_IMAGE = (
    "data:image/png;base64,"
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mP8/x8AAuMBgV3QJRoAAAAASUVORK5CYII="
)

_USER_AGENT = "Mozilla/5.0 (compatible; spotify-card/0.1)"

# Album art from the Spotify CDN is well under this; anything larger is dropped.
MAX_IMAGE_BYTES = 512 * 1024


class ImageInliner:
    """Turn image URLs into ``data:`` URIs so the SVG renders standalone.

    Embedding documents (such as GitHub READMEs) proxy images and refuse
    external references, so artwork must travel inside the SVG.
    """

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        timeout_seconds: float = 5.0,
        retry_config: RetryConfig | None = None,
        max_bytes: int = MAX_IMAGE_BYTES,
    ) -> None:
        self._http = http_client
        self._timeout = timeout_seconds
        self._retry = retry_config or RetryConfig(attempts=1, backoff_seconds=0)
        self._max_bytes = max_bytes

    async def to_data_uri(self, url: Optional[str]) -> str:
        if not url:
            return BLANK_IMAGE
        try:
            response = await request_with_retry(
                self._http.get,
                url,
                headers={"User-Agent": _USER_AGENT},
                timeout=self._timeout,
                retry_config=self._retry,
            )
        except httpx.HTTPError as exc:
            logger.debug("Image fetch failed for %s: %s", url, exc)
            return BLANK_IMAGE
        if response.status_code != httpx.codes.OK or not response.content:
            return BLANK_IMAGE
        if len(response.content) > self._max_bytes:
            logger.debug("Image at %s exceeds %d bytes", url, self._max_bytes)
            return BLANK_IMAGE

        mime = response.headers.get("content-type", "image/jpeg").split(";")[0].strip()
        if not mime.startswith("image/"):
            return BLANK_IMAGE
        encoded = base64.b64encode(response.content).decode("ascii")
        return f"data:{mime};base64,{encoded}"

    async def inline_many(self, urls: Iterable[Optional[str]]) -> List[str]:
        return list(await asyncio.gather(*(self.to_data_uri(url) for url in urls)))


__all__ = ["BLANK_IMAGE", "MAX_IMAGE_BYTES", "ImageInliner"]
