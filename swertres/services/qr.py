"""QR image URL builders with an availability-based fallback."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, Sequence
from urllib.parse import quote, urlencode

import httpx

logger = logging.getLogger(__name__)

DEFAULT_QR_SIZE = 200


class QRRenderer(Protocol):
    name: str

    def image_url(self, payload: str, *, size: int = DEFAULT_QR_SIZE) -> str:
        ...

    def probe_url(self) -> str:
        ...


@dataclass(slots=True, frozen=True)
class QuickChartRenderer:
    base_url: str = "https://quickchart.io/qr"
    name: str = "quickchart"

    def image_url(self, payload: str, *, size: int = DEFAULT_QR_SIZE) -> str:
        query = urlencode({"text": payload, "size": size, "margin": 0, "ecc": "H"}, quote_via=quote)
        return f"{self.base_url}?{query}"

    def probe_url(self) -> str:
        return self.image_url("health", size=50)


@dataclass(slots=True, frozen=True)
class QRServerRenderer:
    base_url: str = "https://api.qrserver.com/v1/create-qr-code/"
    name: str = "qrserver"

    def image_url(self, payload: str, *, size: int = DEFAULT_QR_SIZE) -> str:
        query = urlencode({"size": f"{size}x{size}", "data": payload, "ecc": "H"}, quote_via=quote)
        return f"{self.base_url}?{query}"

    def probe_url(self) -> str:
        return self.image_url("health", size=50)


async def is_available(renderer: QRRenderer, client: httpx.AsyncClient, *, timeout: float) -> bool:
    try:
        response = await client.head(renderer.probe_url(), timeout=timeout)
    except httpx.HTTPError as exc:
        logger.warning("QR renderer %s unavailable: %s", renderer.name, exc)
        return False
    if response.status_code >= 400:
        logger.warning("QR renderer %s returned HTTP %s", renderer.name, response.status_code)
        return False
    return True


async def select_renderer(
    renderers: Sequence[QRRenderer],
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = 3.0,
) -> QRRenderer:
    """Return the first renderer that answers its probe.

    The last renderer is used without probing when every earlier one failed.
    """

    if not renderers:
        raise ValueError("At least one QR renderer is required")

    owns_client = client is None
    http = client or httpx.AsyncClient()
    try:
        for renderer in renderers[:-1]:
            if await is_available(renderer, http, timeout=timeout):
                return renderer
        fallback = renderers[-1]
        if len(renderers) > 1:
            logger.info("Falling back to QR renderer %s", fallback.name)
        return fallback
    finally:
        if owns_client:
            await http.aclose()
