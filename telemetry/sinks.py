"""Persistence sink that writes batch documents to the store service over HTTP."""

import logging
from urllib.parse import quote

import httpx

from telemetry.errors import SinkWriteFailure
from telemetry.flush import Batch

logger = logging.getLogger(__name__)


class HttpSink:
    """
    PUTs each batch to ``/api/collections/{collection}/documents/{key}``.
    One AsyncClient is shared by all writes; call ``aclose()`` when done.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url, timeout=timeout, transport=transport
        )

    async def write(self, collection: str, document_key: str, batch: Batch) -> None:
        url = (
            f"/api/collections/{quote(collection, safe='')}"
            f"/documents/{quote(document_key, safe='')}"
        )
        try:
            response = await self._client.put(url, json=batch.to_document())
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SinkWriteFailure(f"Error writing {collection}/{document_key}: {e}") from e
        logger.debug("Store replied %d for %s", response.status_code, url)

    async def aclose(self) -> None:
        await self._client.aclose()
