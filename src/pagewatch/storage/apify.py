"""Apify key-value store backend using httpx."""

import logging
from typing import Optional, Union
from urllib.parse import quote

import httpx

from pagewatch.core.exceptions import DeliveryError
from pagewatch.core.interfaces import BlobStore

logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.apify.com/v2"


class ApifyKeyValueStore(BlobStore):
    """Blob store backed by an Apify key-value store.

    Records are read and written with the key-value store records API and
    are publicly readable at the URL returned by :meth:`public_url`.
    """

    def __init__(
        self,
        store_id: str,
        token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = API_BASE_URL,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the store.

        Args:
            store_id: Store ID or ``username~store-name``.
            token: API token, sent as a bearer header.
            client: Shared HTTP client. One is created when omitted.
            base_url: API base URL.
            timeout: Request timeout in seconds.
        """
        self._store_id = store_id
        self._base_url = base_url.rstrip("/")
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = headers

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def get(self, key: str) -> Optional[bytes]:
        try:
            response = await self._client.get(
                self._record_url(key), headers=self._headers
            )
            if response.status_code == 404:
                return None
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise DeliveryError(f"Could not read record {key}: {e}") from e
        return response.content

    async def set(
        self,
        key: str,
        value: Union[bytes, str],
        content_type: Optional[str] = None,
    ) -> None:
        if isinstance(value, str):
            data = value.encode("utf-8")
            content_type = content_type or "text/plain; charset=utf-8"
        else:
            data = value
            content_type = content_type or "application/octet-stream"

        try:
            response = await self._client.put(
                self._record_url(key),
                content=data,
                headers={**self._headers, "Content-Type": content_type},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise DeliveryError(f"Could not write record {key}: {e}") from e
        logger.debug("Stored %s (%d bytes)", key, len(data))

    def public_url(self, key: str) -> str:
        return self._record_url(key)

    def _record_url(self, key: str) -> str:
        return (
            f"{self._base_url}/key-value-stores/"
            f"{quote(self._store_id, safe='~')}/records/{quote(key, safe='')}"
        )
