"""HTTP document store adapter.

Talks JSON to a document service exposing partition-scoped resources::

    POST {base}/partitions/{pk}/query            {"entityType": ..., "excludeStatuses": [...]}
    GET  {base}/partitions/{pk}/documents/{id}
    PUT  {base}/partitions/{pk}/documents/{id}   (replace; 404 if absent)
    PUT  {base}/partitions/{pk}/documents/{id}?upsert=true

Status mapping: 404 -> :class:`NotFoundError`, 409/412 ->
:class:`StoreConflictError`, anything else outside 2xx -> :class:`StoreUnavailableError`.
Network errors, timeouts and bodies that are not UTF-8 JSON also raise
:class:`StoreUnavailableError`. Nothing is retried here.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Collection, Mapping
from typing import Any
from urllib.parse import quote

import aiohttp

from pytripsync.config import ReconcilerConfig
from pytripsync.exceptions import ConfigError, NotFoundError, StoreConflictError, StoreUnavailableError

_logger = logging.getLogger(__name__)

_ETAG_KEY = "_etag"


def _segment(value: str) -> str:
    return quote(value, safe="")


class HttpDocumentStore:
    """:class:`pytripsync.store.base.DocumentStore` over an ``aiohttp`` session.

    The session is owned by the caller unless the store is used as an
    async context manager without one, in which case it creates and
    closes its own.
    """

    def __init__(
        self,
        config: ReconcilerConfig,
        http_session: aiohttp.ClientSession | None = None,
    ) -> None:
        if not config.store_base_url:
            raise ConfigError("store_base_url is required for HttpDocumentStore")
        self._base_url = config.store_base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=config.store_timeout)
        self._api_key = config.store_api_key
        self._external_session = http_session is not None
        self._http = http_session

    async def __aenter__(self) -> HttpDocumentStore:
        if self._http is None:
            self._http = aiohttp.ClientSession()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_session and self._http is not None:
            await self._http.close()
            self._http = None

    def _headers(self, etag: Any = None) -> dict[str, str]:
        headers: dict[str, str] = {
            "accept": "application/json",
            "content-type": "application/json; charset=UTF-8",
        }
        if self._api_key:
            headers["x-api-key"] = self._api_key
        if isinstance(etag, str) and etag:
            headers["if-match"] = etag
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        document_id: str,
        partition_key: str,
        payload: Mapping[str, Any] | None = None,
        params: Mapping[str, str] | None = None,
        etag: Any = None,
    ) -> Any:
        if self._http is None:
            raise StoreUnavailableError(
                "HTTP session not initialized; use within 'async with HttpDocumentStore(...)'",
                document_id=document_id,
                partition_key=partition_key,
            )
        url = f"{self._base_url}{path}"
        body = json.dumps(payload, separators=(",", ":")) if payload is not None else None
        _logger.debug("Store %s %s", method, url)
        try:
            async with self._http.request(
                method,
                url,
                data=body,
                params=params,
                headers=self._headers(etag),
                timeout=self._timeout,
            ) as response:
                status = response.status
                body_bytes = await response.read()
        except TimeoutError as exc:
            raise StoreUnavailableError(
                f"Store request timed out: {method} {path}",
                document_id=document_id,
                partition_key=partition_key,
            ) from exc
        except aiohttp.ClientError as exc:
            raise StoreUnavailableError(
                f"Store request failed: {method} {path}: {exc}",
                document_id=document_id,
                partition_key=partition_key,
            ) from exc

        if status == 404:
            raise NotFoundError(
                f"Document {document_id} not found in partition {partition_key}",
                document_id=document_id,
                partition_key=partition_key,
                status_code=status,
            )
        if status in (409, 412):
            raise StoreConflictError(
                f"Write conflict on document {document_id} (HTTP {status})",
                document_id=document_id,
                partition_key=partition_key,
                status_code=status,
            )
        if not 200 <= status < 300:
            raise StoreUnavailableError(
                f"Store returned HTTP {status} for {method} {path}",
                document_id=document_id,
                partition_key=partition_key,
                status_code=status,
            )
        if not body_bytes:
            return {}
        try:
            return json.loads(body_bytes.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise StoreUnavailableError(
                f"Store returned an undecodable body for {method} {path}",
                document_id=document_id,
                partition_key=partition_key,
                status_code=status,
            ) from exc

    async def query_partition(
        self,
        partition_key: str,
        *,
        entity_type: str,
        exclude_statuses: Collection[str] = (),
    ) -> list[dict[str, Any]]:
        decoded = await self._request(
            "POST",
            f"/partitions/{_segment(partition_key)}/query",
            document_id="",
            partition_key=partition_key,
            payload={"entityType": entity_type, "excludeStatuses": sorted(str(s) for s in exclude_statuses)},
        )
        documents = decoded.get("documents") if isinstance(decoded, dict) else decoded
        if not isinstance(documents, list):
            raise StoreUnavailableError(
                "Store query response has no document list",
                partition_key=partition_key,
            )
        return [doc for doc in documents if isinstance(doc, dict)]

    async def read(self, document_id: str, partition_key: str) -> dict[str, Any]:
        decoded = await self._request(
            "GET",
            f"/partitions/{_segment(partition_key)}/documents/{_segment(document_id)}",
            document_id=document_id,
            partition_key=partition_key,
        )
        if not isinstance(decoded, dict):
            raise StoreUnavailableError(
                f"Store returned a non-object for document {document_id}",
                document_id=document_id,
                partition_key=partition_key,
            )
        return decoded

    async def replace(self, document_id: str, partition_key: str, document: Mapping[str, Any]) -> dict[str, Any]:
        decoded = await self._request(
            "PUT",
            f"/partitions/{_segment(partition_key)}/documents/{_segment(document_id)}",
            document_id=document_id,
            partition_key=partition_key,
            payload=document,
            etag=document.get(_ETAG_KEY),
        )
        return decoded if isinstance(decoded, dict) and decoded else dict(document)

    async def upsert(self, document_id: str, partition_key: str, document: Mapping[str, Any]) -> dict[str, Any]:
        decoded = await self._request(
            "PUT",
            f"/partitions/{_segment(partition_key)}/documents/{_segment(document_id)}",
            document_id=document_id,
            partition_key=partition_key,
            payload=document,
            params={"upsert": "true"},
        )
        return decoded if isinstance(decoded, dict) and decoded else dict(document)
