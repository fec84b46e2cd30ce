"""Fetching interaction data from external drug databases.

The reconciliation pipeline depends only on the InteractionFetcher
protocol, so tests substitute deterministic fixtures and hosts can plug in
provider-specific clients.

HttpInteractionFetcher is the default implementation. It speaks a plain
JSON-over-HTTP contract:

    GET {base_url}{interactions_path}   -> [ {drugAName, drugBName, type,
                                              severity, description,
                                              clinicalEffects, management}, ... ]
                                           or {"data": [ ... ]}
    GET {base_url}{health_path}         -> any status < 400 means reachable
    GET {base_url}{drug_info_path}?name= -> {name, genericName, drugClass, ...}
                                           or {"data": {...}}; 404 means unknown

Paths default to "/interactions", "/health" and "/drugs" and can be
overridden per source through its ``configuration`` mapping. When the
source has a credential it is sent as a Bearer token.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from rxguard.config import FETCH_TIMEOUT
from rxguard.errors import SourceFetchError
from rxguard.models import DrugDatabaseSource

logger = logging.getLogger(__name__)

DEFAULT_INTERACTIONS_PATH = "/interactions"
DEFAULT_HEALTH_PATH = "/health"
DEFAULT_DRUG_INFO_PATH = "/drugs"


class InteractionFetcher(Protocol):
    async def fetch_interactions(self, source: DrugDatabaseSource) -> list[dict[str, Any]]:
        """Return the source's raw interaction tuples.

        Raises on any failure; the caller treats every exception the same.
        """
        ...

    async def probe(self, source: DrugDatabaseSource) -> bool:
        """Cheap reachability check."""
        ...

    async def fetch_drug_info(
        self, source: DrugDatabaseSource, drug_name: str
    ) -> dict[str, Any] | None:
        """Return the source's raw record for a drug, or None if it has none."""
        ...


class HttpInteractionFetcher:
    """Async HTTP client for JSON interaction feeds.

    One client (and connection pool) is shared across sources; per-source
    details (URL, credential, paths) come from the DrugDatabaseSource.
    """

    def __init__(
        self,
        timeout: float = FETCH_TIMEOUT,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self._http = http or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._http.aclose()

    def _headers(self, source: DrugDatabaseSource) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if source.credential is not None:
            headers["Authorization"] = f"Bearer {source.credential.get_secret_value()}"
        return headers

    def _url(self, source: DrugDatabaseSource, key: str, default: str) -> str:
        path = str(source.configuration.get(key, default))
        return f"{source.base_url.rstrip('/')}/{path.lstrip('/')}"

    async def fetch_interactions(self, source: DrugDatabaseSource) -> list[dict[str, Any]]:
        """Download the source's interaction tuples.

        Raises:
            SourceFetchError: On transport errors, non-2xx responses, or a
                body that is not a list of objects.
        """
        url = self._url(source, "interactions_path", DEFAULT_INTERACTIONS_PATH)
        try:
            response = await self._http.get(url, headers=self._headers(source))
        except httpx.HTTPError as exc:
            raise SourceFetchError(
                status_code=0,
                detail=f"Request to {url} failed: {exc}",
            ) from exc

        if response.status_code >= 400:
            raise SourceFetchError(
                status_code=response.status_code,
                detail=response.text,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise SourceFetchError(
                status_code=response.status_code,
                detail=f"Response from {url} is not JSON",
            ) from exc

        # Accept either a bare list or the common {"data": [...]} envelope
        records = body.get("data") if isinstance(body, dict) else body
        if not isinstance(records, list):
            raise SourceFetchError(
                status_code=response.status_code,
                detail=f"Response from {url} has no interaction list",
            )
        logger.debug("Fetched %d records from %s", len(records), url)
        return records

    async def probe(self, source: DrugDatabaseSource) -> bool:
        url = self._url(source, "health_path", DEFAULT_HEALTH_PATH)
        try:
            response = await self._http.get(url, headers=self._headers(source))
        except httpx.HTTPError as exc:
            logger.warning("Probe of %s failed: %s", url, exc)
            return False
        return response.status_code < 400

    async def fetch_drug_info(
        self, source: DrugDatabaseSource, drug_name: str
    ) -> dict[str, Any] | None:
        """Look a drug up by name.

        Returns None when the source answers 404.

        Raises:
            SourceFetchError: On transport errors, other non-2xx responses,
                or a body that is not a JSON object.
        """
        url = self._url(source, "drug_info_path", DEFAULT_DRUG_INFO_PATH)
        try:
            response = await self._http.get(
                url, params={"name": drug_name}, headers=self._headers(source)
            )
        except httpx.HTTPError as exc:
            raise SourceFetchError(
                status_code=0,
                detail=f"Request to {url} failed: {exc}",
            ) from exc

        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise SourceFetchError(
                status_code=response.status_code,
                detail=response.text,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise SourceFetchError(
                status_code=response.status_code,
                detail=f"Response from {url} is not JSON",
            ) from exc

        record = body.get("data", body) if isinstance(body, dict) else None
        if not isinstance(record, dict):
            raise SourceFetchError(
                status_code=response.status_code,
                detail=f"Response from {url} has no drug record",
            )
        return record
