"""Reconciliation of external drug databases into the interaction catalog.

A sync fetches a source's raw interaction tuples, resolves each drug name
to exactly one catalog medication by case-insensitive substring match, and
creates or updates the catalog record for the resolved pair. Tuples that
cannot be parsed or resolved are skipped, never guessed.

Source status lifecycle::

    IDLE / SUCCESS / FAILED --> SYNCING --> SUCCESS | FAILED

The transition into SYNCING is a per-source critical section: a second
sync of a source that is already syncing is rejected. Whatever happens
during the sync (fetch error, timeout, cancellation) the source leaves
SYNCING before the call returns or raises.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from typing import Any

import pydantic

from rxguard.collaborators import MedicationCatalog
from rxguard.config import FETCH_TIMEOUT, PROBE_TIMEOUT
from rxguard.errors import (
    NotFoundError,
    SyncFailedError,
    SyncInProgressError,
    ValidationError,
)
from rxguard.lookup import InteractionCatalog
from rxguard.models import (
    DrugDatabaseSource,
    DrugInfo,
    DrugInfoResult,
    ExternalLookupResult,
    RawInteraction,
    SourceCreate,
    SourceUpdate,
    SyncResult,
    SyncStatus,
    SyncStatusReport,
    utcnow,
)
from rxguard.sources import InteractionFetcher

logger = logging.getLogger(__name__)


class SourceRegistry:
    """In-memory store of configured DrugDatabaseSource records."""

    def __init__(self) -> None:
        self._sources: dict[str, DrugDatabaseSource] = {}

    async def get(self, source_id: str) -> DrugDatabaseSource:
        try:
            return self._sources[source_id]
        except KeyError:
            raise NotFoundError("Drug database", source_id) from None

    async def save(self, source: DrugDatabaseSource) -> DrugDatabaseSource:
        self._sources[source.id] = source
        return source

    async def delete(self, source_id: str) -> None:
        self._sources.pop(source_id, None)

    async def all(self) -> list[DrugDatabaseSource]:
        return list(self._sources.values())


class DrugDatabaseService:
    def __init__(
        self,
        medications: MedicationCatalog,
        catalog: InteractionCatalog,
        fetcher: InteractionFetcher,
        sources: SourceRegistry | None = None,
        fetch_timeout: float = FETCH_TIMEOUT,
        probe_timeout: float = PROBE_TIMEOUT,
    ) -> None:
        self.medications = medications
        self.catalog = catalog
        self.fetcher = fetcher
        self.sources = sources or SourceRegistry()
        self.fetch_timeout = fetch_timeout
        self.probe_timeout = probe_timeout
        # Entries live only while a coroutine holds or waits on the lock.
        self._status_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    # --- Source CRUD ---

    async def create_source(self, data: SourceCreate) -> DrugDatabaseSource:
        source = DrugDatabaseSource(**data.model_dump())
        logger.info("Registered drug database %s (%s)", source.name, source.provider)
        return await self.sources.save(source)

    async def get_source(self, source_id: str) -> DrugDatabaseSource:
        return await self.sources.get(source_id)

    async def list_sources(
        self, provider: str | None = None, is_active: bool | None = None
    ) -> list[DrugDatabaseSource]:
        sources = [
            s
            for s in await self.sources.all()
            if (provider is None or s.provider == provider)
            and (is_active is None or s.is_active is is_active)
        ]
        return sorted(sources, key=lambda s: s.name)

    async def update_source(
        self, source_id: str, changes: SourceUpdate
    ) -> DrugDatabaseSource:
        async with self._status_lock(source_id):
            source = await self.sources.get(source_id)
            updated = source.model_copy(update=changes.model_dump(exclude_none=True))
            return await self.sources.save(updated)

    async def delete_source(self, source_id: str) -> None:
        async with self._status_lock(source_id):
            source = await self.sources.get(source_id)
            if source.sync_status is SyncStatus.SYNCING:
                raise ValidationError(f"Cannot delete source {source_id} while it is syncing")
            await self.sources.delete(source_id)
        logger.info("Deleted drug database %s", source_id)

    async def get_sync_status(self, source_id: str) -> SyncStatusReport:
        source = await self.sources.get(source_id)
        return SyncStatusReport(
            source_id=source.id,
            source_name=source.name,
            sync_status=source.sync_status,
            last_sync_at=source.last_sync_at,
            last_error=source.last_error,
        )

    # --- Connectivity ---

    async def test_connection(self, source_id: str) -> bool:
        """Probe a source. Never raises: any failure is reported as False."""
        try:
            source = await self.sources.get(source_id)
            return await asyncio.wait_for(self.fetcher.probe(source), self.probe_timeout)
        except Exception as exc:
            logger.error("Connection test failed for %s: %r", source_id, exc)
            return False

    # --- Sync ---

    def _status_lock(self, source_id: str) -> asyncio.Lock:
        lock = self._status_locks.get(source_id)
        if lock is None:
            lock = self._status_locks[source_id] = asyncio.Lock()
        return lock

    async def _set_status(
        self, source_id: str, status: SyncStatus, error: str | None = None
    ) -> None:
        source = await self.sources.get(source_id)
        update: dict[str, Any] = {"sync_status": status, "last_error": error}
        if status is not SyncStatus.SYNCING:
            update["last_sync_at"] = utcnow()
        await self.sources.save(source.model_copy(update=update))

    async def sync_from_source(
        self, source_id: str, timeout: float | None = None
    ) -> SyncResult:
        """Merge a source's interaction tuples into the catalog.

        Args:
            source_id: The source to sync.
            timeout: Seconds allowed for the fetch; defaults to the
                service's fetch_timeout.

        Raises:
            NotFoundError: If the source does not exist.
            ValidationError: If the source is inactive.
            SyncInProgressError: If the source is already syncing.
            SyncFailedError: If the fetch fails or times out, or processing
                aborts. The source is marked FAILED first.
        """
        async with self._status_lock(source_id):
            source = await self.sources.get(source_id)
            if source.sync_status is SyncStatus.SYNCING:
                raise SyncInProgressError(source_id)
            if not source.is_active:
                raise ValidationError(f"Source {source_id} is inactive")
            await self._set_status(source_id, SyncStatus.SYNCING)

        logger.info("Syncing drug interactions from %s", source.name)
        try:
            result = await self._run_sync(source, timeout or self.fetch_timeout)
        except SyncFailedError as exc:
            await self._set_status(source_id, SyncStatus.FAILED, exc.detail)
            logger.error("Sync from %s failed: %s", source.name, exc.detail)
            raise
        except asyncio.CancelledError:
            await self._set_status(source_id, SyncStatus.FAILED, "Sync cancelled")
            logger.warning("Sync from %s cancelled", source.name)
            raise
        except Exception as exc:
            detail = repr(exc)
            await self._set_status(source_id, SyncStatus.FAILED, detail)
            logger.exception("Sync from %s aborted", source.name)
            raise SyncFailedError(source_id, detail) from exc

        await self._set_status(source_id, SyncStatus.SUCCESS)
        logger.info(
            "Synced %s: %d processed, %d created, %d updated, %d skipped",
            source.name,
            result.processed,
            result.created,
            result.updated,
            result.skipped,
        )
        return result

    async def _fetch(self, source: DrugDatabaseSource, timeout: float) -> list[Any]:
        try:
            records = await asyncio.wait_for(self.fetcher.fetch_interactions(source), timeout)
        except asyncio.TimeoutError as exc:
            raise SyncFailedError(source.id, f"Fetch timed out after {timeout}s") from exc
        except Exception as exc:
            raise SyncFailedError(source.id, str(exc) or type(exc).__name__) from exc
        if not isinstance(records, list):
            raise SyncFailedError(
                source.id, f"Expected a list of interactions, got {type(records).__name__}"
            )
        return records

    async def _run_sync(self, source: DrugDatabaseSource, timeout: float) -> SyncResult:
        records = await self._fetch(source, timeout)
        result = SyncResult(source_id=source.id, source_name=source.name)
        resolved: dict[str, str | None] = {}

        for raw in records:
            result.processed += 1
            try:
                tuple_ = RawInteraction.model_validate(raw)
                drug_a_id = await self._resolve(tuple_.drug_a_name, resolved)
                drug_b_id = await self._resolve(tuple_.drug_b_name, resolved)
                if drug_a_id is None or drug_b_id is None or drug_a_id == drug_b_id:
                    logger.warning(
                        "Skipping %s <-> %s from %s: names not resolved to two medications",
                        tuple_.drug_a_name,
                        tuple_.drug_b_name,
                        source.name,
                    )
                    result.skipped += 1
                    continue

                _, created = await self.catalog.upsert_pair(
                    drug_a_id,
                    drug_b_id,
                    {
                        "interaction_type": tuple_.interaction_type,
                        "severity": tuple_.severity,
                        "description": tuple_.description,
                        "clinical_effects": tuple_.clinical_effects,
                        "management_advice": tuple_.management,
                        "source": source.provider,
                    },
                )
            except Exception as exc:
                logger.warning("Failed to process interaction from %s: %s", source.name, exc)
                result.skipped += 1
                continue

            if created:
                result.created += 1
            else:
                result.updated += 1
            # Yield between tuples so a long sync can be cancelled.
            await asyncio.sleep(0)

        result.synced_at = utcnow()
        return result

    async def _resolve(self, name: str, cache: dict[str, str | None]) -> str | None:
        """Map an external drug name to a single medication id, or None.

        Several matching medications count as unresolved.
        """
        key = name.strip().lower()
        if key not in cache:
            matches = {m.id for m in await self.medications.search_medications(key)}
            cache[key] = matches.pop() if len(matches) == 1 else None
        return cache[key]

    # --- Ad-hoc lookup ---

    async def lookup_external_interactions(
        self,
        drug_a_name: str,
        drug_b_name: str,
        source_id: str | None = None,
    ) -> list[ExternalLookupResult]:
        """Ask one source, or every active source, about a specific pair.

        Sources that fail are logged and left out of the result.
        """
        sources = await self._targets(source_id)
        a, b = drug_a_name.strip().lower(), drug_b_name.strip().lower()

        def involves_pair(t: RawInteraction) -> bool:
            x, y = t.drug_a_name.lower(), t.drug_b_name.lower()
            return (a in x and b in y) or (a in y and b in x)

        results = []
        for source in sources:
            try:
                records = await asyncio.wait_for(
                    self.fetcher.fetch_interactions(source), self.fetch_timeout
                )
            except Exception as exc:
                logger.warning("Failed to query %s: %r", source.name, exc)
                continue

            matches = []
            for raw in records:
                try:
                    parsed = RawInteraction.model_validate(raw)
                except pydantic.ValidationError:
                    logger.debug("Ignoring malformed record from %s", source.name)
                    continue
                if involves_pair(parsed):
                    matches.append(parsed)
            results.append(
                ExternalLookupResult(
                    source_id=source.id,
                    source_name=source.name,
                    provider=source.provider,
                    interactions=matches,
                )
            )
        return results

    async def search_drug_info(
        self, drug_name: str, source_id: str | None = None
    ) -> list[DrugInfoResult]:
        """Ask one source, or every active source, for a drug's monograph.

        Sources that fail, know nothing about the drug, or answer with a
        malformed record are logged and left out of the result.

        Raises:
            ValidationError: If the drug name is blank.
            NotFoundError: If ``source_id`` names an unknown source.
        """
        name = drug_name.strip()
        if not name:
            raise ValidationError("A drug name is required")

        results = []
        for source in await self._targets(source_id):
            try:
                record = await asyncio.wait_for(
                    self.fetcher.fetch_drug_info(source, name), self.fetch_timeout
                )
            except Exception as exc:
                logger.warning("Failed to search %s for %s: %r", source.name, name, exc)
                continue
            if record is None:
                continue
            try:
                info = DrugInfo.model_validate(record)
            except pydantic.ValidationError:
                logger.debug("Ignoring malformed drug record from %s", source.name)
                continue
            results.append(
                DrugInfoResult(
                    source_id=source.id,
                    source_name=source.name,
                    provider=source.provider,
                    drug_info=info,
                )
            )
        return results

    async def _targets(self, source_id: str | None) -> list[DrugDatabaseSource]:
        if source_id is not None:
            return [await self.sources.get(source_id)]
        return [s for s in await self.sources.all() if s.is_active]
