"""Catalog of known (curated or synced) drug interactions.

A record describes an unordered pair: (A, B) and (B, A) are the same
interaction and at most one record exists for it. Lookups try both
orderings, so callers never need to sort ids first.

Writes for one pair are serialized by a lock keyed on the unordered pair.
Two concurrent syncs racing on the same pair therefore update one record
instead of creating two.
"""

from __future__ import annotations

import asyncio
import logging
import math
import weakref
from collections import Counter
from typing import Any

from rxguard.errors import DuplicateInteractionError, NotFoundError, ValidationError
from rxguard.models import (
    InteractionCreate,
    InteractionType,
    InteractionUpdate,
    KnownInteraction,
    Page,
    PageMeta,
    Severity,
    utcnow,
)
from rxguard.severity import sort_by_severity

logger = logging.getLogger(__name__)

# Fields a re-sync is allowed to overwrite on an existing record.
MUTABLE_FIELDS = frozenset(
    {
        "interaction_type",
        "severity",
        "description",
        "clinical_effects",
        "management_advice",
        "source",
    }
)


def check_paging(page: int, limit: int) -> None:
    if page < 1:
        raise ValidationError(f"page must be >= 1, got {page}")
    if limit < 1:
        raise ValidationError(f"limit must be >= 1, got {limit}")


def paginate(items: list[Any], page: int, limit: int) -> Page[Any]:
    check_paging(page, limit)
    start = (page - 1) * limit
    return Page(
        data=items[start : start + limit],
        meta=PageMeta(
            page=page,
            limit=limit,
            total=len(items),
            total_pages=math.ceil(len(items) / limit),
        ),
    )


class InteractionCatalog:
    """In-memory store of KnownInteraction records with pair-keyed access."""

    def __init__(self) -> None:
        self._records: dict[str, KnownInteraction] = {}
        self._by_pair: dict[frozenset[str], str] = {}
        # Entries live only while a coroutine holds or waits on the lock.
        self._pair_locks: weakref.WeakValueDictionary[frozenset[str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, pair: frozenset[str]) -> asyncio.Lock:
        lock = self._pair_locks.get(pair)
        if lock is None:
            lock = self._pair_locks[pair] = asyncio.Lock()
        return lock

    # --- Lookup ---

    async def find(self, drug_a_id: str, drug_b_id: str) -> KnownInteraction | None:
        """Return the record for the pair in either order, or None."""
        record_id = self._by_pair.get(frozenset((drug_a_id, drug_b_id)))
        if record_id is None:
            return None
        return self._records[record_id]

    async def get(self, interaction_id: str) -> KnownInteraction:
        try:
            return self._records[interaction_id]
        except KeyError:
            raise NotFoundError("Drug interaction", interaction_id) from None

    # --- Writes ---

    async def create(self, data: InteractionCreate) -> KnownInteraction:
        """Add a record for a pair that has none.

        Raises:
            ValidationError: If both sides are the same medication.
            DuplicateInteractionError: If the pair already has a record,
                in either order.
        """
        if data.drug_a_id == data.drug_b_id:
            raise ValidationError("An interaction needs two different medications")

        pair = frozenset((data.drug_a_id, data.drug_b_id))
        async with self._lock_for(pair):
            if pair in self._by_pair:
                raise DuplicateInteractionError(data.drug_a_id, data.drug_b_id)
            record = KnownInteraction(**data.model_dump())
            self._store(record)
        logger.info(
            "Created interaction %s (%s <-> %s, %s)",
            record.id,
            record.drug_a_id,
            record.drug_b_id,
            record.severity.value,
        )
        return record

    async def update(
        self, interaction_id: str, changes: InteractionUpdate
    ) -> KnownInteraction:
        record = await self.get(interaction_id)
        async with self._lock_for(record.pair):
            # Re-read under the lock; a delete may have raced us.
            record = await self.get(interaction_id)
            updated = record.model_copy(
                update={**changes.model_dump(exclude_none=True), "last_updated": utcnow()}
            )
            self._store(updated)
        return updated

    async def delete(self, interaction_id: str) -> KnownInteraction:
        record = await self.get(interaction_id)
        async with self._lock_for(record.pair):
            record = await self.get(interaction_id)
            del self._records[interaction_id]
            del self._by_pair[record.pair]
        logger.info("Deleted interaction %s", interaction_id)
        return record

    async def upsert_pair(
        self, drug_a_id: str, drug_b_id: str, fields: dict[str, Any]
    ) -> tuple[KnownInteraction, bool]:
        """Create or update the record for an unordered pair atomically.

        Only MUTABLE_FIELDS are written on update. Returns the stored record
        and whether it was newly created.
        """
        if drug_a_id == drug_b_id:
            raise ValidationError("An interaction needs two different medications")

        values = {k: v for k, v in fields.items() if k in MUTABLE_FIELDS}
        pair = frozenset((drug_a_id, drug_b_id))
        async with self._lock_for(pair):
            existing_id = self._by_pair.get(pair)
            now = utcnow()
            if existing_id is not None:
                record = self._records[existing_id].model_copy(
                    update={**values, "last_updated": now}
                )
                created = False
            else:
                record = KnownInteraction(
                    drug_a_id=drug_a_id,
                    drug_b_id=drug_b_id,
                    created_at=now,
                    last_updated=now,
                    **values,
                )
                created = True
            self._store(record)
        return record, created

    def _store(self, record: KnownInteraction) -> None:
        self._records[record.id] = record
        self._by_pair[record.pair] = record.id

    # --- Queries ---

    async def list_interactions(
        self,
        drug_a_id: str | None = None,
        drug_b_id: str | None = None,
        severity: Severity | None = None,
        interaction_type: InteractionType | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> Page[KnownInteraction]:
        """List records, highest severity first.

        A single drug id matches records involving that drug on either
        side; two drug ids match that unordered pair.
        """
        check_paging(page, limit)
        wanted = {i for i in (drug_a_id, drug_b_id) if i}
        matches = [
            r
            for r in self._records.values()
            if wanted <= r.pair
            and (severity is None or r.severity is severity)
            and (interaction_type is None or r.interaction_type is interaction_type)
        ]
        return paginate(sort_by_severity(matches), page, limit)

    async def count(self) -> int:
        return len(self._records)

    async def count_by_severity(self) -> dict[Severity, int]:
        counts = Counter(r.severity for r in self._records.values())
        return {s: counts.get(s, 0) for s in Severity}

    async def count_by_type(self) -> dict[InteractionType, int]:
        counts = Counter(r.interaction_type for r in self._records.values())
        return {t: counts.get(t, 0) for t in InteractionType}
