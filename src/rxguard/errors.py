"""Error taxonomy for the interaction safety engine.

Caller errors (NotFoundError, DuplicateInteractionError, ValidationError)
are raised immediately and never retried. Sync errors are recorded on the
source before they reach the caller.
"""

from __future__ import annotations

from collections.abc import Iterable


class RxGuardError(Exception):
    """Base class for every error raised by this package."""


class NotFoundError(RxGuardError):
    """Raised when a requested entity does not exist."""

    def __init__(self, entity: str, ids: str | Iterable[str]) -> None:
        self.entity = entity
        self.ids = [ids] if isinstance(ids, str) else list(ids)
        super().__init__(f"{entity} not found: {', '.join(self.ids)}")


class DuplicateInteractionError(RxGuardError):
    """Raised when a catalog record already exists for an unordered pair."""

    def __init__(self, drug_a_id: str, drug_b_id: str) -> None:
        self.drug_a_id = drug_a_id
        self.drug_b_id = drug_b_id
        super().__init__(
            f"Interaction between {drug_a_id} and {drug_b_id} already exists"
        )


class ValidationError(RxGuardError):
    """Raised for malformed input (empty lists, bad paging, self-pairs)."""


class SyncInProgressError(RxGuardError):
    """Raised when a sync is requested for a source that is already syncing."""

    def __init__(self, source_id: str) -> None:
        self.source_id = source_id
        super().__init__(f"Source {source_id} is already syncing")


class SyncFailedError(RxGuardError):
    """Raised when fetching or processing an external feed aborts a sync."""

    def __init__(self, source_id: str, detail: str) -> None:
        self.source_id = source_id
        self.detail = detail
        super().__init__(f"Sync from source {source_id} failed: {detail}")


class SourceFetchError(RxGuardError):
    """Raised when an external source returns an error response."""

    def __init__(self, status_code: int, detail: str) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"HTTP {status_code}: {detail}")
