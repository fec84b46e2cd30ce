"""FastAPI server: a thin HTTP layer over the interaction services.

Every route delegates to InteractionsService or DrugDatabaseService and
maps the package's errors onto HTTP status codes. The bundled server uses
the in-memory stores (optionally seeded from RXGUARD_DATA_FILE); a host
embedding the engine builds its own services and passes them to
create_app().

Run locally with:
    uvicorn rxguard.app:app --reload
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from rxguard.checker import InteractionChecker
from rxguard.collaborators import load_seed_data
from rxguard.config import DATA_FILE, KEYWORDS_FILE, LOG_LEVEL
from rxguard.drug_database import DrugDatabaseService
from rxguard.errors import (
    DuplicateInteractionError,
    NotFoundError,
    RxGuardError,
    SyncFailedError,
    SyncInProgressError,
    ValidationError,
)
from rxguard.lookup import InteractionCatalog
from rxguard.models import (
    CandidateInteraction,
    CheckStatus,
    DrugDatabaseSource,
    DrugInfoResult,
    ExternalLookupResult,
    InteractionCheckResult,
    InteractionCreate,
    InteractionStatistics,
    InteractionType,
    InteractionUpdate,
    KnownInteraction,
    Page,
    Severity,
    SourceCreate,
    SourceUpdate,
    SyncResult,
    SyncStatusReport,
)
from rxguard.rules import load_keyword_sets
from rxguard.service import InteractionsService
from rxguard.sources import HttpInteractionFetcher

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: dict[type[RxGuardError], int] = {
    NotFoundError: 404,
    DuplicateInteractionError: 409,
    SyncInProgressError: 409,
    ValidationError: 422,
    SyncFailedError: 502,
}


@dataclass
class Services:
    interactions: InteractionsService
    databases: DrugDatabaseService
    fetcher: HttpInteractionFetcher | None = None


def build_services() -> Services:
    """Wire the default in-memory services from configuration."""
    medications, prescriptions = load_seed_data(DATA_FILE)
    catalog = InteractionCatalog()
    checker = InteractionChecker(catalog, keywords=load_keyword_sets(KEYWORDS_FILE))
    fetcher = HttpInteractionFetcher()
    return Services(
        interactions=InteractionsService(medications, prescriptions, catalog, checker),
        databases=DrugDatabaseService(medications, catalog, fetcher),
        fetcher=fetcher,
    )


class MedicationCheckRequest(BaseModel):
    """Body of POST /check/medications."""

    medication_ids: list[str] = Field(min_length=1)
    patient_id: str | None = None
    checked_by: str = "system"


class PatientCheckRequest(BaseModel):
    medication_ids: list[str] = Field(min_length=1)


class ConnectionTestResponse(BaseModel):
    source_id: str
    connected: bool


def create_app(services: Services | None = None) -> FastAPI:
    """Build the API around the given services (or the default wiring)."""
    svc = services or build_services()

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        if svc.fetcher is not None:
            await svc.fetcher.close()

    app = FastAPI(
        title="rxguard",
        description="Drug interaction safety checks and external database reconciliation",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.exception_handler(RxGuardError)
    async def handle_error(_: Request, exc: RxGuardError) -> JSONResponse:
        status = next(
            (code for cls, code in _STATUS_BY_ERROR.items() if isinstance(exc, cls)),
            500,
        )
        return JSONResponse(status_code=status, content={"detail": str(exc)})

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint. Returns 200 if the server is running."""
        return {"status": "ok"}

    # --- Checks ---

    @app.post("/check/prescription/{prescription_id}")
    async def check_prescription(prescription_id: str) -> InteractionCheckResult:
        return await svc.interactions.check_interactions_for_prescription(prescription_id)

    @app.post("/check/medications")
    async def check_medications(body: MedicationCheckRequest) -> InteractionCheckResult:
        return await svc.interactions.check_interactions_for_medications(
            body.medication_ids, patient_id=body.patient_id, checked_by=body.checked_by
        )

    @app.post("/check/patient/{patient_id}")
    async def check_patient(
        patient_id: str, body: PatientCheckRequest
    ) -> list[CandidateInteraction]:
        return await svc.interactions.check_interactions_for_patient(
            body.medication_ids, patient_id
        )

    @app.get("/patients/{patient_id}/checks")
    async def patient_checks(
        patient_id: str,
        status: CheckStatus | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> Page[InteractionCheckResult]:
        return await svc.interactions.get_patient_interaction_checks(
            patient_id,
            status=status,
            date_from=date_from,
            date_to=date_to,
            page=page,
            limit=limit,
        )

    @app.get("/statistics")
    async def statistics() -> InteractionStatistics:
        return await svc.interactions.get_interaction_statistics()

    # --- Interaction catalog ---

    @app.get("/interactions")
    async def list_interactions(
        drug_a_id: str | None = None,
        drug_b_id: str | None = None,
        severity: Severity | None = None,
        interaction_type: InteractionType | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> Page[KnownInteraction]:
        return await svc.interactions.list_interactions(
            drug_a_id=drug_a_id,
            drug_b_id=drug_b_id,
            severity=severity,
            interaction_type=interaction_type,
            page=page,
            limit=limit,
        )

    @app.post("/interactions", status_code=201)
    async def create_interaction(body: InteractionCreate) -> KnownInteraction:
        return await svc.interactions.create_interaction(body)

    @app.get("/interactions/{interaction_id}")
    async def get_interaction(interaction_id: str) -> KnownInteraction:
        return await svc.interactions.get_interaction(interaction_id)

    @app.put("/interactions/{interaction_id}")
    async def update_interaction(
        interaction_id: str, body: InteractionUpdate
    ) -> KnownInteraction:
        return await svc.interactions.update_interaction(interaction_id, body)

    @app.delete("/interactions/{interaction_id}")
    async def delete_interaction(interaction_id: str) -> KnownInteraction:
        return await svc.interactions.delete_interaction(interaction_id)

    # --- External drug databases ---

    @app.get("/databases")
    async def list_databases(
        provider: str | None = None, is_active: bool | None = None
    ) -> list[DrugDatabaseSource]:
        return await svc.databases.list_sources(provider=provider, is_active=is_active)

    @app.post("/databases", status_code=201)
    async def create_database(body: SourceCreate) -> DrugDatabaseSource:
        return await svc.databases.create_source(body)

    @app.put("/databases/{source_id}")
    async def update_database(source_id: str, body: SourceUpdate) -> DrugDatabaseSource:
        return await svc.databases.update_source(source_id, body)

    @app.delete("/databases/{source_id}", status_code=204)
    async def delete_database(source_id: str) -> Response:
        await svc.databases.delete_source(source_id)
        return Response(status_code=204)

    @app.post("/databases/{source_id}/sync")
    async def sync_database(source_id: str) -> SyncResult:
        return await svc.databases.sync_from_source(source_id)

    @app.post("/databases/{source_id}/test")
    async def test_database(source_id: str) -> ConnectionTestResponse:
        connected = await svc.databases.test_connection(source_id)
        return ConnectionTestResponse(source_id=source_id, connected=connected)

    @app.get("/databases/{source_id}/sync-status")
    async def database_sync_status(source_id: str) -> SyncStatusReport:
        return await svc.databases.get_sync_status(source_id)

    @app.get("/search/interaction")
    async def search_interaction(
        drug_a: str, drug_b: str, source_id: str | None = None
    ) -> list[ExternalLookupResult]:
        return await svc.databases.lookup_external_interactions(
            drug_a, drug_b, source_id=source_id
        )

    @app.get("/search/drug")
    async def search_drug(name: str, source_id: str | None = None) -> list[DrugInfoResult]:
        return await svc.databases.search_drug_info(name, source_id=source_id)

    return app


app = create_app()
