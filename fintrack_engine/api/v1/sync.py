"""Aggregator sync endpoints and connection listing"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from fintrack_engine.api.dependencies import get_aggregator_client, get_request_id
from fintrack_engine.api.v1.errors import http_error
from fintrack_engine.api.v1.schemas import (
    ConnectionSchema,
    ConnectionsResponse,
    ItemSyncResponse,
    SyncOutcomeSchema,
    SyncRunResponse,
)
from fintrack_engine.domain.exceptions import DomainException
from fintrack_engine.domain.models import SyncMode
from fintrack_engine.infrastructure.clients.aggregator import AggregatorClient
from fintrack_engine.infrastructure.database.repositories import ConnectionRepository
from fintrack_engine.infrastructure.database.session import get_db
from fintrack_engine.services.sync import AggregatorSyncOrchestrator

router = APIRouter()


@router.post("/sync/items/{item_id}", response_model=ItemSyncResponse)
async def sync_item(
    item_id: str,
    request: Request,
    user_id: str = Query(..., min_length=1, description="User identifier"),
    db: Session = Depends(get_db),
    client: AggregatorClient = Depends(get_aggregator_client),
):
    """
    Sync one linked item right away (interactive: failures surface as HTTP errors).

    A refresh that does not settle in time is not an error; the response carries
    ``refresh_timed_out`` and whatever was already available is imported.
    """
    orchestrator = AggregatorSyncOrchestrator(db, client)
    try:
        result = await orchestrator.sync_item(user_id, item_id)
    except DomainException as e:
        raise http_error(e, get_request_id(request))

    return ItemSyncResponse(
        item_id=result.item_id,
        connection_id=result.connection_id,
        item_status=result.item_status,
        refresh_timed_out=result.refresh_timed_out,
        requires_user_action=result.requires_user_action,
        accounts_mapped=result.accounts_mapped,
        transactions_applied=result.transactions_applied,
        duplicates_avoided=result.duplicates_avoided,
        last_processed_at=result.last_processed_at,
    )


@router.post("/sync/run", response_model=SyncRunResponse)
async def sync_run(
    user_id: str = Query(..., min_length=1, description="User identifier"),
    mode: SyncMode = Query(SyncMode.SILENT),
    db: Session = Depends(get_db),
    client: AggregatorClient = Depends(get_aggregator_client),
):
    """Sync all of a user's connections in sequence; one failing item never aborts the run"""
    report = await AggregatorSyncOrchestrator(db, client).sync_connections(user_id, mode)

    return SyncRunResponse(
        user_id=user_id,
        mode=report.mode.value,
        failed=report.failed,
        outcomes=[
            SyncOutcomeSchema(
                item_id=o.item_id,
                ok=o.ok,
                transactions_applied=o.result.transactions_applied if o.result else 0,
                duplicates_avoided=o.result.duplicates_avoided if o.result else 0,
                error=o.error,
            )
            for o in report.outcomes
        ],
    )


@router.get("/connections", response_model=ConnectionsResponse)
def list_connections(
    user_id: str = Query(..., description="User identifier"),
    db: Session = Depends(get_db),
):
    connections = ConnectionRepository(db).list_for_user(user_id)
    return ConnectionsResponse(
        user_id=user_id,
        connections=[
            ConnectionSchema(
                id=str(c.id),
                external_item_id=c.external_item_id,
                institution_name=c.institution_name,
                status=c.status,
                last_error=c.last_error,
                last_synced_at=c.last_synced_at,
                last_processed_at=c.last_processed_at,
            )
            for c in connections
        ],
    )
