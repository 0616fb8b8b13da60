from typing import Annotated
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from timetracker.api.deps import get_integration_service, get_jira_factory
from timetracker.api.v1.endpoints.jira import get_ticket_system_or_404
from timetracker.auth import get_current_user
from timetracker.database import get_db
from timetracker.models.entry import Entry
from timetracker.models.user import User
from timetracker.schemas.sync import (
    EntrySyncRequest,
    EntrySyncResponse,
    EntrySyncResult,
    NeedsSyncResponse,
    PendingSyncRequest,
    PendingSyncResponse,
    WorklogDeleteResponse,
)
from timetracker.services.jira_factory import JiraServiceFactory
from timetracker.services.jira_integration import JiraIntegrationService

log = logging.getLogger(__name__)
router = APIRouter()


def get_own_entry_or_404(db: Session, entry_id: int, user: User) -> Entry:
    entry = db.get(Entry, entry_id)
    if entry is None or entry.user_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Entry {entry_id} not found"
        )
    return entry


@router.post("/entries", response_model=EntrySyncResponse)
async def sync_entries(
    request: EntrySyncRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Session = Depends(get_db),
    integration: JiraIntegrationService = Depends(get_integration_service),
):
    """Sync the given entries to Jira; the result reports each entry separately."""
    ticket_system = None
    if request.ticket_system_id is not None:
        ticket_system = get_ticket_system_or_404(db, request.ticket_system_id)

    entries = db.query(Entry).filter(
        Entry.id.in_(request.entry_ids),
        Entry.user_id == current_user.id,
    ).all()

    log.info(f"Bulk sync of {len(entries)} entries requested by {current_user.username}")
    results = {
        entry_id: EntrySyncResult(**result)
        for entry_id, result in (await integration.bulk_sync_entries(entries, ticket_system)).items()
    }

    for entry_id in request.entry_ids:
        if entry_id not in results:
            results[entry_id] = EntrySyncResult(success=False, message="Entry not found")

    num_synced = sum(1 for result in results.values() if result.success)
    return EntrySyncResponse(results=results, num_synced=num_synced, num_failed=len(results) - num_synced)


@router.post("/pending", response_model=PendingSyncResponse)
async def sync_pending_entries(
    request: PendingSyncRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Session = Depends(get_db),
    factory: JiraServiceFactory = Depends(get_jira_factory),
):
    """Sync the most recent unsynced entries of the current user."""
    ticket_system = get_ticket_system_or_404(db, request.ticket_system_id)
    services = factory.create(current_user, ticket_system)

    stats = await services.work_logs.update_entries_work_logs_limited(current_user, ticket_system, limit=request.limit)
    return PendingSyncResponse(**stats)


@router.delete("/entries/{entry_id}/worklog", response_model=WorklogDeleteResponse)
async def delete_entry_worklog(
    entry_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Session = Depends(get_db),
    integration: JiraIntegrationService = Depends(get_integration_service),
):
    entry = get_own_entry_or_404(db, entry_id, current_user)
    return WorklogDeleteResponse(deleted=await integration.delete_worklog(entry))


@router.get("/entries/{entry_id}/needs-sync", response_model=NeedsSyncResponse)
async def entry_needs_sync(
    entry_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Session = Depends(get_db),
    integration: JiraIntegrationService = Depends(get_integration_service),
):
    entry = get_own_entry_or_404(db, entry_id, current_user)
    return NeedsSyncResponse(entry_id=entry.id, needs_sync=integration.needs_sync(entry))
