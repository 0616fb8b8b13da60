from typing import Dict, List, Optional
from pydantic import BaseModel, Field


class EntrySyncRequest(BaseModel):
    entry_ids: List[int]
    ticket_system_id: Optional[int] = None  # overrides the ticket system of the entries


class EntrySyncResult(BaseModel):
    success: bool
    message: str


class EntrySyncResponse(BaseModel):
    results: Dict[int, EntrySyncResult]
    num_synced: int = 0
    num_failed: int = 0


class PendingSyncRequest(BaseModel):
    ticket_system_id: int
    limit: Optional[int] = Field(None, gt=0)  # unbounded if not given


class PendingSyncResponse(BaseModel):
    processed: int = 0
    synced: int = 0
    failed: int = 0


class WorklogDeleteResponse(BaseModel):
    deleted: bool


class NeedsSyncResponse(BaseModel):
    entry_id: int
    needs_sync: bool


class AuthorizeResponse(BaseModel):
    redirect_url: str


class AuthorizationStatus(BaseModel):
    ticket_system_id: int
    authorized: bool
