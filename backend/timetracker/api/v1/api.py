from fastapi import APIRouter

from timetracker.api.v1.endpoints import jira, sync

api_router = APIRouter()
api_router.include_router(jira.router, prefix="/jira", tags=["jira"])
api_router.include_router(sync.router, prefix="/sync", tags=["sync"])
