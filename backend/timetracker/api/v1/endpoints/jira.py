from typing import Annotated, Any, Dict, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import PlainTextResponse, RedirectResponse, Response
from sqlalchemy.orm import Session

from timetracker.api.deps import get_integration_service, get_jira_factory
from timetracker.auth import get_current_user
from timetracker.connectors.errors import JiraApiError
from timetracker.database import get_db
from timetracker.models.ticket_system import TicketSystem
from timetracker.models.user import User
from timetracker.schemas.sync import AuthorizationStatus, AuthorizeResponse
from timetracker.services.jira_factory import JiraServiceFactory
from timetracker.services.jira_integration import JiraIntegrationService

log = logging.getLogger(__name__)

router = APIRouter()

# Mounted at the application root, Jira redirects the browser here
callback_router = APIRouter()


def get_ticket_system_or_404(db: Session, ticket_system_id: int) -> TicketSystem:
    ticket_system = db.get(TicketSystem, ticket_system_id)
    if ticket_system is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Ticket system {ticket_system_id} not found"
        )
    return ticket_system


@callback_router.get("/jiraoauthcallback")
async def jira_oauth_callback(
    tsid: Optional[int] = None,
    oauth_token: Optional[str] = None,
    oauth_verifier: Optional[str] = None,
    db: Session = Depends(get_db),
    factory: JiraServiceFactory = Depends(get_jira_factory),
):
    """Finishes the OAuth flow: exchange the request token and sync the latest entry."""
    ticket_system = db.get(TicketSystem, tsid) if tsid is not None else None
    if ticket_system is None:
        return PlainTextResponse("Ticket system not found", status_code=status.HTTP_404_NOT_FOUND)

    if not oauth_token or not oauth_verifier:
        return PlainTextResponse("Invalid OAuth callback parameters", status_code=status.HTTP_400_BAD_REQUEST)

    user = factory.auth_service.find_user_by_request_token(ticket_system, oauth_token)
    if user is None:
        return PlainTextResponse("Unknown OAuth request token", status_code=status.HTTP_400_BAD_REQUEST)

    try:
        services = factory.create(user, ticket_system)
        tokens = await services.auth.fetch_access_token(
            ticket_system, user, oauth_token, oauth_verifier, http_client=services.http_client
        )
        if tokens is not None:
            await services.work_logs.update_entries_work_logs_limited(user, ticket_system, limit=1)
    except JiraApiError as e:
        log.warning(f"Jira OAuth callback failed for user {user.id}: {e.message}")
        return PlainTextResponse(e.message)

    return RedirectResponse("/", status_code=status.HTTP_302_FOUND)


@router.post("/{ticket_system_id}/authorize", response_model=AuthorizeResponse)
async def authorize(
    ticket_system_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Session = Depends(get_db),
    factory: JiraServiceFactory = Depends(get_jira_factory),
):
    """Starts the OAuth flow and returns the Jira page the user has to confirm."""
    ticket_system = get_ticket_system_or_404(db, ticket_system_id)
    services = factory.create(current_user, ticket_system)

    request_token = await services.auth.fetch_request_token(ticket_system, current_user, http_client=services.http_client)
    return AuthorizeResponse(redirect_url=services.auth.get_oauth_authorize_url(ticket_system, request_token))


@router.delete("/{ticket_system_id}/tokens", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tokens(
    ticket_system_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Session = Depends(get_db),
    factory: JiraServiceFactory = Depends(get_jira_factory),
):
    ticket_system = get_ticket_system_or_404(db, ticket_system_id)
    factory.auth_service.delete_tokens(current_user, ticket_system)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{ticket_system_id}/status", response_model=AuthorizationStatus)
async def authorization_status(
    ticket_system_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Session = Depends(get_db),
    factory: JiraServiceFactory = Depends(get_jira_factory),
):
    ticket_system = get_ticket_system_or_404(db, ticket_system_id)
    return AuthorizationStatus(
        ticket_system_id=ticket_system.id,
        authorized=factory.auth_service.check_user_ticket_system(current_user, ticket_system),
    )


@router.get("/{ticket_system_id}/validate")
async def validate_connection(
    ticket_system_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Session = Depends(get_db),
    integration: JiraIntegrationService = Depends(get_integration_service),
) -> Dict[str, bool]:
    ticket_system = get_ticket_system_or_404(db, ticket_system_id)
    return {"valid": await integration.validate_jira_connection(ticket_system, current_user)}


@router.get("/{ticket_system_id}/projects/{project_key}")
async def get_project_info(
    ticket_system_id: int,
    project_key: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Session = Depends(get_db),
    integration: JiraIntegrationService = Depends(get_integration_service),
) -> Dict[str, Any]:
    ticket_system = get_ticket_system_or_404(db, ticket_system_id)
    project_info = await integration.get_jira_project_info(project_key, ticket_system, current_user)
    if project_info is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Jira project {project_key} not available"
        )
    return project_info
