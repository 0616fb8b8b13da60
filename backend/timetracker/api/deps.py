from fastapi import Depends
from sqlalchemy.orm import Session

from timetracker.database import get_db
from timetracker.services.jira_factory import JiraServiceFactory
from timetracker.services.jira_integration import JiraIntegrationService


async def get_jira_factory(db: Session = Depends(get_db)):
    """Request scoped Jira service factory; its signed clients are closed afterwards."""
    factory = JiraServiceFactory(db)
    try:
        yield factory
    finally:
        await factory.aclose()


def get_integration_service(
    db: Session = Depends(get_db),
    factory: JiraServiceFactory = Depends(get_jira_factory),
) -> JiraIntegrationService:
    return JiraIntegrationService(db, factory)
