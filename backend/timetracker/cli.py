"""
Command line entry point: update project subtickets from Jira.

Usage: timetracker-sync-subtickets [-v] [project_id]
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from sqlalchemy.orm import Session

from timetracker.config import settings
from timetracker.database import SessionLocal
from timetracker.models.project import Project
from timetracker.services.jira_factory import JiraServiceFactory
from timetracker.services.subticket_sync import SubticketSyncService
from timetracker.utils.log_setup import configure_logging

log = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="timetracker-sync-subtickets",
        description="Update project subtickets from Jira",
    )
    parser.add_argument("project_id", nargs="?", type=int, help="Single project ID to update")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Print projects (-v) and subtickets (-vv)")
    return parser


async def sync_subtickets(db: Session, project_id: Optional[int], verbose: int = 0, transport=None) -> int:
    if project_id is not None:
        project = db.get(Project, project_id)
        if project is None:
            print("Project does not exist", file=sys.stderr)
            return 1
        projects = [project]
    else:
        projects = db.query(Project).filter(Project.ticket_system_id.isnot(None)).all()

    if verbose:
        print(f"Found {len(projects)} projects with ticket system")

    factory = JiraServiceFactory(db, transport=transport)
    service = SubticketSyncService(db, factory)
    try:
        for project in projects:
            if verbose:
                print(f"Syncing {project.id} {project.name}")
            subtickets = await service.sync_project_subtickets(project)
            if verbose:
                print(f" {len(subtickets)} subtickets found")
            if verbose > 1 and subtickets:
                print(" " + ",".join(subtickets))
    finally:
        await factory.aclose()

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(settings.log_level)

    db = SessionLocal()
    try:
        return asyncio.run(sync_subtickets(db, args.project_id, args.verbose))
    except ValueError as e:
        log.error(str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
