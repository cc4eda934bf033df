"""Hub read routes.

Caller identity comes from the X-Hub-User-Id header, set by the auth proxy in
front of the gatekeeper. Every route checks membership before reading.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from fastapi import APIRouter, Header, HTTPException, Query, Request
from pydantic import BaseModel

from src.ingest.gatekeeper.models import LabelChangeRequest
from src.utils.errors import (
    LabelChangeRejectedError,
    StorageUnavailableError,
    TenantUnauthorizedError,
)
from src.utils.logging import LogContext, get_logger

from .access import verify_hub_access
from .service import HubReadService

logger = get_logger(__name__)

router = APIRouter(prefix="/hubs/{hub_id}")


def _dump(value: BaseModel | list[BaseModel]) -> Any:
    # Absent optional fields (assignee, description, ...) are omitted, not null
    if isinstance(value, list):
        return [item.model_dump(mode="json", by_alias=True, exclude_none=True) for item in value]
    return value.model_dump(mode="json", by_alias=True, exclude_none=True)


@contextmanager
def _hub_request(hub_id: str) -> Iterator[None]:
    """Bind hub_id to logs and map storage outages to 503."""
    with LogContext(hub_id=hub_id):
        try:
            yield
        except StorageUnavailableError as e:
            logger.error(f"Hub read failed, storage unavailable: {e}")
            raise HTTPException(status_code=503, detail="Storage unavailable")


async def _authorize(
    request: Request, hub_id: str, user_id: str | None, write: bool = False
) -> HubReadService:
    try:
        await verify_hub_access(request.app.state.hub_mappings, hub_id, user_id, write=write)
    except TenantUnauthorizedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except StorageUnavailableError:
        raise HTTPException(status_code=503, detail="Storage unavailable")
    return request.app.state.hub_read_service


@router.get("/issues")
async def list_hub_issues(
    request: Request,
    hub_id: str,
    project_id: str | None = Query(default=None, alias="projectId"),
    team_id: str | None = Query(default=None, alias="teamId"),
    statuses: list[str] | None = Query(default=None, alias="status"),
    user_id: str | None = Header(default=None, alias="X-Hub-User-Id"),
):
    service = await _authorize(request, hub_id, user_id)
    with _hub_request(hub_id):
        issues = await service.list_issues(
            hub_id, project_id=project_id, team_id=team_id, statuses=statuses
        )
    return {"issues": _dump(issues)}


@router.get("/issues/{issue_id}")
async def get_hub_issue(
    request: Request,
    hub_id: str,
    issue_id: str,
    user_id: str | None = Header(default=None, alias="X-Hub-User-Id"),
):
    service = await _authorize(request, hub_id, user_id)
    with _hub_request(hub_id):
        issue = await service.get_issue_detail(hub_id, issue_id)
        if issue is None:
            raise HTTPException(status_code=404, detail="Issue not found")
        comments = await service.list_comments(hub_id, issue_id)
    return {"issue": _dump(issue), "comments": _dump(comments)}


@router.get("/issues/{issue_id}/comments")
async def list_hub_comments(
    request: Request,
    hub_id: str,
    issue_id: str,
    user_id: str | None = Header(default=None, alias="X-Hub-User-Id"),
):
    service = await _authorize(request, hub_id, user_id)
    with _hub_request(hub_id):
        comments = await service.list_comments(hub_id, issue_id)
    return {"comments": _dump(comments)}


@router.post("/issues/{issue_id}/labels")
async def plan_hub_label_change(
    request: Request,
    hub_id: str,
    issue_id: str,
    body: LabelChangeRequest,
    user_id: str | None = Header(default=None, alias="X-Hub-User-Id"),
):
    """Validate a label add/remove and return the labels the issue should end up with."""
    service = await _authorize(request, hub_id, user_id, write=True)
    with _hub_request(hub_id):
        try:
            plan = await service.plan_label_change(hub_id, issue_id, body.label_id, body.action)
        except LabelChangeRejectedError as e:
            raise HTTPException(status_code=e.status_code, detail=str(e))
        if plan is None:
            raise HTTPException(status_code=404, detail="Issue not found")
        logger.info("Planned hub label change", issue_id=issue_id, action=plan.action)
    return {"labelIds": plan.label_ids, "labels": _dump(plan.visible_labels)}


@router.get("/projects")
async def list_hub_projects(
    request: Request,
    hub_id: str,
    status_name: str | None = Query(default=None, alias="status"),
    user_id: str | None = Header(default=None, alias="X-Hub-User-Id"),
):
    service = await _authorize(request, hub_id, user_id)
    with _hub_request(hub_id):
        projects = await service.list_projects(hub_id, status_name=status_name)
    return {"projects": _dump(projects)}


@router.get("/initiatives")
async def list_hub_initiatives(
    request: Request,
    hub_id: str,
    status: str | None = Query(default=None),
    user_id: str | None = Header(default=None, alias="X-Hub-User-Id"),
):
    service = await _authorize(request, hub_id, user_id)
    with _hub_request(hub_id):
        initiatives = await service.list_initiatives(hub_id, status=status)
    return {"initiatives": _dump(initiatives)}


@router.get("/teams")
async def list_hub_teams(
    request: Request,
    hub_id: str,
    user_id: str | None = Header(default=None, alias="X-Hub-User-Id"),
):
    service = await _authorize(request, hub_id, user_id)
    with _hub_request(hub_id):
        teams = await service.list_teams(hub_id)
    return {"teams": _dump(teams)}


@router.get("/metadata")
async def get_hub_metadata(
    request: Request,
    hub_id: str,
    project_id: str | None = Query(default=None, alias="projectId"),
    team_id: str | None = Query(default=None, alias="teamId"),
    user_id: str | None = Header(default=None, alias="X-Hub-User-Id"),
):
    service = await _authorize(request, hub_id, user_id)
    with _hub_request(hub_id):
        metadata = await service.get_metadata(hub_id, project_id=project_id, team_id=team_id)
    return _dump(metadata)


@router.get("/team-stats")
async def get_hub_team_stats(
    request: Request,
    hub_id: str,
    user_id: str | None = Header(default=None, alias="X-Hub-User-Id"),
):
    service = await _authorize(request, hub_id, user_id)
    with _hub_request(hub_id):
        stats = await service.get_team_stats(hub_id)
    return {"stats": {team_id: _dump(team_stats) for team_id, team_stats in stats.items()}}


@router.get("/roadmap")
async def list_hub_roadmap_issues(
    request: Request,
    hub_id: str,
    project_ids: str = Query(default="", alias="projectIds"),
    user_id: str | None = Header(default=None, alias="X-Hub-User-Id"),
):
    """Issues of the requested projects (comma-separated), limited to hub-visible ones."""
    service = await _authorize(request, hub_id, user_id)
    requested = [pid.strip() for pid in project_ids.split(",") if pid.strip()]
    with _hub_request(hub_id):
        issues = await service.list_roadmap_issues(hub_id, requested)
    return {"issues": _dump(issues)}
