"""Project registry and rule API router.

Provides endpoints for the project lifecycle (submit, approve, deny) and
for inspecting, creating and evaluating a project's routing rules. Used by
the moderation tooling; the Discord bot calls the same operations directly.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from bytehub.shared.database import get_db_session
from bytehub.web.api.dependencies import verify_api_key
from bytehub.web.api.schemas import (
    MutationResponse,
    ProjectApproveRequest,
    ProjectForumUpdateRequest,
    ProjectListResponse,
    ProjectResponse,
    ProjectSubmitRequest,
    ProjectThreadUpdateRequest,
    RuleCreateRequest,
    RuleEvaluateRequest,
    RuleEvaluateResponse,
    RuleListResponse,
    RuleResponse,
)
from bytehub.web.crud import (
    MutationError,
    MutationResult,
    NotFoundError,
    ProjectOperations,
    RuleOperations,
)
from bytehub.web.models import Project

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_api_key)])


def _to_response(result: MutationResult) -> MutationResponse:
    result.raise_for_error()
    return MutationResponse(success=True, id=result.id)


async def _require_project(ops: ProjectOperations, github_repo: str) -> Project:
    project = await ops.get_project(github_repo)
    if project is None:
        raise NotFoundError(MutationError.NOT_FOUND.value)
    return project


@router.post("/projects", status_code=status.HTTP_201_CREATED)
async def submit_project(
    request: ProjectSubmitRequest,
    session: AsyncSession = Depends(get_db_session),
) -> MutationResponse:
    """Submit a repository for moderator approval."""
    result = await ProjectOperations(session).submit_project(request.github_repo)
    return _to_response(result)


@router.get("/projects/{owner}/{repo}")
async def get_project(
    owner: str,
    repo: str,
    session: AsyncSession = Depends(get_db_session),
) -> ProjectResponse:
    """Get a project regardless of approval state."""
    project = await _require_project(ProjectOperations(session), f"{owner}/{repo}")
    return ProjectResponse.model_validate(project)


@router.get("/projects/{owner}/{repo}/approved")
async def get_approved_project(
    owner: str,
    repo: str,
    session: AsyncSession = Depends(get_db_session),
) -> ProjectResponse:
    """Get a project only if it is approved."""
    project = await ProjectOperations(session).get_approved_project(f"{owner}/{repo}")
    if project is None:
        raise NotFoundError(MutationError.NOT_FOUND.value)
    return ProjectResponse.model_validate(project)


@router.post("/projects/{owner}/{repo}/approve")
async def approve_project(
    owner: str,
    repo: str,
    request: Optional[ProjectApproveRequest] = None,
    session: AsyncSession = Depends(get_db_session),
) -> MutationResponse:
    """Approve a project.

    With a forum channel and guild in the body the project is bound to that
    forum and seeded with the default rules.
    """
    ops = ProjectOperations(session)
    github_repo = f"{owner}/{repo}"

    if request is None:
        result = await ops.approve_project(github_repo)
    else:
        result = await ops.approve_project_with_forum(
            github_repo, request.forum_channel_id, request.guild_id
        )
    return _to_response(result)


@router.delete("/projects/{owner}/{repo}")
async def deny_project(
    owner: str,
    repo: str,
    session: AsyncSession = Depends(get_db_session),
) -> MutationResponse:
    """Deny a project, deleting it and its rules."""
    result = await ProjectOperations(session).deny_project(f"{owner}/{repo}")
    return _to_response(result)


@router.patch("/projects/{owner}/{repo}/forum")
async def update_forum_id(
    owner: str,
    repo: str,
    request: ProjectForumUpdateRequest,
    session: AsyncSession = Depends(get_db_session),
) -> MutationResponse:
    result = await ProjectOperations(session).update_forum_id(f"{owner}/{repo}", request.forum_id)
    return _to_response(result)


@router.patch("/projects/{owner}/{repo}/thread")
async def update_thread_id(
    owner: str,
    repo: str,
    request: ProjectThreadUpdateRequest,
    session: AsyncSession = Depends(get_db_session),
) -> MutationResponse:
    result = await ProjectOperations(session).update_thread_id(f"{owner}/{repo}", request.thread_id)
    return _to_response(result)


@router.get("/guilds/{guild_id}/projects")
async def list_guild_projects(
    guild_id: str,
    session: AsyncSession = Depends(get_db_session),
) -> ProjectListResponse:
    """List every project bound to a guild."""
    projects = await ProjectOperations(session).list_projects_by_guild(guild_id)
    return ProjectListResponse(
        projects=[ProjectResponse.model_validate(p) for p in projects],
        total=len(projects),
    )


@router.get("/projects/{owner}/{repo}/rules")
async def list_rules(
    owner: str,
    repo: str,
    session: AsyncSession = Depends(get_db_session),
) -> RuleListResponse:
    """List a project's rules, highest priority first."""
    project = await _require_project(ProjectOperations(session), f"{owner}/{repo}")
    rules = await RuleOperations(session).get_rules_by_project(project.id)
    return RuleListResponse(
        rules=[RuleResponse.model_validate(r) for r in rules],
        total=len(rules),
    )


@router.post("/projects/{owner}/{repo}/rules", status_code=status.HTTP_201_CREATED)
async def create_rule(
    owner: str,
    repo: str,
    request: RuleCreateRequest,
    session: AsyncSession = Depends(get_db_session),
) -> RuleResponse:
    """Add a rule to a project."""
    project = await _require_project(ProjectOperations(session), f"{owner}/{repo}")
    rule = await RuleOperations(session).create_rule(
        project.id, request.priority, request.conditions, request.actions
    )
    logger.info(f"Rule created for {project.github_repo} at priority {rule.priority}")
    return RuleResponse.model_validate(rule)


@router.post("/projects/{owner}/{repo}/rules/evaluate")
async def evaluate_rules(
    owner: str,
    repo: str,
    request: RuleEvaluateRequest,
    session: AsyncSession = Depends(get_db_session),
) -> RuleEvaluateResponse:
    """Show which actions a project's rules select for an event."""
    project = await _require_project(ProjectOperations(session), f"{owner}/{repo}")
    match = await RuleOperations(session).evaluate_for_project(
        project.id, request.event_type, request.is_merged
    )
    if match is None:
        return RuleEvaluateResponse(matched=False)
    return RuleEvaluateResponse(matched=True, rule_id=match.rule_id, actions=match.actions)
