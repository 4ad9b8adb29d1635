"""Pydantic request and response schemas for the ByteHub API."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from bytehub.shared.rules import RuleActions, RuleConditions


class ErrorDetail(BaseModel):
    code: str
    message: str
    field: Optional[str] = None


class ErrorResponse(BaseModel):
    detail: str
    type: str
    timestamp: datetime
    request_id: Optional[str] = None


class ValidationErrorResponse(ErrorResponse):
    type: str = "validation_error"
    errors: List[ErrorDetail] = Field(default_factory=list)


class MutationResponse(BaseModel):
    """Result of a lifecycle mutation."""

    success: bool
    id: Optional[UUID] = None


# Projects

class ProjectSubmitRequest(BaseModel):
    github_repo: str = Field(..., min_length=3, pattern=r"^[^/\s]+/[^/\s]+$")


class ProjectApproveRequest(BaseModel):
    forum_channel_id: str
    guild_id: str


class ProjectForumUpdateRequest(BaseModel):
    forum_id: str


class ProjectThreadUpdateRequest(BaseModel):
    thread_id: str


class ProjectResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    github_repo: str
    forum_channel_id: str
    thread_id: Optional[str] = None
    guild_id: str
    is_approved: bool


class ProjectListResponse(BaseModel):
    projects: List[ProjectResponse]
    total: int


# Rules

class RuleCreateRequest(BaseModel):
    priority: int
    conditions: RuleConditions = Field(default_factory=RuleConditions)
    actions: RuleActions = Field(default_factory=RuleActions)


class RuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: UUID
    priority: int
    conditions: RuleConditions
    actions: RuleActions


class RuleListResponse(BaseModel):
    rules: List[RuleResponse]
    total: int


class RuleEvaluateRequest(BaseModel):
    event_type: Optional[str] = None
    is_merged: bool = False


class RuleEvaluateResponse(BaseModel):
    matched: bool
    rule_id: Optional[UUID] = None
    actions: Optional[RuleActions] = None


# Server configuration

class ServerConfigRequest(BaseModel):
    announcements_id: str
    github_forum_id: str
    mod_category_id: Optional[str] = None
    project_review_id: Optional[str] = None
    approvals_id: Optional[str] = None


class ServerConfigResponse(ServerConfigRequest):
    model_config = ConfigDict(from_attributes=True)

    guild_id: str
    version: int
    updated_at: datetime


# Webhooks

class WebhookResponse(BaseModel):
    status: str
    event: Optional[str] = None
    skipped_reason: Optional[str] = None
    posted_forum: bool = False
    posted_announce: bool = False
