"""Pydantic schemas: typed inputs and decoded result rows."""
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


class MCLReportStatus(str, Enum):
    PENDING_APPROVAL = "Pending Approval"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class ProblemReportStatus(str, Enum):
    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    CLOSED = "Closed"


NotificationStatus = Literal["unread", "read", "archived"]
NotificationType = Literal[
    "info", "success", "warning", "error", "mcl_report", "problem_report", "discussion", "system"
]
NotificationPriority = Literal["low", "medium", "high", "urgent"]
ReportType = Literal["MCL", "Problem"]


# Directory
class DirectoryUser(BaseModel):
    """Minimal user directory entry (safe to show to all authenticated users)."""

    emp_id: str
    name: str
    role: str
    model_config = ConfigDict(from_attributes=True)


UserRole = Literal["User", "Manager", "Admin"]


class UserCreate(BaseModel):
    emp_id: str = Field(min_length=1, max_length=20)
    name: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=100)
    role: UserRole = "User"


class UserUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[str] = Field(default=None, min_length=3, max_length=100)
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None


class UserResponse(BaseModel):
    """Full directory record, for administrators."""

    emp_id: str
    name: str
    email: str
    role: str
    is_active: bool
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


# Lookup lists
class LookupValueCreate(BaseModel):
    value: str = Field(min_length=1, max_length=100)
    sort_order: Optional[int] = Field(default=None, ge=1)


class LookupValueRename(BaseModel):
    value: str = Field(min_length=1, max_length=100)


class LookupValueMove(BaseModel):
    direction: Literal["up", "down"]


class LookupValueOut(BaseModel):
    id: int
    list_name: str
    value: str
    sort_order: int
    manager_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class LookupListSummary(BaseModel):
    list_name: str
    value_count: int
    owner_id: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


# Report filters
class ReportFilters(BaseModel):
    submitter_id: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    month: Optional[str] = Field(default=None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$")
    status: Optional[str] = None


# MCL reports
class MCLReportCreate(BaseModel):
    client_name_id: Optional[int] = None
    visit_type_id: Optional[int] = None
    purpose_id: Optional[int] = None
    shift_id: Optional[int] = None
    entry_at: datetime
    exit_at: datetime
    remark: str = Field(min_length=1)


class MCLReportUpdate(BaseModel):
    client_name_id: Optional[int] = None
    visit_type_id: Optional[int] = None
    purpose_id: Optional[int] = None
    shift_id: Optional[int] = None
    entry_at: Optional[datetime] = None
    exit_at: Optional[datetime] = None
    remark: Optional[str] = Field(default=None, min_length=1)


class MCLRejectRequest(BaseModel):
    reason: Optional[str] = None


class MCLReportOut(BaseModel):
    id: str
    user_id: str
    client_name_id: Optional[int] = None
    visit_type_id: Optional[int] = None
    purpose_id: Optional[int] = None
    shift_id: Optional[int] = None
    entry_at: datetime
    exit_at: datetime
    remark: str
    status: MCLReportStatus
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    # Display values joined from lookup lists and the user directory.
    client_name: Optional[str] = None
    visit_type: Optional[str] = None
    purpose: Optional[str] = None
    shift: Optional[str] = None
    submitted_by: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


# Problem reports
class ProblemReportCreate(BaseModel):
    client_name_id: Optional[int] = None
    environment_id: Optional[int] = None
    problem_statement: str = Field(min_length=1)
    received_at: datetime
    attended_by_id: Optional[str] = None
    sla_hours: int = Field(gt=0)


class ProblemReportUpdate(BaseModel):
    client_name_id: Optional[int] = None
    environment_id: Optional[int] = None
    problem_statement: Optional[str] = Field(default=None, min_length=1)
    received_at: Optional[datetime] = None
    rca: Optional[str] = None
    solution: Optional[str] = None
    attended_by_id: Optional[str] = None
    sla_hours: Optional[int] = Field(default=None, gt=0)


class ProblemStatusChange(BaseModel):
    status: ProblemReportStatus
    rca: Optional[str] = None
    solution: Optional[str] = None


class ProblemReportOut(BaseModel):
    id: str
    user_id: str
    client_name_id: Optional[int] = None
    environment_id: Optional[int] = None
    problem_statement: str
    received_at: datetime
    rca: Optional[str] = None
    solution: Optional[str] = None
    attended_by_id: Optional[str] = None
    status: ProblemReportStatus
    sla_hours: int
    closed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    client_name: Optional[str] = None
    environment: Optional[str] = None
    submitted_by: Optional[str] = None
    attended_by: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def sla_due_at(self) -> datetime:
        return self.received_at + timedelta(hours=self.sla_hours)


# Discussions
class DiscussionCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=1)
    report_type: Optional[ReportType] = None
    report_id: Optional[str] = None


class PostUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    content: Optional[str] = Field(default=None, min_length=1)
    is_active: Optional[bool] = None


class CommentCreate(BaseModel):
    content: str = Field(min_length=1)


class DiscussionOut(BaseModel):
    id: int
    title: str
    content: str
    report_type: Optional[str] = None
    report_id: Optional[str] = None
    user_id: str
    parent_post_id: Optional[int] = None
    is_active: bool
    is_edited: bool
    created_at: datetime
    updated_at: datetime
    author: Optional[str] = None
    author_role: Optional[str] = None
    comments_count: int = 0
    model_config = ConfigDict(from_attributes=True)


class CommentOut(BaseModel):
    id: int
    thread_id: int
    content: str
    user_id: str
    is_active: bool
    is_edited: bool
    created_at: datetime
    updated_at: datetime
    author: Optional[str] = None
    author_role: Optional[str] = None
    # Recipients notified when the comment was created.
    notified_user_ids: list[str] = Field(default_factory=list)
    model_config = ConfigDict(from_attributes=True)


# Notifications
class NotificationCreate(BaseModel):
    user_id: str
    title: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1)
    type: NotificationType = "info"
    priority: NotificationPriority = "medium"
    data: Optional[dict[str, Any]] = None
    action_url: Optional[str] = None
    source_user_id: Optional[str] = None
    expires_at: Optional[datetime] = None


class NotificationFilters(BaseModel):
    status: Optional[NotificationStatus] = None
    type: Optional[NotificationType] = None
    priority: Optional[NotificationPriority] = None
    limit: int = Field(default=50, ge=1, le=200)
    offset: int = Field(default=0, ge=0)


class NotificationOut(BaseModel):
    id: str
    user_id: str
    source_user_id: Optional[str] = None
    title: str
    message: str
    type: str
    priority: str
    status: str
    data: Optional[dict[str, Any]] = None
    action_url: Optional[str] = None
    created_at: datetime
    read_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class NotificationList(BaseModel):
    notifications: list[NotificationOut]
    unread_count: int


class MarkAllReadResult(BaseModel):
    updated: int


# System
class DatabaseHealth(BaseModel):
    status: Literal["healthy", "degraded", "unhealthy"]
    response_time_ms: float
    pool: dict[str, int]
    errors: Optional[list[str]] = None
    checked_at: datetime = Field(default_factory=lambda: datetime.now().astimezone())



class UserStats(BaseModel):
    total_users: int
    active_users: int
    admin_count: int
    manager_count: int
    user_count: int
    model_config = ConfigDict(from_attributes=True)


class MCLReportStats(BaseModel):
    total_reports: int
    pending_reports: int
    approved_reports: int
    rejected_reports: int
    model_config = ConfigDict(from_attributes=True)


class ProblemReportStats(BaseModel):
    total_reports: int
    open_reports: int
    in_progress_reports: int
    closed_reports: int
    model_config = ConfigDict(from_attributes=True)


class DiscussionStats(BaseModel):
    total_discussions: int
    active_discussions: int
    model_config = ConfigDict(from_attributes=True)


class SystemStats(BaseModel):
    users: UserStats
    mcl_reports: MCLReportStats
    problem_reports: ProblemReportStats
    discussions: DiscussionStats
