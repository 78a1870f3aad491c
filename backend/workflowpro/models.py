"""SQLAlchemy models for reports, discussions, notifications and lookup lists."""
from datetime import datetime, timezone
import uuid

from sqlalchemy import (
    JSON, Boolean, Column, String, Integer, DateTime, Text,
    ForeignKey, CheckConstraint, Index, UniqueConstraint,
)
from sqlalchemy.types import TypeDecorator

from .database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC timestamps on every backend.

    SQLite drops tzinfo on the way in, so naive values coming back are UTC by
    construction and get it re-attached.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


MCL_STATUSES = ("Pending Approval", "Approved", "Rejected")
PROBLEM_STATUSES = ("Open", "In Progress", "Closed")
NOTIFICATION_STATUSES = ("unread", "read", "archived")


class User(Base):
    """Employee directory entry."""
    __tablename__ = "users"

    emp_id = Column(String(20), primary_key=True)
    name = Column(String(100), nullable=False, index=True)
    email = Column(String(100), unique=True, nullable=False, index=True)
    role = Column(String(20), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint(role.in_(["User", "Manager", "Admin"]), name="chk_user_role"),
    )


class LookupListValue(Base):
    """Dropdown option belonging to a named list (clients, shifts, ...)."""
    __tablename__ = "lookup_list_values"

    id = Column(Integer, primary_key=True, autoincrement=True)
    list_name = Column(String(50), nullable=False, index=True)
    value = Column(String(100), nullable=False)
    sort_order = Column(Integer, nullable=False)
    manager_id = Column(String(20), ForeignKey("users.emp_id"), nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("list_name", "sort_order", name="uq_lookup_list_sort_order"),
    )


class MCLReport(Base):
    """Movement-log report (site visit) awaiting manager approval."""
    __tablename__ = "mcl_reports"

    id = Column(String(20), primary_key=True)
    user_id = Column(String(20), ForeignKey("users.emp_id"), nullable=False, index=True)
    client_name_id = Column(Integer, ForeignKey("lookup_list_values.id"), nullable=True)
    visit_type_id = Column(Integer, ForeignKey("lookup_list_values.id"), nullable=True)
    purpose_id = Column(Integer, ForeignKey("lookup_list_values.id"), nullable=True)
    shift_id = Column(Integer, ForeignKey("lookup_list_values.id"), nullable=True)
    entry_at = Column(UTCDateTime, nullable=False, index=True)
    exit_at = Column(UTCDateTime, nullable=False)
    remark = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default="Pending Approval", index=True)
    approved_by = Column(String(20), ForeignKey("users.emp_id"), nullable=True)
    approved_at = Column(UTCDateTime, nullable=True)
    rejected_by = Column(String(20), ForeignKey("users.emp_id"), nullable=True)
    rejected_at = Column(UTCDateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint(status.in_(MCL_STATUSES), name="chk_mcl_report_status"),
    )


class ProblemReport(Base):
    """Incident record tracked through Open / In Progress / Closed."""
    __tablename__ = "problem_reports"

    id = Column(String(20), primary_key=True)
    user_id = Column(String(20), ForeignKey("users.emp_id"), nullable=False, index=True)
    client_name_id = Column(Integer, ForeignKey("lookup_list_values.id"), nullable=True)
    environment_id = Column(Integer, ForeignKey("lookup_list_values.id"), nullable=True)
    problem_statement = Column(Text, nullable=False)
    received_at = Column(UTCDateTime, nullable=False, index=True)
    rca = Column(Text, nullable=True)
    solution = Column(Text, nullable=True)
    attended_by_id = Column(String(20), ForeignKey("users.emp_id"), nullable=True)
    status = Column(String(20), nullable=False, default="Open", index=True)
    sla_hours = Column(Integer, nullable=False)
    closed_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint(status.in_(PROBLEM_STATUSES), name="chk_problem_report_status"),
        CheckConstraint("sla_hours > 0", name="chk_problem_report_sla_positive"),
    )


class DiscussionPost(Base):
    """Thread root (parent_post_id IS NULL) or a comment on a thread."""
    __tablename__ = "discussion_posts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(200), nullable=False, default="")
    content = Column(Text, nullable=False)
    report_type = Column(String(20), nullable=True)
    report_id = Column(String(20), nullable=True)
    user_id = Column(String(20), ForeignKey("users.emp_id"), nullable=False, index=True)
    parent_post_id = Column(Integer, ForeignKey("discussion_posts.id"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_edited = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint(
            "report_type IS NULL OR report_type IN ('MCL', 'Problem')",
            name="chk_discussion_report_type",
        ),
        Index("idx_discussion_posts_parent_created", "parent_post_id", "created_at"),
    )


class Notification(Base):
    """Per-recipient notification; expired rows are hidden and swept."""
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(20), ForeignKey("users.emp_id"), nullable=False, index=True)
    source_user_id = Column(String(20), ForeignKey("users.emp_id"), nullable=True)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(30), nullable=False, default="info")
    priority = Column(String(10), nullable=False, default="medium")
    status = Column(String(10), nullable=False, default="unread", index=True)
    data = Column(JSON, nullable=True)
    action_url = Column(String(500), nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    read_at = Column(UTCDateTime, nullable=True)
    expires_at = Column(UTCDateTime, nullable=True, index=True)

    __table_args__ = (
        CheckConstraint(status.in_(NOTIFICATION_STATUSES), name="chk_notification_status"),
        Index("idx_notifications_user_status", "user_id", "status"),
    )
