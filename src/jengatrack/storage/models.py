"""
JengaTrack Database Models

Mappings for the tables of the hosted Postgres database.
The schema is owned by the database project; this code reads and writes rows
but never migrates tables.

Tables:
- profiles: users, keyed by WhatsApp number
- projects: construction projects owned by a profile
- expense_categories: per-user expense categories
- expenses: logged expenses
- tasks: site tasks
- images: site photos and receipts
- whatsapp_messages: inbound/outbound message audit log
- ai_usage_log: token usage and cost per model call
"""

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB

from jengatrack.core.db import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProjectStatus(str, Enum):
    """Lifecycle of a project."""

    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class MessageDirection(str, Enum):
    """Direction of a WhatsApp message."""

    INBOUND = "inbound"
    OUTBOUND = "outbound"


class RecordSource(str, Enum):
    """Where an expense or image came from."""

    WHATSAPP = "whatsapp"
    DASHBOARD = "dashboard"
    API = "api"


class Profile(Base):
    """
    A registered user, identified by WhatsApp number (E.164 with leading '+').

    Onboarding columns track the WhatsApp first-contact flow.
    """

    __tablename__ = "profiles"

    id = Column(Uuid, primary_key=True, default=uuid4)
    whatsapp_number = Column(String(20), nullable=False, unique=True)
    full_name = Column(String(255), nullable=False)
    default_currency = Column(String(3), default="UGX")
    preferred_language = Column(String(10), default="en")

    onboarding_state = Column(Text, nullable=True)
    onboarding_data = Column(JSONType, nullable=True, default=dict)
    onboarding_completed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    last_active_at = Column(DateTime(timezone=True), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_profiles_whatsapp", "whatsapp_number"),
    )


class Project(Base):
    """A construction project. One active project per profile is expected."""

    __tablename__ = "projects"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    budget_amount = Column(Numeric(15, 2), nullable=True)
    status = Column(String(20), default=ProjectStatus.ACTIVE.value)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_projects_user", "user_id"),
    )


class ExpenseCategory(Base):
    __tablename__ = "expense_categories"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(100), nullable=False)
    color_hex = Column(String(7), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="expense_categories_user_id_name_key"),
        Index("idx_categories_user", "user_id"),
    )


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    category_id = Column(
        Uuid, ForeignKey("expense_categories.id", ondelete="SET NULL"), nullable=True
    )
    description = Column(Text, nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    currency = Column(String(3), default="UGX")
    source = Column(String(20), default=RecordSource.WHATSAPP.value)
    expense_date = Column(Date, nullable=False, default=lambda: utcnow().date())

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_expenses_user", "user_id", "expense_date"),
        Index("idx_expenses_project", "project_id"),
    )


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), default=TaskStatus.PENDING.value)
    priority = Column(String(10), default=TaskPriority.MEDIUM.value)
    due_date = Column(Date, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_tasks_user", "user_id", "status", "due_date"),
        Index("idx_tasks_project", "project_id"),
    )


class Image(Base):
    __tablename__ = "images"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=True)
    expense_id = Column(Uuid, ForeignKey("expenses.id", ondelete="SET NULL"), nullable=True)
    storage_path = Column(Text, nullable=False)
    file_name = Column(String(255), nullable=False)
    file_size_bytes = Column(Integer, nullable=True)
    mime_type = Column(String(100), nullable=True)
    caption = Column(Text, nullable=True)
    source = Column(String(20), default=RecordSource.WHATSAPP.value)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)


class WhatsAppMessage(Base):
    """
    Append-only audit record of a WhatsApp message.

    Only processed/processed_at/error_message/intent/ai_used are ever updated.
    """

    __tablename__ = "whatsapp_messages"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    whatsapp_message_id = Column(String(255), nullable=True)  # Gateway SID (for dedup)
    direction = Column(String(10), nullable=False)
    message_body = Column(Text, nullable=True)
    media_url = Column(Text, nullable=True)
    intent = Column(String(50), nullable=True)
    processed = Column(Boolean, default=False)
    ai_used = Column(Boolean, default=False)
    error_message = Column(Text, nullable=True)
    received_at = Column(DateTime(timezone=True), default=utcnow)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_whatsapp_user", "user_id", "received_at"),
        Index("idx_whatsapp_unprocessed", "processed"),
    )


class AIUsageLog(Base):
    """Token counts and estimated cost of one model invocation."""

    __tablename__ = "ai_usage_log"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    intent = Column(String(50), nullable=True)
    prompt_tokens = Column(Integer, nullable=True)
    completion_tokens = Column(Integer, nullable=True)
    total_tokens = Column(Integer, nullable=True)
    model = Column(String(50), nullable=True)
    estimated_cost_usd = Column(Numeric(10, 6), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("idx_ai_usage_user_date", "user_id", "created_at"),
    )
