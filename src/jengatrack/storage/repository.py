"""
JengaTrack Repository

Data-access layer over the hosted database.

Two kinds of operations live here:

- Lookup/insert/update wrappers returning ``DataResult``. They never raise:
  "not found" is a successful result with ``data=None`` and any other
  database failure is logged and returned as ``DataAccessError``.
- Plain queries used by the WhatsApp intent handlers. They raise
  ``SQLAlchemyError`` and leave the commit to the caller.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import func, select, text
from sqlalchemy.exc import NoResultFound, SQLAlchemyError
from sqlalchemy.orm import Session

from jengatrack.storage.models import (
    AIUsageLog,
    Expense,
    ExpenseCategory,
    Image,
    MessageDirection,
    Profile,
    Project,
    ProjectStatus,
    RecordSource,
    Task,
    TaskPriority,
    TaskStatus,
    WhatsAppMessage,
    utcnow,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CURRENCY = "UGX"
DEFAULT_LANGUAGE = "en"

# Keywords that route an expense description to a category of the same name
CATEGORY_KEYWORDS: dict[str, list[str]] = {
    "Materials": [
        "cement", "sand", "bricks", "steel", "iron",
        "timber", "wood", "stone", "gravel", "aggregate",
    ],
    "Labor": [
        "worker", "labour", "labor", "mason", "carpenter",
        "plumber", "electrician", "painter", "wages", "salary",
    ],
    "Equipment": [
        "equipment", "tools", "machine", "excavator", "mixer", "generator", "scaffolding",
    ],
    "Transport": ["transport", "delivery", "fuel", "petrol", "diesel", "lorry", "truck", "vehicle"],
    "Miscellaneous": ["misc", "other", "sundry"],
}


class DataAccessError(Exception):
    """A database failure, wrapped so callers never see driver exceptions."""

    def __init__(self, message: str, original: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.original = original


@dataclass
class DataResult(Generic[T]):
    """Uniform ``{data, error}`` result of a data-access wrapper."""

    data: T | None = None
    error: DataAccessError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def normalize_phone(phone: str) -> str:
    """Trim and ensure a leading '+'. Idempotent."""
    phone = phone.strip()
    return phone if phone.startswith("+") else f"+{phone}"


def _to_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class JengaTrackRepository:
    """Repository for JengaTrack database operations."""

    def __init__(self, db: Session):
        self.db = db

    def _failure(self, operation: str, exc: SQLAlchemyError) -> DataResult:
        self.db.rollback()
        logger.error(
            f"Database error in {operation}: {exc}",
            extra={"operation": operation},
        )
        return DataResult(None, DataAccessError(str(exc), exc))

    # =========================================================================
    # Profiles
    # =========================================================================

    def get_user_by_whatsapp(self, phone: str) -> DataResult[Profile]:
        """Get a non-deleted profile by WhatsApp number."""
        normalized = normalize_phone(phone)
        try:
            profile = (
                self.db.query(Profile)
                .filter(
                    Profile.whatsapp_number == normalized,
                    Profile.deleted_at.is_(None),
                )
                .one()
            )
        except NoResultFound:
            logger.info(f"User not found: {normalized}")
            return DataResult(None, None)
        except SQLAlchemyError as e:
            return self._failure("get_user_by_whatsapp", e)

        logger.debug(f"Found user {profile.id}", extra={"user_id": str(profile.id)})
        return DataResult(profile, None)

    def create_user_profile(self, phone: str, full_name: str | None = None) -> DataResult[Profile]:
        """
        Create a profile for a WhatsApp number (first contact).

        The display name defaults to ``User <last 4 digits>``.
        """
        normalized = normalize_phone(phone)
        profile = Profile(
            whatsapp_number=normalized,
            full_name=full_name or f"User {normalized[-4:]}",
            default_currency=DEFAULT_CURRENCY,
            preferred_language=DEFAULT_LANGUAGE,
        )
        try:
            self.db.add(profile)
            self.db.commit()
        except SQLAlchemyError as e:
            return self._failure("create_user_profile", e)

        logger.info(f"User profile created: {profile.id}", extra={"phone": normalized})
        return DataResult(profile, None)

    def update_user_last_active(self, user_id: UUID) -> DataResult[None]:
        now = utcnow()
        try:
            self.db.query(Profile).filter(Profile.id == user_id).update(
                {Profile.last_active_at: now, Profile.updated_at: now},
                synchronize_session=False,
            )
            self.db.commit()
        except SQLAlchemyError as e:
            return self._failure("update_user_last_active", e)
        return DataResult(None, None)

    def get_profile(self, user_id: UUID) -> Profile | None:
        return (
            self.db.query(Profile)
            .filter(Profile.id == user_id, Profile.deleted_at.is_(None))
            .first()
        )

    # =========================================================================
    # Projects
    # =========================================================================

    def get_user_default_project(self, user_id: UUID) -> DataResult[Project]:
        """Get the most recently updated active, non-deleted project."""
        try:
            project = (
                self.db.query(Project)
                .filter(
                    Project.user_id == user_id,
                    Project.status == ProjectStatus.ACTIVE.value,
                    Project.deleted_at.is_(None),
                )
                .order_by(Project.updated_at.desc())
                .first()
            )
        except SQLAlchemyError as e:
            return self._failure("get_user_default_project", e)

        if project is None:
            logger.info(f"No active project found for user: {user_id}")
            return DataResult(None, None)
        return DataResult(project, None)

    def get_project(self, project_id: UUID) -> Project | None:
        return (
            self.db.query(Project)
            .filter(Project.id == project_id, Project.deleted_at.is_(None))
            .first()
        )

    def has_projects(self, user_id: UUID) -> bool:
        """Check if a user owns any non-deleted project."""
        return (
            self.db.query(Project.id)
            .filter(Project.user_id == user_id, Project.deleted_at.is_(None))
            .first()
        ) is not None

    def create_project(
        self,
        user_id: UUID,
        name: str,
        description: str | None = None,
        budget_amount: Decimal | None = None,
        status: ProjectStatus = ProjectStatus.ACTIVE,
    ) -> Project:
        project = Project(
            user_id=user_id,
            name=name,
            description=description,
            budget_amount=budget_amount,
            status=status.value,
        )
        self.db.add(project)
        self.db.flush()
        return project

    def update_project_budget(self, project: Project, amount: Decimal) -> Project:
        project.budget_amount = amount
        project.updated_at = utcnow()
        self.db.flush()
        return project

    def get_project_summary(self, project_id: UUID) -> DataResult[dict[str, Any]]:
        """
        Budget totals for a project.

        On Postgres this calls the deployed ``get_project_summary(proj_id)``
        function; other backends run the equivalent aggregate.

        Returns:
            ``{budget, total_spent, remaining, expense_count}``, or None
            when the project does not exist.
        """
        try:
            if self.db.get_bind().dialect.name == "postgresql":
                row = (
                    self.db.execute(
                        text("SELECT * FROM get_project_summary(:proj_id)"),
                        {"proj_id": str(project_id)},
                    )
                    .mappings()
                    .first()
                )
            else:
                row = (
                    self.db.execute(
                        select(
                            Project.budget_amount.label("budget"),
                            func.coalesce(func.sum(Expense.amount), 0).label("total_spent"),
                            func.count(Expense.id).label("expense_count"),
                        )
                        .select_from(Project)
                        .outerjoin(
                            Expense,
                            (Expense.project_id == Project.id) & Expense.deleted_at.is_(None),
                        )
                        .where(Project.id == project_id, Project.deleted_at.is_(None))
                        .group_by(Project.id, Project.budget_amount)
                    )
                    .mappings()
                    .first()
                )
        except SQLAlchemyError as e:
            return self._failure("get_project_summary", e)

        if row is None:
            logger.info(f"Project not found for summary: {project_id}")
            return DataResult(None, None)

        budget = row["budget"]
        total_spent = _to_decimal(row["total_spent"])
        if "remaining" in row:
            remaining = row["remaining"]
        else:
            remaining = None if budget is None else _to_decimal(budget) - total_spent

        return DataResult(
            {
                "budget": None if budget is None else _to_decimal(budget),
                "total_spent": total_spent,
                "remaining": None if remaining is None else _to_decimal(remaining),
                "expense_count": int(row["expense_count"] or 0),
            },
            None,
        )

    # =========================================================================
    # Onboarding
    # =========================================================================

    def get_onboarding(self, user_id: UUID) -> tuple[str | None, dict[str, Any], datetime | None]:
        """
        Get onboarding progress for a profile.

        Returns:
            Tuple of (state, data, completed_at); (None, {}, None) when the
            profile does not exist.
        """
        profile = self.get_profile(user_id)
        if profile is None:
            return None, {}, None
        return (
            profile.onboarding_state,
            dict(profile.onboarding_data or {}),
            profile.onboarding_completed_at,
        )

    def update_onboarding(
        self,
        user_id: UUID,
        state: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        """
        Move a profile to a new onboarding state, merging answers.

        Keys passed with a None value are removed from the stored data.
        Reaching ``completed`` stamps ``onboarding_completed_at``.
        """
        profile = self.db.query(Profile).filter(Profile.id == user_id).one()

        merged = dict(profile.onboarding_data or {})
        merged.update(data or {})
        profile.onboarding_data = {k: v for k, v in merged.items() if v is not None}
        profile.onboarding_state = state
        profile.updated_at = utcnow()
        if state == "completed":
            profile.onboarding_completed_at = profile.updated_at
        self.db.flush()

    # =========================================================================
    # Expense categories
    # =========================================================================

    def get_user_expense_categories(self, user_id: UUID) -> DataResult[list[ExpenseCategory]]:
        try:
            categories = (
                self.db.query(ExpenseCategory)
                .filter(
                    ExpenseCategory.user_id == user_id,
                    ExpenseCategory.deleted_at.is_(None),
                )
                .order_by(ExpenseCategory.name.asc())
                .all()
            )
        except SQLAlchemyError as e:
            return self._failure("get_user_expense_categories", e)

        logger.debug(f"Found {len(categories)} expense categories", extra={"user_id": str(user_id)})
        return DataResult(categories, None)

    def find_matching_category(self, user_id: UUID, description: str) -> UUID | None:
        """Match an expense description to one of the user's categories by keyword."""
        lower = description.lower()
        categories = (
            self.db.query(ExpenseCategory)
            .filter(
                ExpenseCategory.user_id == user_id,
                ExpenseCategory.deleted_at.is_(None),
            )
            .order_by(ExpenseCategory.created_at.asc())
            .all()
        )
        for category in categories:
            for keyword in CATEGORY_KEYWORDS.get(category.name, []):
                if keyword in lower:
                    return category.id
        return None

    # =========================================================================
    # Expenses
    # =========================================================================

    def create_expense(
        self,
        user_id: UUID,
        project_id: UUID,
        description: str,
        amount: Decimal,
        currency: str = DEFAULT_CURRENCY,
        category_id: UUID | None = None,
        source: RecordSource = RecordSource.WHATSAPP,
        expense_date: date | None = None,
    ) -> Expense:
        expense = Expense(
            user_id=user_id,
            project_id=project_id,
            category_id=category_id,
            description=description,
            amount=amount,
            currency=currency,
            source=source.value,
            expense_date=expense_date or utcnow().date(),
        )
        self.db.add(expense)
        self.db.flush()
        return expense

    def calculate_project_total(self, project_id: UUID) -> Decimal:
        """Sum of non-deleted expenses on a project."""
        total = (
            self.db.query(func.coalesce(func.sum(Expense.amount), 0))
            .filter(Expense.project_id == project_id, Expense.deleted_at.is_(None))
            .scalar()
        )
        return _to_decimal(total)

    def calculate_spent_since(self, user_id: UUID, project_id: UUID, since: date) -> Decimal:
        """Sum of a user's expenses on a project dated on or after ``since``."""
        total = (
            self.db.query(func.coalesce(func.sum(Expense.amount), 0))
            .filter(
                Expense.user_id == user_id,
                Expense.project_id == project_id,
                Expense.expense_date >= since,
                Expense.deleted_at.is_(None),
            )
            .scalar()
        )
        return _to_decimal(total)

    def count_expenses(self, user_id: UUID, project_id: UUID) -> int:
        return (
            self.db.query(func.count(Expense.id))
            .filter(
                Expense.user_id == user_id,
                Expense.project_id == project_id,
                Expense.deleted_at.is_(None),
            )
            .scalar()
        ) or 0

    def top_categories(
        self,
        user_id: UUID,
        project_id: UUID,
        limit: int = 3,
    ) -> list[tuple[str | None, Decimal]]:
        """
        Largest spending categories on a project.

        Returns:
            List of (category name, total) pairs, highest first. Expenses
            without a category are grouped under a None name.
        """
        total = func.sum(Expense.amount)
        rows = (
            self.db.query(ExpenseCategory.name, total)
            .select_from(Expense)
            .outerjoin(ExpenseCategory, Expense.category_id == ExpenseCategory.id)
            .filter(
                Expense.user_id == user_id,
                Expense.project_id == project_id,
                Expense.deleted_at.is_(None),
            )
            .group_by(ExpenseCategory.name)
            .order_by(total.desc())
            .limit(limit)
            .all()
        )
        return [(name, _to_decimal(amount)) for name, amount in rows]

    # =========================================================================
    # Tasks
    # =========================================================================

    def create_task(
        self,
        user_id: UUID,
        project_id: UUID,
        title: str,
        description: str | None = None,
        priority: str = TaskPriority.MEDIUM.value,
    ) -> Task:
        task = Task(
            user_id=user_id,
            project_id=project_id,
            title=title,
            description=description,
            status=TaskStatus.PENDING.value,
            priority=priority,
        )
        self.db.add(task)
        self.db.flush()
        return task

    def count_pending_tasks(self, user_id: UUID, project_id: UUID) -> int:
        return (
            self.db.query(func.count(Task.id))
            .filter(
                Task.user_id == user_id,
                Task.project_id == project_id,
                Task.status == TaskStatus.PENDING.value,
                Task.deleted_at.is_(None),
            )
            .scalar()
        ) or 0

    def count_open_tasks(self, project_id: UUID) -> int:
        """Count pending and in-progress tasks on a project."""
        return (
            self.db.query(func.count(Task.id))
            .filter(
                Task.project_id == project_id,
                Task.status.in_([TaskStatus.PENDING.value, TaskStatus.IN_PROGRESS.value]),
                Task.deleted_at.is_(None),
            )
            .scalar()
        ) or 0

    def get_upcoming_tasks(self, project_id: UUID, limit: int = 5) -> DataResult[list[Task]]:
        """Open tasks with a due date, soonest first."""
        try:
            tasks = (
                self.db.query(Task)
                .filter(
                    Task.project_id == project_id,
                    Task.status.in_([TaskStatus.PENDING.value, TaskStatus.IN_PROGRESS.value]),
                    Task.due_date.isnot(None),
                    Task.deleted_at.is_(None),
                )
                .order_by(Task.due_date.asc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            return self._failure("get_upcoming_tasks", e)
        return DataResult(tasks, None)

    # =========================================================================
    # Images
    # =========================================================================

    def create_image(
        self,
        user_id: UUID,
        project_id: UUID | None,
        storage_path: str,
        file_name: str,
        caption: str | None = None,
        mime_type: str | None = "image/jpeg",
        expense_id: UUID | None = None,
    ) -> Image:
        image = Image(
            user_id=user_id,
            project_id=project_id,
            expense_id=expense_id,
            storage_path=storage_path,
            file_name=file_name,
            mime_type=mime_type,
            caption=caption,
            source=RecordSource.WHATSAPP.value,
        )
        self.db.add(image)
        self.db.flush()
        return image

    # =========================================================================
    # WhatsApp message log
    # =========================================================================

    def log_whatsapp_message(
        self,
        direction: MessageDirection,
        message_body: str | None = None,
        *,
        user_id: UUID | None = None,
        whatsapp_message_id: str | None = None,
        media_url: str | None = None,
        intent: str | None = None,
        processed: bool = False,
        ai_used: bool = False,
        error_message: str | None = None,
        processed_at: datetime | None = None,
    ) -> DataResult[WhatsAppMessage]:
        """Append a message to the audit log, stamping ``received_at`` now."""
        message = WhatsAppMessage(
            user_id=user_id,
            whatsapp_message_id=whatsapp_message_id,
            direction=MessageDirection(direction).value,
            message_body=message_body,
            media_url=media_url,
            intent=intent,
            processed=processed,
            ai_used=ai_used,
            error_message=error_message,
            received_at=utcnow(),
            processed_at=processed_at,
        )
        try:
            self.db.add(message)
            self.db.commit()
        except SQLAlchemyError as e:
            return self._failure("log_whatsapp_message", e)

        logger.debug(
            f"WhatsApp message logged: {message.id}",
            extra={"direction": message.direction, "intent": intent},
        )
        return DataResult(message, None)

    def update_whatsapp_message_status(
        self,
        message_id: UUID,
        processed: bool,
        error_message: str | None = None,
        intent: str | None = None,
        ai_used: bool | None = None,
    ) -> DataResult[WhatsAppMessage]:
        """
        Mark a logged message processed (or not).

        ``processed_at`` is stamped now; ``error_message`` is overwritten, so
        passing None clears it. ``intent`` and ``ai_used`` change only when given.
        """
        try:
            message = self.db.get(WhatsAppMessage, message_id)
            if message is None:
                logger.info(f"WhatsApp message not found: {message_id}")
                return DataResult(None, None)

            message.processed = processed
            message.processed_at = utcnow()
            message.error_message = error_message
            if intent is not None:
                message.intent = intent
            if ai_used is not None:
                message.ai_used = ai_used
            self.db.commit()
        except SQLAlchemyError as e:
            return self._failure("update_whatsapp_message_status", e)

        return DataResult(message, None)

    def set_whatsapp_message_intent(
        self,
        message_id: UUID,
        intent: str,
        ai_used: bool = False,
    ) -> DataResult[WhatsAppMessage]:
        """Record the detected intent on a logged message without marking it processed."""
        try:
            message = self.db.get(WhatsAppMessage, message_id)
            if message is None:
                return DataResult(None, None)
            message.intent = intent
            message.ai_used = ai_used
            self.db.commit()
        except SQLAlchemyError as e:
            return self._failure("set_whatsapp_message_intent", e)
        return DataResult(message, None)

    def is_message_processed(self, whatsapp_message_id: str) -> bool:
        """Check if an inbound gateway message was already logged (idempotency)."""
        result = self.db.execute(
            text(
                "SELECT 1 FROM whatsapp_messages "
                "WHERE whatsapp_message_id = :id AND direction = 'inbound' LIMIT 1"
            ),
            {"id": whatsapp_message_id},
        )
        return result.fetchone() is not None

    def get_recent_messages(self, limit: int = 20) -> list[WhatsAppMessage]:
        return (
            self.db.query(WhatsAppMessage)
            .order_by(WhatsAppMessage.received_at.desc())
            .limit(limit)
            .all()
        )

    # =========================================================================
    # AI usage
    # =========================================================================

    def log_ai_usage(
        self,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        estimated_cost_usd: Decimal,
        user_id: UUID | None = None,
        intent: str | None = None,
        total_tokens: int | None = None,
    ) -> DataResult[AIUsageLog]:
        usage = AIUsageLog(
            user_id=user_id,
            intent=intent,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=(
                total_tokens if total_tokens is not None else prompt_tokens + completion_tokens
            ),
            model=model,
            estimated_cost_usd=estimated_cost_usd,
        )
        try:
            self.db.add(usage)
            self.db.commit()
        except SQLAlchemyError as e:
            return self._failure("log_ai_usage", e)

        logger.info(
            f"AI usage logged: {model} - {usage.total_tokens} tokens - ${estimated_cost_usd}",
            extra={"user_id": str(user_id) if user_id else None},
        )
        return DataResult(usage, None)

    # =========================================================================
    # Health
    # =========================================================================

    def test_connection(self) -> bool:
        """Run a trivial query against profiles; False on any database error."""
        try:
            self.db.execute(select(Profile.id).limit(1))
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database connection test failed: {e}")
            return False
        return True
