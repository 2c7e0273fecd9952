"""
Inbound Message Handler

Processes incoming WhatsApp messages:
1. Skips duplicates
2. Registers unknown numbers and starts onboarding
3. Continues onboarding for users without a project
4. Logs the message, parses intent and runs the intent handler
5. Sends the reply and records the outcome
"""

import logging
import time
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from jengatrack.core.settings import get_settings
from jengatrack.messaging import replies
from jengatrack.messaging.intent_parser import (
    Intent,
    ParsedIntent,
    is_valid_intent,
    meets_confidence_threshold,
    parse_intent,
)
from jengatrack.messaging.interaction_log import (
    InteractionLog,
    WhatsAppInteraction,
    get_interaction_log,
)
from jengatrack.messaging.onboarding import OnboardingFlow, OnboardingState
from jengatrack.messaging.providers.base import InboundMessage, WhatsAppProvider
from jengatrack.storage.models import MessageDirection, Profile, Project, TaskPriority, utcnow
from jengatrack.storage.repository import DataAccessError, JengaTrackRepository

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_NAME = "whatsapp-image.jpg"
DEFAULT_IMAGE_TYPE = "image/jpeg"


class NoActiveProject(Exception):
    """The user has no active project to attach a record to."""


class InboundHandler:
    """
    Handles incoming WhatsApp messages.

    Responsibilities:
    - Register new numbers and run onboarding
    - Persist inbound and outbound messages
    - Route parsed intents to their handlers
    - Send replies through the provider
    """

    def __init__(
        self,
        db: Session,
        provider: WhatsAppProvider,
        interaction_log: InteractionLog | None = None,
        dashboard_url: str | None = None,
    ):
        self.db = db
        self.provider = provider
        self.repo = JengaTrackRepository(db)
        self.interaction_log = interaction_log or get_interaction_log()
        self.dashboard_url = dashboard_url or get_settings().DASHBOARD_URL
        self.onboarding = OnboardingFlow(self.repo, provider, self.dashboard_url)

    def _record(self, **fields: Any) -> None:
        self.interaction_log.record(WhatsAppInteraction(**fields))

    async def handle(self, message: InboundMessage) -> dict[str, Any]:
        """
        Process a single inbound message.

        Args:
            message: Parsed inbound message

        Returns:
            Processing result dict
        """
        started = time.monotonic()
        request_id = f"req_{uuid4().hex[:12]}"
        phone = message.phone_number

        result: dict[str, Any] = {
            "request_id": request_id,
            "message_id": message.message_id,
            "from": phone,
            "status": "processed",
        }

        self._record(
            phone_number=phone,
            direction="inbound",
            message_body=message.text,
            intent="pending",
            action="Webhook received",
            metadata={
                "request_id": request_id,
                "message_sid": message.message_id,
                "has_media": message.has_media,
                "media_type": message.media_content_type,
            },
        )

        if message.message_id and self.repo.is_message_processed(message.message_id):
            logger.debug(f"Message {message.message_id} already processed, skipping")
            result.update(status="skipped", reason="already_processed")
            return result

        lookup = self.repo.get_user_by_whatsapp(phone)
        if lookup.error:
            raise lookup.error

        if lookup.data is None:
            return await self._register(message, result)

        profile = lookup.data
        if self.needs_onboarding(profile):
            handled = await self.onboarding.handle(profile.id, message.from_phone, message.text)
            if handled:
                self.db.commit()
                self._log_onboarding_message(profile.id, message)
                result["action"] = "onboarding"
                return result

        return await self._process(profile, message, result, request_id, started)

    def needs_onboarding(self, profile: Profile) -> bool:
        """A profile is onboarded once it completed the flow or owns a project."""
        if profile.onboarding_completed_at is not None:
            return False
        if profile.onboarding_state == OnboardingState.COMPLETED.value:
            return False
        return not self.repo.has_projects(profile.id)

    # =========================================================================
    # Registration
    # =========================================================================

    async def _register(self, message: InboundMessage, result: dict[str, Any]) -> dict[str, Any]:
        phone = message.phone_number
        created = self.repo.create_user_profile(phone)

        if created.error or created.data is None:
            logger.error(f"Failed to create user {phone}: {created.error}")
            await self.provider.send_text(
                message.from_phone, replies.registration_failed(self.dashboard_url)
            )
            self._record(
                phone_number=phone,
                direction="outbound",
                intent="onboarding",
                action="Profile creation failed",
                success=False,
                error=str(created.error) if created.error else None,
            )
            result.update(status="error", action="registration_failed")
            return result

        profile = created.data
        await self.onboarding.start(profile.id, message.from_phone)
        self.db.commit()
        self._log_onboarding_message(profile.id, message)

        self._record(
            phone_number=phone,
            user_id=str(profile.id),
            direction="outbound",
            message_body="Welcome message with project type buttons",
            intent="onboarding",
            action="Started onboarding",
            success=True,
        )
        result.update(action="registered", user_id=str(profile.id))
        return result

    def _log_onboarding_message(self, user_id: UUID, message: InboundMessage) -> None:
        self.repo.log_whatsapp_message(
            MessageDirection.INBOUND,
            message.text or None,
            user_id=user_id,
            whatsapp_message_id=message.message_id,
            media_url=message.media_url,
            intent="onboarding",
            processed=True,
            processed_at=utcnow(),
        )

    # =========================================================================
    # Intent flow
    # =========================================================================

    async def _process(
        self,
        profile: Profile,
        message: InboundMessage,
        result: dict[str, Any],
        request_id: str,
        started: float,
    ) -> dict[str, Any]:
        phone = message.phone_number
        user_id = str(profile.id)

        logged = self.repo.log_whatsapp_message(
            MessageDirection.INBOUND,
            message.text or None,
            user_id=profile.id,
            whatsapp_message_id=message.message_id,
            media_url=message.media_url,
            intent="pending",
        )
        row_id = logged.data.id if logged.data else None

        parsed = parse_intent(message.text, message.media_url)
        self._record(
            phone_number=phone,
            user_id=user_id,
            direction="inbound",
            message_body=message.text,
            intent=parsed.intent.value,
            confidence=parsed.confidence,
            action="Intent parsed",
            success=True,
            metadata={
                "request_id": request_id,
                "parsed": {
                    "amount": float(parsed.amount) if parsed.amount is not None else None,
                    "description": parsed.description,
                    "title": parsed.title,
                },
            },
        )
        if row_id:
            self.repo.set_whatsapp_message_intent(row_id, parsed.intent.value)

        handler_error: str | None = None
        success = True
        if not is_valid_intent(parsed):
            reply = replies.help_text(self.dashboard_url)
            action = "Sent help message"
            intent_label = Intent.UNKNOWN.value
        elif not meets_confidence_threshold(parsed):
            reply = replies.help_text(self.dashboard_url)
            action = "Sent help message (low confidence)"
            intent_label = Intent.UNKNOWN.value
        else:
            action = f"Handled {parsed.intent.value}"
            intent_label = parsed.intent.value
            try:
                reply = self.dispatch(profile, parsed, message)
                self.db.commit()
            except (SQLAlchemyError, DataAccessError) as e:
                self.db.rollback()
                logger.error(
                    f"Handler {parsed.intent.value} failed: {e}",
                    extra={"user_id": user_id, "request_id": request_id},
                )
                handler_error = str(e)
                success = False
                reply = replies.handler_failed(parsed.intent, self.dashboard_url)
            except Exception as e:
                self.db.rollback()
                logger.exception(
                    f"Unexpected handler error: {e}",
                    extra={"user_id": user_id, "request_id": request_id},
                )
                handler_error = str(e) or type(e).__name__
                success = False
                reply = replies.processing_failed(self.dashboard_url)

        send = await self.provider.send_text(message.from_phone, reply)
        if not send.success:
            logger.error(f"Failed to send reply: {send.error_message}", extra={"to": phone})
            handler_error = handler_error or send.error_message or "Failed to send WhatsApp message"

        self._record(
            phone_number=phone,
            user_id=user_id,
            direction="outbound",
            message_body=reply,
            intent=intent_label,
            confidence=parsed.confidence,
            action=action,
            success=success and send.success,
            error=handler_error,
            metadata={
                "request_id": request_id,
                "message_sid": send.message_id,
                "processing_ms": int((time.monotonic() - started) * 1000),
            },
        )

        if row_id:
            self.repo.update_whatsapp_message_status(row_id, True, handler_error)
        self.repo.log_whatsapp_message(
            MessageDirection.OUTBOUND,
            reply,
            user_id=profile.id,
            whatsapp_message_id=send.message_id,
            intent="reply",
            processed=send.success,
            error_message=handler_error,
            processed_at=utcnow(),
        )
        self.repo.update_user_last_active(profile.id)

        result.update(
            action=action,
            intent=parsed.intent.value,
            reply=reply,
            sent=send.success,
            error=handler_error,
        )
        return result

    def dispatch(self, profile: Profile, parsed: ParsedIntent, message: InboundMessage) -> str:
        """
        Run the handler for a valid, confident intent and return the reply text.

        Raises:
            SQLAlchemyError, DataAccessError: on database failure
        """
        try:
            project = self._default_project(profile.id)
            if parsed.intent == Intent.LOG_EXPENSE:
                return self.handle_log_expense(profile, project, parsed, message)
            if parsed.intent == Intent.CREATE_TASK:
                return self.handle_create_task(profile, project, parsed)
            if parsed.intent == Intent.SET_BUDGET:
                return self.handle_set_budget(project, parsed)
            if parsed.intent == Intent.QUERY_EXPENSES:
                return self.handle_query_expenses(profile, project)
            if parsed.intent == Intent.LOG_IMAGE:
                return self.handle_log_image(profile, project, parsed, message)
        except NoActiveProject:
            return replies.no_active_project(self.dashboard_url)
        return replies.help_text(self.dashboard_url)

    def _default_project(self, user_id: UUID) -> Project:
        found = self.repo.get_user_default_project(user_id)
        if found.error:
            raise found.error
        if found.data is None:
            raise NoActiveProject(str(user_id))
        return found.data

    # =========================================================================
    # Intent handlers
    # =========================================================================

    def handle_log_expense(
        self,
        profile: Profile,
        project: Project,
        parsed: ParsedIntent,
        message: InboundMessage,
    ) -> str:
        description = parsed.description or "Expense"
        currency = parsed.currency or profile.default_currency or "UGX"

        expense = self.repo.create_expense(
            user_id=profile.id,
            project_id=project.id,
            description=description,
            amount=parsed.amount,
            currency=currency,
            category_id=self.repo.find_matching_category(profile.id, description),
        )
        if parsed.media_url:
            self._store_image(profile, project, parsed.media_url, description, message, expense.id)

        total = self.repo.calculate_project_total(project.id)
        today = self.repo.calculate_spent_since(profile.id, project.id, utcnow().date())
        budget = project.budget_amount or 0
        logger.info(
            f"Expense created: {expense.id}",
            extra={"user_id": str(profile.id), "project_id": str(project.id)},
        )
        return replies.expense_logged(
            description=description,
            amount=parsed.amount,
            currency=currency,
            project_name=project.name,
            today_total=today,
            remaining=budget - total,
            used_percent=replies.percent_used(total, project.budget_amount),
        )

    def handle_create_task(self, profile: Profile, project: Project, parsed: ParsedIntent) -> str:
        priority = parsed.priority or TaskPriority.MEDIUM.value
        task = self.repo.create_task(
            user_id=profile.id,
            project_id=project.id,
            title=parsed.title or "Task",
            description=parsed.description,
            priority=priority,
        )
        pending = self.repo.count_pending_tasks(profile.id, project.id)
        logger.info(f"Task created: {task.id}", extra={"user_id": str(profile.id)})
        return replies.task_added(task.title, project.name, priority, pending)

    def handle_set_budget(self, project: Project, parsed: ParsedIntent) -> str:
        self.repo.update_project_budget(project, parsed.amount)
        spent = self.repo.calculate_project_total(project.id)
        logger.info(f"Budget updated for project: {project.id}")
        return replies.budget_updated(
            project_name=project.name,
            budget=parsed.amount,
            spent=spent,
            remaining=parsed.amount - spent,
            used_percent=replies.percent_used(spent, parsed.amount),
        )

    def handle_query_expenses(self, profile: Profile, project: Project) -> str:
        total = self.repo.calculate_project_total(project.id)
        budget = project.budget_amount or 0
        return replies.expense_report(
            project_name=project.name,
            budget=budget,
            spent=total,
            remaining=budget - total,
            used_percent=replies.percent_used(total, project.budget_amount),
            expense_count=self.repo.count_expenses(profile.id, project.id),
            top_categories=self.repo.top_categories(profile.id, project.id),
        )

    def handle_log_image(
        self,
        profile: Profile,
        project: Project,
        parsed: ParsedIntent,
        message: InboundMessage,
    ) -> str:
        image = self._store_image(profile, project, parsed.media_url, parsed.caption, message)
        logger.info(f"Image created: {image.id}", extra={"user_id": str(profile.id)})
        return replies.image_received(parsed.caption, project.name)

    def _store_image(
        self,
        profile: Profile,
        project: Project,
        media_url: str,
        caption: str | None,
        message: InboundMessage,
        expense_id: UUID | None = None,
    ):
        return self.repo.create_image(
            user_id=profile.id,
            project_id=project.id,
            storage_path=media_url,
            file_name=media_url.rstrip("/").rsplit("/", 1)[-1] or DEFAULT_IMAGE_NAME,
            caption=caption or None,
            mime_type=message.media_content_type or DEFAULT_IMAGE_TYPE,
            expense_id=expense_id,
        )
