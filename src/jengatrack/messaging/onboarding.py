"""
WhatsApp Onboarding

Button-driven first-contact flow that collects a project type, site
location, start date and budget, then creates the user's first project.

States:
    None -> awaiting_project_type -> awaiting_location -> awaiting_start_date
    -> awaiting_budget -> confirmation -> completed
"""

import logging
import re
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from jengatrack.messaging import replies
from jengatrack.messaging.intent_parser import parse_amount
from jengatrack.messaging.providers.base import Button, WhatsAppProvider, parse_button_response
from jengatrack.storage.repository import JengaTrackRepository

logger = logging.getLogger(__name__)


class OnboardingState(str, Enum):
    AWAITING_PROJECT_TYPE = "awaiting_project_type"
    AWAITING_LOCATION = "awaiting_location"
    AWAITING_START_DATE = "awaiting_start_date"
    AWAITING_BUDGET = "awaiting_budget"
    CONFIRMATION = "confirmation"
    COMPLETED = "completed"


PROJECT_TYPE_BUTTONS = [
    Button("btn_residential", "Residential home"),
    Button("btn_commercial", "Commercial building"),
    Button("btn_other", "Other / Skip for now"),
]

CONFIRMATION_BUTTONS = [
    Button("btn_confirm", "Yes – Create project! 🎉"),
    Button("btn_edit", "Edit something"),
    Button("btn_later", "Add more details later"),
]

NEXT_STEP_BUTTONS = [
    Button("btn_first_update", "Send first update now"),
    Button("btn_invite_team", "Invite team"),
    Button("btn_dashboard", "Go to dashboard"),
]

# Label shown in the confirmation summary
TYPE_LABELS = {
    "btn_residential": "Residential home",
    "btn_commercial": "Commercial building",
    "btn_other": "Other",
}

# Label used to name the created project
PROJECT_NAME_LABELS = {
    "btn_residential": "Residential home",
    "btn_commercial": "Commercial building",
}
DEFAULT_PROJECT_NAME = "Construction Project"

BUDGET_RE = re.compile(r"(\d+(?:,\d{3})*(?:\.\d{2})?)")


def is_skip(text: str) -> bool:
    return "skip" in text.lower()


def parse_budget(text: str) -> Decimal | None:
    """Extract a budget amount from free text; None for "skip" or no number."""
    if is_skip(text):
        return None
    match = BUDGET_RE.search(text)
    if not match:
        return None
    return parse_amount(match.group(1))


def project_name_for(data: dict[str, Any]) -> str:
    label = PROJECT_NAME_LABELS.get(data.get("project_type"), DEFAULT_PROJECT_NAME)
    location = data.get("location")
    return f"{label} - {location}" if location else label


class OnboardingFlow:
    """
    Drives one user through onboarding.

    Database writes are flushed, not committed; the caller owns the
    transaction.
    """

    def __init__(
        self,
        repo: JengaTrackRepository,
        provider: WhatsAppProvider,
        dashboard_url: str,
    ):
        self.repo = repo
        self.provider = provider
        self.dashboard_url = dashboard_url

    async def start(self, user_id: UUID, to: str, user_name: str | None = None) -> None:
        """Send the welcome prompt and wait for a project type."""
        await self.provider.send_buttons(to, replies.onboarding_welcome(user_name), PROJECT_TYPE_BUTTONS)
        self.repo.update_onboarding(user_id, OnboardingState.AWAITING_PROJECT_TYPE.value)
        logger.info("Onboarding started", extra={"user_id": str(user_id)})

    async def handle(self, user_id: UUID, to: str, message: str) -> bool:
        """
        Advance the flow with one inbound message.

        Returns:
            True if the message was consumed by onboarding, False if the user
            is already onboarded and the message should go to the intent flow.
        """
        state, data, _completed_at = self.repo.get_onboarding(user_id)
        text = message.strip()

        logger.debug(
            f"Onboarding step in state {state}",
            extra={"user_id": str(user_id), "state": state},
        )

        if state is None:
            await self.start(user_id, to)
            return True

        if state == OnboardingState.COMPLETED.value:
            return False

        if state == OnboardingState.AWAITING_PROJECT_TYPE.value:
            button_id = parse_button_response(text, PROJECT_TYPE_BUTTONS)
            if button_id is None and text:
                button_id = "btn_other"
            if button_id:
                self.repo.update_onboarding(
                    user_id,
                    OnboardingState.AWAITING_LOCATION.value,
                    {"project_type": button_id},
                )
                await self.provider.send_text(to, replies.onboarding_location())
                return True

        elif state == OnboardingState.AWAITING_LOCATION.value:
            if text:
                self.repo.update_onboarding(
                    user_id,
                    OnboardingState.AWAITING_START_DATE.value,
                    {"location": None if is_skip(text) else text},
                )
                await self.provider.send_text(to, replies.onboarding_start_date())
                return True

        elif state == OnboardingState.AWAITING_START_DATE.value:
            if text:
                self.repo.update_onboarding(
                    user_id,
                    OnboardingState.AWAITING_BUDGET.value,
                    {"start_date": None if is_skip(text) else text},
                )
                await self.provider.send_text(to, replies.onboarding_budget())
                return True

        elif state == OnboardingState.AWAITING_BUDGET.value:
            if text:
                budget = parse_budget(text)
                self.repo.update_onboarding(
                    user_id,
                    OnboardingState.CONFIRMATION.value,
                    {"budget": float(budget) if budget else None},
                )
                await self._send_confirmation(user_id, to)
                return True

        elif state == OnboardingState.CONFIRMATION.value:
            button_id = parse_button_response(text, CONFIRMATION_BUTTONS)
            lowered = text.lower()
            if button_id is None and ("yes" in lowered or "confirm" in lowered):
                button_id = "btn_confirm"

            if button_id == "btn_confirm":
                project_id = self.create_project(user_id)
                await self.provider.send_buttons(
                    to,
                    replies.onboarding_project_created(self.dashboard_url, str(project_id)),
                    NEXT_STEP_BUTTONS,
                )
                return True
            if button_id in ("btn_edit", "btn_later"):
                self.repo.update_onboarding(user_id, OnboardingState.COMPLETED.value)
                await self.provider.send_text(to, replies.onboarding_later(self.dashboard_url))
                return True

        await self.reprompt(user_id, to, state)
        return True

    def create_project(self, user_id: UUID) -> UUID:
        """Create the project described by the collected answers and finish onboarding."""
        _state, data, _completed_at = self.repo.get_onboarding(user_id)
        budget = data.get("budget")
        project = self.repo.create_project(
            user_id=user_id,
            name=project_name_for(data),
            description="Project created via WhatsApp onboarding",
            budget_amount=Decimal(str(budget)) if budget else Decimal("0"),
        )
        self.repo.update_onboarding(user_id, OnboardingState.COMPLETED.value)
        logger.info(
            f"Project created from onboarding: {project.id}",
            extra={"user_id": str(user_id), "project_id": str(project.id)},
        )
        return project.id

    async def reprompt(self, user_id: UUID, to: str, state: str) -> None:
        """Re-send the prompt of the current step."""
        if state == OnboardingState.AWAITING_PROJECT_TYPE.value:
            await self.provider.send_buttons(to, replies.onboarding_welcome(), PROJECT_TYPE_BUTTONS)
        elif state == OnboardingState.AWAITING_LOCATION.value:
            await self.provider.send_text(to, replies.onboarding_location(first_time=False))
        elif state == OnboardingState.AWAITING_START_DATE.value:
            await self.provider.send_text(to, replies.onboarding_start_date(first_time=False))
        elif state == OnboardingState.AWAITING_BUDGET.value:
            await self.provider.send_text(to, replies.onboarding_budget(first_time=False))
        elif state == OnboardingState.CONFIRMATION.value:
            await self._send_confirmation(user_id, to)

    async def _send_confirmation(self, user_id: UUID, to: str) -> None:
        _state, data, _completed_at = self.repo.get_onboarding(user_id)
        text = replies.onboarding_confirmation(
            type_label=TYPE_LABELS.get(data.get("project_type"), "Not specified"),
            location=data.get("location"),
            start_date=data.get("start_date"),
            budget=data.get("budget"),
        )
        await self.provider.send_buttons(to, text, CONFIRMATION_BUTTONS)
