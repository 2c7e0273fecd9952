"""
Tests for the WhatsApp onboarding flow.
"""

import asyncio
from decimal import Decimal

import pytest

from jengatrack.messaging.onboarding import (
    OnboardingFlow,
    OnboardingState,
    is_skip,
    parse_budget,
    project_name_for,
)

DASHBOARD_URL = "https://jengatrack.app"


class TestHelpers:
    """Tests for onboarding helpers."""

    def test_is_skip(self):
        assert is_skip("Skip for now") is True
        assert is_skip("Entebbe") is False

    def test_parse_budget(self):
        assert parse_budget("about 150,000,000") == Decimal("150000000")
        assert parse_budget("skip") is None
        assert parse_budget("not sure") is None

    def test_project_name(self):
        assert project_name_for({"project_type": "btn_commercial", "location": "Jinja"}) == (
            "Commercial building - Jinja"
        )
        assert project_name_for({"project_type": "btn_other"}) == "Construction Project"


class TestOnboardingFlow:
    """Tests for the onboarding state machine."""

    @pytest.fixture
    def flow(self, repo, stub_provider):
        return OnboardingFlow(repo, stub_provider, DASHBOARD_URL)

    def run(self, flow, profile, text):
        return asyncio.run(flow.handle(profile.id, "whatsapp:" + profile.whatsapp_number, text))

    def test_start_sends_project_type_buttons(self, flow, repo, stub_provider, profile):
        """Test starting onboarding offers the three project types."""
        asyncio.run(flow.start(profile.id, profile.whatsapp_number))

        sent = stub_provider.sent_messages[-1]
        assert sent["type"] == "buttons"
        assert [b["id"] for b in sent["buttons"]] == [
            "btn_residential",
            "btn_commercial",
            "btn_other",
        ]
        state, _data, _completed = repo.get_onboarding(profile.id)
        assert state == OnboardingState.AWAITING_PROJECT_TYPE.value

    def test_full_flow_creates_project(self, flow, repo, stub_provider, profile):
        """Test walking every step creates a named, budgeted project."""
        asyncio.run(flow.start(profile.id, profile.whatsapp_number))

        assert self.run(flow, profile, "1") is True
        assert "Where's the site?" in stub_provider.last_text

        assert self.run(flow, profile, "Entebbe") is True
        assert "Rough start date?" in stub_provider.last_text

        assert self.run(flow, profile, "Today") is True
        assert "rough total budget" in stub_provider.last_text

        assert self.run(flow, profile, "150,000,000") is True
        confirmation = stub_provider.last_text
        assert "Residential home in Entebbe" in confirmation
        assert "150,000,000 UGX" in confirmation

        assert self.run(flow, profile, "yes") is True
        assert "Project created!" in stub_provider.last_text

        project = repo.get_user_default_project(profile.id).data
        assert project.name == "Residential home - Entebbe"
        assert project.budget_amount == Decimal("150000000")

        state, _data, completed_at = repo.get_onboarding(profile.id)
        assert state == OnboardingState.COMPLETED.value
        assert completed_at is not None

    def test_skips_leave_defaults(self, flow, repo, stub_provider, profile):
        """Test skipping every question still reaches the confirmation."""
        asyncio.run(flow.start(profile.id, profile.whatsapp_number))
        for text in ("skip", "skip", "skip", "skip"):
            self.run(flow, profile, text)

        assert "Other in TBD" in stub_provider.last_text
        assert "Budget: TBD" in stub_provider.last_text

        self.run(flow, profile, "1")
        project = repo.get_user_default_project(profile.id).data
        assert project.name == "Construction Project"
        assert project.budget_amount == Decimal("0")

    def test_later_completes_without_project(self, flow, repo, stub_provider, profile):
        asyncio.run(flow.start(profile.id, profile.whatsapp_number))
        for text in ("2", "Jinja", "March", "skip"):
            self.run(flow, profile, text)

        assert self.run(flow, profile, "3") is True
        assert "No problem!" in stub_provider.last_text
        assert repo.has_projects(profile.id) is False
        assert repo.get_onboarding(profile.id)[0] == OnboardingState.COMPLETED.value

    def test_unrecognized_confirmation_reprompts(self, flow, repo, stub_provider, profile):
        asyncio.run(flow.start(profile.id, profile.whatsapp_number))
        for text in ("1", "Entebbe", "Today", "skip"):
            self.run(flow, profile, text)
        stub_provider.clear()

        assert self.run(flow, profile, "hmm") is True
        assert stub_provider.sent_messages[-1]["type"] == "buttons"
        assert "Looks good?" in stub_provider.last_text
        assert repo.get_onboarding(profile.id)[0] == OnboardingState.CONFIRMATION.value

    def test_no_state_starts_flow(self, flow, repo, profile):
        assert self.run(flow, profile, "hello") is True
        assert repo.get_onboarding(profile.id)[0] == OnboardingState.AWAITING_PROJECT_TYPE.value

    def test_completed_is_not_consumed(self, flow, repo, profile):
        """Test messages after onboarding go to the intent flow."""
        repo.update_onboarding(profile.id, OnboardingState.COMPLETED.value)
        assert self.run(flow, profile, "Spent 500 on sand") is False
