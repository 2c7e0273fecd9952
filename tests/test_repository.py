"""
Tests for the data-access repository.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from jengatrack.storage.models import (
    ExpenseCategory,
    MessageDirection,
    ProjectStatus,
    WhatsAppMessage,
    utcnow,
)
from jengatrack.storage.repository import (
    DataAccessError,
    JengaTrackRepository,
    normalize_phone,
)


class TestNormalizePhone:
    """Tests for phone normalization."""

    def test_prepends_plus(self):
        assert normalize_phone("256700000001") == "+256700000001"

    def test_trims_whitespace(self):
        assert normalize_phone("  +256700000001 ") == "+256700000001"

    def test_idempotent(self):
        once = normalize_phone("256700000001")
        assert normalize_phone(once) == once


class TestProfiles:
    """Tests for profile lookups."""

    def test_lookup_unknown_number(self, repo):
        """Test a missing profile is a successful empty result."""
        result = repo.get_user_by_whatsapp("+256799999999")
        assert result.ok
        assert result.data is None
        assert result.error is None

    def test_create_and_lookup_without_plus(self, repo):
        """Test lookups normalize the number before querying."""
        created = repo.create_user_profile("256700000002")
        assert created.ok
        assert created.data.whatsapp_number == "+256700000002"
        assert created.data.full_name == "User 0002"
        assert created.data.default_currency == "UGX"

        found = repo.get_user_by_whatsapp("256700000002")
        assert found.data.id == created.data.id

    def test_soft_deleted_profile_not_found(self, repo, db_session, profile, sample_phone):
        profile.deleted_at = utcnow()
        db_session.commit()

        assert repo.get_user_by_whatsapp(sample_phone).data is None

    def test_update_last_active(self, repo, db_session, profile):
        assert profile.last_active_at is None
        assert repo.update_user_last_active(profile.id).ok
        db_session.refresh(profile)
        assert profile.last_active_at is not None

    def test_database_failure_is_wrapped(self):
        """Test driver errors come back as DataAccessError, not exceptions."""
        engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        session = sessionmaker(bind=engine)()
        try:
            result = JengaTrackRepository(session).get_user_by_whatsapp("+256700000001")
        finally:
            session.close()
            engine.dispose()

        assert not result.ok
        assert result.data is None
        assert isinstance(result.error, DataAccessError)
        assert result.error.original is not None


class TestProjects:
    """Tests for project lookups and summaries."""

    def test_no_project(self, repo, profile):
        result = repo.get_user_default_project(profile.id)
        assert result.ok
        assert result.data is None

    def test_default_project(self, repo, profile, project):
        assert repo.get_user_default_project(profile.id).data.id == project.id

    def test_paused_and_deleted_projects_excluded(self, repo, db_session, profile):
        """Test only active, non-deleted projects are returned."""
        repo.create_project(profile.id, "Paused", status=ProjectStatus.PAUSED)
        deleted = repo.create_project(profile.id, "Deleted")
        deleted.deleted_at = utcnow()
        db_session.commit()

        result = repo.get_user_default_project(profile.id)
        assert result.ok
        assert result.data is None
        assert repo.has_projects(profile.id) is True

    def test_most_recently_updated_project(self, repo, db_session, profile, project):
        newer = repo.create_project(profile.id, "Newer")
        newer.updated_at = project.updated_at + timedelta(minutes=5)
        db_session.commit()

        assert repo.get_user_default_project(profile.id).data.id == newer.id

    def test_project_summary(self, repo, db_session, profile, project):
        """Test the summary totals only non-deleted expenses."""
        repo.create_expense(profile.id, project.id, "cement", Decimal("250000"))
        repo.create_expense(profile.id, project.id, "sand", Decimal("150000"))
        removed = repo.create_expense(profile.id, project.id, "typo", Decimal("999999"))
        removed.deleted_at = utcnow()
        db_session.commit()

        result = repo.get_project_summary(project.id)
        assert result.ok
        assert result.data == {
            "budget": Decimal("1000000"),
            "total_spent": Decimal("400000"),
            "remaining": Decimal("600000"),
            "expense_count": 2,
        }

    def test_project_summary_without_expenses(self, repo, project):
        data = repo.get_project_summary(project.id).data
        assert data["total_spent"] == Decimal("0")
        assert data["expense_count"] == 0
        assert data["remaining"] == Decimal("1000000")

    def test_project_summary_unknown_project(self, repo, profile):
        from uuid import uuid4

        result = repo.get_project_summary(uuid4())
        assert result.ok
        assert result.data is None


class TestOnboardingState:
    """Tests for onboarding progress storage."""

    def test_update_merges_and_drops_none(self, repo, db_session, profile):
        repo.update_onboarding(profile.id, "awaiting_location", {"project_type": "btn_other"})
        repo.update_onboarding(profile.id, "awaiting_start_date", {"location": "Entebbe"})
        repo.update_onboarding(profile.id, "awaiting_budget", {"location": None})
        db_session.commit()

        state, data, completed_at = repo.get_onboarding(profile.id)
        assert state == "awaiting_budget"
        assert data == {"project_type": "btn_other"}
        assert completed_at is None

    def test_completed_stamps_time(self, repo, profile):
        repo.update_onboarding(profile.id, "completed")
        _state, _data, completed_at = repo.get_onboarding(profile.id)
        assert completed_at is not None


class TestExpensesAndTasks:
    """Tests for expense and task queries."""

    def test_find_matching_category(self, repo, db_session, profile):
        materials = ExpenseCategory(user_id=profile.id, name="Materials")
        labor = ExpenseCategory(user_id=profile.id, name="Labor")
        db_session.add_all([materials, labor])
        db_session.commit()

        assert repo.find_matching_category(profile.id, "50 bags of Cement") == materials.id
        assert repo.find_matching_category(profile.id, "paid the mason") == labor.id
        assert repo.find_matching_category(profile.id, "lunch") is None

    def test_spent_since_excludes_older_expenses(self, repo, db_session, profile, project):
        today = utcnow().date()
        repo.create_expense(profile.id, project.id, "cement", Decimal("100"))
        repo.create_expense(
            profile.id, project.id, "sand", Decimal("50"), expense_date=today - timedelta(days=3)
        )
        db_session.commit()

        assert repo.calculate_spent_since(profile.id, project.id, today) == Decimal("100")
        assert repo.calculate_project_total(project.id) == Decimal("150")
        assert repo.count_expenses(profile.id, project.id) == 2

    def test_top_categories(self, repo, db_session, profile, project):
        materials = ExpenseCategory(user_id=profile.id, name="Materials")
        db_session.add(materials)
        db_session.flush()
        repo.create_expense(profile.id, project.id, "cement", Decimal("300"), category_id=materials.id)
        repo.create_expense(profile.id, project.id, "lunch", Decimal("100"))
        db_session.commit()

        assert repo.top_categories(profile.id, project.id) == [
            ("Materials", Decimal("300")),
            (None, Decimal("100")),
        ]

    def test_task_counts(self, repo, db_session, profile, project):
        repo.create_task(profile.id, project.id, "inspect foundation")
        done = repo.create_task(profile.id, project.id, "order sand")
        done.status = "completed"
        started = repo.create_task(profile.id, project.id, "paint walls")
        started.status = "in_progress"
        db_session.commit()

        assert repo.count_pending_tasks(profile.id, project.id) == 1
        assert repo.count_open_tasks(project.id) == 2


class TestMessageLog:
    """Tests for the WhatsApp message log."""

    def test_log_round_trip(self, repo, db_session, profile):
        """Test logging stamps received_at and keeps direction, body and intent."""
        result = repo.log_whatsapp_message(
            MessageDirection.INBOUND,
            "Spent 500000 on cement",
            user_id=profile.id,
            whatsapp_message_id="SM123",
            intent="pending",
        )
        assert result.ok

        stored = db_session.get(WhatsAppMessage, result.data.id)
        assert stored.direction == "inbound"
        assert stored.message_body == "Spent 500000 on cement"
        assert stored.intent == "pending"
        assert stored.received_at is not None
        assert stored.processed is False

    def test_update_status(self, repo, profile):
        logged = repo.log_whatsapp_message(MessageDirection.INBOUND, "hi", user_id=profile.id)
        updated = repo.update_whatsapp_message_status(logged.data.id, True, intent="unknown")

        assert updated.data.processed is True
        assert updated.data.processed_at is not None
        assert updated.data.intent == "unknown"
        assert updated.data.error_message is None

    def test_is_message_processed(self, repo):
        repo.log_whatsapp_message(MessageDirection.INBOUND, "hi", whatsapp_message_id="SM1")
        repo.log_whatsapp_message(MessageDirection.OUTBOUND, "hello", whatsapp_message_id="SM2")

        assert repo.is_message_processed("SM1") is True
        assert repo.is_message_processed("SM2") is False
        assert repo.is_message_processed("SM3") is False

    def test_log_ai_usage_totals_tokens(self, repo, profile):
        result = repo.log_ai_usage(
            model="gpt-4o-mini",
            prompt_tokens=120,
            completion_tokens=30,
            estimated_cost_usd=Decimal("0.000036"),
            user_id=profile.id,
            intent="log_expense",
        )
        assert result.ok
        assert result.data.total_tokens == 150

    def test_connection(self, repo):
        assert repo.test_connection() is True


@pytest.mark.parametrize("direction", ["inbound", "outbound"])
def test_direction_accepts_plain_strings(repo, direction):
    """Test the message direction may be passed as its string value."""
    result = repo.log_whatsapp_message(direction, "text")
    assert result.data.direction == direction
