"""
Tests for dashboard widgets, summary service and API.
"""

import math
from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from jengatrack.core.db import get_db
from jengatrack.core.settings import get_settings
from jengatrack.dashboard.service import DashboardService, percent_used
from jengatrack.dashboard.widgets import (
    CircularProgress,
    DashboardSummary,
    InventoryItem,
    KpiCard,
    LinearProgress,
    MaterialsInventorySection,
    Phase,
    build_budget_cards,
    build_schedule_section,
)
from jengatrack.storage.models import ExpenseCategory
from jengatrack.webhook.main import app


class TestWidgets:
    """Tests for widget view models."""

    def test_circular_progress_geometry(self):
        ring = CircularProgress(value=50)

        assert ring.color == "#93C54E"
        assert ring.radius == 59
        assert ring.circumference == pytest.approx(2 * math.pi * 59)
        assert ring.dash_offset == pytest.approx(math.pi * 59)
        assert ring.font_size == 32
        assert ring.label == "50%"

    def test_circular_progress_custom_size(self):
        ring = CircularProgress(value=12.5, size=64, stroke_width=4)
        assert ring.radius == 30
        assert ring.label == "12.5%"

    def test_linear_progress_clamped(self):
        assert LinearProgress(value=150).value == 100
        assert LinearProgress(value=-5).value == 0

    def test_kpi_card_defaults(self):
        card = KpiCard(title="Spent", value="500,000")
        assert card.status_indicator == "none"
        assert card.value_color is None
        assert card.alert_variant == "default"
        assert card.trend_direction == "neutral"
        assert card.trend_label is None
        assert card.progress is None

    def test_kpi_card_status_and_trend(self):
        card = KpiCard(
            title="Spent",
            value=1,
            status_indicator="error",
            progress_value=120,
            trend_value=5,
            trend_direction="up",
        )
        assert card.value_color == "#E53E3E"
        assert card.trend_label == "+5%"
        assert card.trend_color == "#48BB78"
        assert card.progress.value == 100

    def test_negative_trend_label(self):
        assert KpiCard(title="t", value=1, trend_value=-3).trend_label == "-3%"

    def test_budget_cards_over_budget(self):
        summary = DashboardSummary(
            budget=1000000,
            total_spent=1200000,
            remaining=-200000,
            percent_used=120.0,
            expense_count=3,
            project_name="Kampala House",
            project_id=str(uuid4()),
        )
        widgets = build_budget_cards(summary)

        spent = widgets.cards[1]
        assert spent.status_indicator == "error"
        assert spent.alert_message == "Over budget by UGX 200,000"
        assert spent.alert_variant == "destructive"
        assert widgets.budget_ring.value == 100
        assert widgets.budget_ring.color == "#E53E3E"

    def test_budget_cards_empty_summary(self):
        widgets = build_budget_cards(DashboardSummary())

        assert widgets.cards[0].description == "No active project"
        assert widgets.cards[1].status_indicator == "none"
        assert widgets.budget_ring.label == "0%"

    def test_inventory_item_stock(self):
        item = InventoryItem(id="1", name="Cement", unit="bags", current_stock=15, total_stock=100)
        assert item.stock_percent == 15.0
        assert item.stock_status == "error"
        assert item.progress.value == 15.0

    def test_inventory_over_estimate_warns(self):
        item = InventoryItem(
            id="2",
            name="Sand",
            unit="tonnes",
            current_stock=60,
            total_stock=100,
            consumption_vs_estimate=120,
        )
        assert item.stock_status == "warning"

    def test_inventory_section_counts_low_stock(self):
        section = MaterialsInventorySection(
            items=[
                InventoryItem(id="1", name="Cement", unit="bags", current_stock=5, total_stock=100),
                InventoryItem(id="2", name="Bricks", unit="pcs", current_stock=0, total_stock=0),
                InventoryItem(id="3", name="Steel", unit="bars", current_stock=80, total_stock=100),
            ]
        )
        assert section.low_stock_count == 2
        assert MaterialsInventorySection().items == []

    def test_phase_delay_label(self):
        phase = Phase(id="p1", name="Foundation", percent_complete=40, status="delayed", days_delayed=3)
        assert phase.delay_label == "3 days behind"
        assert phase.status_color == "#E53E3E"
        assert Phase(id="p2", name="Roofing").delay_label is None

    def test_schedule_milestones_sorted_and_dated_only(self):
        tasks = [
            SimpleNamespace(id=1, title="Roofing", due_date=date(2024, 6, 1), priority="high"),
            SimpleNamespace(id=2, title="Survey", due_date=None, priority="low"),
            SimpleNamespace(id=3, title="Foundation", due_date=date(2024, 3, 1), priority=None),
        ]
        section = build_schedule_section(tasks)

        assert [m.title for m in section.upcoming_milestones] == ["Foundation", "Roofing"]
        assert section.upcoming_milestones[0].priority == "medium"
        assert section.phases == []


class TestDashboardService:
    """Tests for the summary service."""

    def test_percent_used(self):
        assert percent_used(Decimal("1"), Decimal("3")) == 33.3
        assert percent_used(Decimal("100"), Decimal("0")) == 0.0
        assert percent_used(Decimal("100"), None) == 0.0

    def test_profile_summary(self, repo, db_session, profile, project):
        repo.create_expense(profile.id, project.id, "cement", Decimal("250000"))
        repo.create_task(profile.id, project.id, "inspect foundation")
        db_session.commit()

        summary = DashboardService(repo).profile_summary(profile.id)

        assert summary.project_name == "Kampala House"
        assert summary.project_id == str(project.id)
        assert summary.budget == 1000000
        assert summary.total_spent == 250000
        assert summary.remaining == 750000
        assert summary.percent_used == 25.0
        assert summary.expense_count == 1
        assert summary.task_count == 1

    def test_profile_without_project(self, repo, profile):
        summary = DashboardService(repo).profile_summary(profile.id)
        assert summary.project_name == "No active project"
        assert summary.project_id is None
        assert summary.budget == 0

    def test_unknown_project(self, repo):
        assert DashboardService(repo).project_summary(uuid4()) is None


class TestDashboardAPI:
    """Tests for the dashboard endpoints."""

    @pytest.fixture
    def client(self, db_session):
        def override_db():
            yield db_session

        app.dependency_overrides[get_db] = override_db
        yield TestClient(app)
        app.dependency_overrides.clear()

    @pytest.fixture
    def auth(self):
        return {"Authorization": f"Bearer {get_settings().SUPABASE_SERVICE_ROLE_KEY}"}

    def test_requires_service_role(self, client, profile):
        response = client.get("/api/dashboard/summary", params={"profile_id": str(profile.id)})
        assert response.status_code == 401

    def test_wrong_key_rejected_without_echo(self, client, profile):
        key = get_settings().SUPABASE_SERVICE_ROLE_KEY
        response = client.get(
            f"/api/profiles/{profile.id}/categories",
            headers={"Authorization": "Bearer wrong"},
        )
        assert response.status_code == 401
        assert key not in response.text

    def test_dashboard_summary(self, client, auth, profile, project):
        response = client.get(
            "/api/dashboard/summary",
            params={"profile_id": str(profile.id)},
            headers=auth,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["summary"]["project_name"] == "Kampala House"
        assert [card["title"] for card in data["cards"]] == [
            "Total Budget",
            "Total Spent",
            "Remaining",
            "Open Tasks",
        ]
        assert data["budget_ring"]["label"] == "0%"

    def test_project_summary(self, client, auth, project):
        response = client.get(f"/api/projects/{project.id}/summary", headers=auth)
        assert response.status_code == 200
        assert response.json()["remaining"] == 1000000

    def test_project_summary_not_found(self, client, auth):
        response = client.get(f"/api/projects/{uuid4()}/summary", headers=auth)
        assert response.status_code == 404

    def test_categories(self, client, auth, db_session, profile):
        db_session.add_all(
            [
                ExpenseCategory(user_id=profile.id, name="Materials", color_hex="#93C54E"),
                ExpenseCategory(user_id=profile.id, name="Labor"),
            ]
        )
        db_session.commit()

        response = client.get(f"/api/profiles/{profile.id}/categories", headers=auth)

        assert response.status_code == 200
        assert [c["name"] for c in response.json()] == ["Labor", "Materials"]

    def test_project_schedule(self, client, auth, repo, db_session, profile, project):
        task = repo.create_task(profile.id, project.id, "pour slab", priority="high")
        task.due_date = date(2024, 5, 20)
        repo.create_task(profile.id, project.id, "order sand")
        db_session.commit()

        response = client.get(f"/api/projects/{project.id}/schedule", headers=auth)

        assert response.status_code == 200
        data = response.json()
        assert data["phases"] == []
        assert data["upcoming_milestones"] == [
            {"id": str(task.id), "title": "pour slab", "due_date": "2024-05-20", "priority": "high"}
        ]

    def test_project_schedule_not_found(self, client, auth):
        response = client.get(f"/api/projects/{uuid4()}/schedule", headers=auth)
        assert response.status_code == 404
