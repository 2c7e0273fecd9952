"""
Dashboard Summary Service

Reads a profile's active project and turns the database summary into the
figures the dashboard cards display.
"""

import logging
from decimal import Decimal
from uuid import UUID

from jengatrack.dashboard.widgets import (
    DashboardSummary,
    ProgressScheduleSection,
    build_schedule_section,
)
from jengatrack.messaging import replies
from jengatrack.storage.repository import JengaTrackRepository

logger = logging.getLogger(__name__)


def percent_used(total_spent: Decimal, budget: Decimal | None) -> float:
    """Share of the budget spent, rounded to one decimal; 0 without a budget."""
    if budget is None or budget <= 0:
        return 0.0
    return round(replies.percent_used(total_spent, budget), 1)


class DashboardService:
    def __init__(self, repo: JengaTrackRepository):
        self.repo = repo

    def project_summary(self, project_id: UUID) -> DashboardSummary | None:
        """
        Summary of one project; None when the project does not exist.

        Raises:
            DataAccessError: If the summary query fails
        """
        result = self.repo.get_project_summary(project_id)
        if result.error:
            raise result.error
        if result.data is None:
            return None

        project = self.repo.get_project(project_id)
        data = result.data
        budget = data["budget"] or Decimal("0")
        total_spent = data["total_spent"]
        remaining = data["remaining"] if data["remaining"] is not None else budget - total_spent

        return DashboardSummary(
            budget=float(budget),
            total_spent=float(total_spent),
            remaining=float(remaining),
            percent_used=percent_used(total_spent, data["budget"]),
            expense_count=data["expense_count"],
            task_count=self.repo.count_open_tasks(project_id),
            project_name=project.name if project else "Unknown project",
            project_id=str(project_id),
        )

    def profile_summary(self, profile_id: UUID) -> DashboardSummary:
        """Summary of a profile's default project, or the empty summary."""
        result = self.repo.get_user_default_project(profile_id)
        if result.error:
            raise result.error
        if result.data is None:
            return DashboardSummary()

        summary = self.project_summary(result.data.id)
        if summary is None:
            logger.warning(
                f"Default project vanished during summary: {result.data.id}",
                extra={"user_id": str(profile_id)},
            )
            return DashboardSummary()
        return summary

    def project_schedule(self, project_id: UUID) -> ProgressScheduleSection | None:
        """Upcoming task milestones of a project; None when the project does not exist."""
        if self.repo.get_project(project_id) is None:
            return None
        result = self.repo.get_upcoming_tasks(project_id)
        if result.error:
            raise result.error
        return build_schedule_section(result.data)
