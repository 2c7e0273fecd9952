"""Dashboard data API."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from jengatrack.core.db import get_db
from jengatrack.dashboard.deps import require_service_role
from jengatrack.dashboard.service import DashboardService
from jengatrack.dashboard.widgets import build_budget_cards
from jengatrack.storage.repository import DataAccessError, JengaTrackRepository

logger = logging.getLogger(__name__)

router = APIRouter(tags=["dashboard"], dependencies=[Depends(require_service_role)])


def get_dashboard_service(db: Session = Depends(get_db)) -> DashboardService:
    return DashboardService(JengaTrackRepository(db))


def data_error(e: DataAccessError) -> HTTPException:
    logger.error(f"Dashboard query failed: {e.message}")
    return HTTPException(status_code=503, detail="Database unavailable")


@router.get("/api/dashboard/summary")
async def dashboard_summary(
    profile_id: UUID = Query(...),
    service: DashboardService = Depends(get_dashboard_service),
):
    """Budget cards and ring for a profile's active project."""
    try:
        summary = service.profile_summary(profile_id)
    except DataAccessError as e:
        raise data_error(e)
    return build_budget_cards(summary).model_dump()


@router.get("/api/projects/{project_id}/summary")
async def project_summary(
    project_id: UUID,
    service: DashboardService = Depends(get_dashboard_service),
):
    try:
        summary = service.project_summary(project_id)
    except DataAccessError as e:
        raise data_error(e)
    if summary is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return summary.model_dump()


@router.get("/api/profiles/{profile_id}/categories")
async def profile_categories(profile_id: UUID, db: Session = Depends(get_db)):
    """Expense categories of a profile, by name."""
    result = JengaTrackRepository(db).get_user_expense_categories(profile_id)
    if result.error:
        raise data_error(result.error)
    return [
        {
            "id": str(category.id),
            "name": category.name,
            "color_hex": category.color_hex,
        }
        for category in result.data
    ]


@router.get("/api/projects/{project_id}/schedule")
async def project_schedule(
    project_id: UUID,
    service: DashboardService = Depends(get_dashboard_service),
):
    """Schedule panel: upcoming task milestones."""
    try:
        schedule = service.project_schedule(project_id)
    except DataAccessError as e:
        raise data_error(e)
    if schedule is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return schedule.model_dump(mode="json")
