"""
JengaTrack Dashboard

Summary service, widget view models and the dashboard data API.
"""

from jengatrack.dashboard.service import DashboardService
from jengatrack.dashboard.widgets import (
    CircularProgress,
    DashboardSummary,
    InventoryItem,
    KpiCard,
    LinearProgress,
    MaterialsInventorySection,
    Milestone,
    Phase,
    ProgressScheduleSection,
    build_budget_cards,
    build_schedule_section,
)

__all__ = [
    "CircularProgress",
    "DashboardService",
    "DashboardSummary",
    "InventoryItem",
    "KpiCard",
    "LinearProgress",
    "MaterialsInventorySection",
    "Milestone",
    "Phase",
    "ProgressScheduleSection",
    "build_budget_cards",
    "build_schedule_section",
]
