"""
Dashboard Widget Models

Server-side view models for the dashboard widgets. Each model applies the
widget's defaults and exposes the derived drawing values, so the frontend
only renders.
"""

import math
from datetime import date
from typing import Any, Iterable, Literal

from pydantic import BaseModel, Field, computed_field, field_validator

from jengatrack.messaging.replies import format_number

StatusIndicator = Literal["success", "warning", "error", "none"]
TrendDirection = Literal["up", "down", "neutral"]
AlertVariant = Literal["default", "destructive"]

DEFAULT_PROGRESS_COLOR = "#93C54E"

STATUS_COLORS: dict[str, str] = {
    "success": "#48BB78",
    "warning": "#ECC94B",
    "error": "#E53E3E",
    "none": "currentColor",
}


class CircularProgress(BaseModel):
    """
    Ring progress indicator.

    ``value`` is a percentage (0-100); the stroke is drawn with a dash offset
    of ``circumference - value/100 * circumference``.
    """

    value: float
    color: str = DEFAULT_PROGRESS_COLOR
    size: int = 128
    stroke_width: int = 10

    @computed_field
    @property
    def radius(self) -> float:
        return (self.size - self.stroke_width) / 2

    @computed_field
    @property
    def circumference(self) -> float:
        return 2 * math.pi * self.radius

    @computed_field
    @property
    def dash_offset(self) -> float:
        return self.circumference - (self.value / 100) * self.circumference

    @computed_field
    @property
    def center(self) -> float:
        return self.size / 2

    @computed_field
    @property
    def font_size(self) -> float:
        return self.size / 4

    @computed_field
    @property
    def label(self) -> str:
        value = int(self.value) if float(self.value).is_integer() else self.value
        return f"{value}%"


class LinearProgress(BaseModel):
    """Bar progress indicator; ``value`` is clamped to 0-100."""

    value: float

    @field_validator("value")
    @classmethod
    def clamp(cls, value: float) -> float:
        return max(0.0, min(100.0, value))


class KpiCard(BaseModel):
    """Headline metric card with optional progress bar, alert and trend."""

    title: str
    value: str | float
    unit: str | None = None
    description: str | None = None
    status_indicator: StatusIndicator = "none"
    progress_value: float | None = None
    alert_message: str | None = None
    alert_variant: AlertVariant = "default"
    trend_value: float | None = None
    trend_direction: TrendDirection = "neutral"

    @computed_field
    @property
    def value_color(self) -> str | None:
        if self.status_indicator == "none":
            return None
        return STATUS_COLORS[self.status_indicator]

    @computed_field
    @property
    def trend_label(self) -> str | None:
        if self.trend_value is None:
            return None
        value = self.trend_value
        text = f"{int(value)}" if float(value).is_integer() else f"{value}"
        return f"+{text}%" if value > 0 else f"{text}%"

    @computed_field
    @property
    def trend_color(self) -> str | None:
        if self.trend_direction == "up":
            return STATUS_COLORS["success"]
        if self.trend_direction == "down":
            return STATUS_COLORS["error"]
        return None

    @computed_field
    @property
    def progress(self) -> LinearProgress | None:
        if self.progress_value is None or self.progress_value < 0:
            return None
        return LinearProgress(value=self.progress_value)


class DashboardSummary(BaseModel):
    """Budget position of a user's active project."""

    budget: float = 0
    total_spent: float = 0
    remaining: float = 0
    percent_used: float = 0
    expense_count: int = 0
    task_count: int = 0
    project_name: str = "No active project"
    project_id: str | None = None


class BudgetWidgets(BaseModel):
    summary: DashboardSummary
    cards: list[KpiCard] = Field(default_factory=list)
    budget_ring: CircularProgress


def budget_status(percent_used: float) -> StatusIndicator:
    """Traffic-light status for budget usage."""
    if percent_used > 100:
        return "error"
    if percent_used >= 80:
        return "warning"
    return "success"


def build_budget_cards(summary: DashboardSummary, currency: str = "UGX") -> BudgetWidgets:
    """Build the KPI cards and budget ring for a summary."""
    status = budget_status(summary.percent_used) if summary.project_id else "none"
    alert = None
    if summary.remaining < 0:
        alert = f"Over budget by {currency} {format_number(abs(summary.remaining))}"
    elif summary.percent_used >= 80:
        alert = f"{summary.percent_used}% of budget used"

    cards = [
        KpiCard(
            title="Total Budget",
            value=format_number(summary.budget),
            unit=currency,
            description=summary.project_name,
        ),
        KpiCard(
            title="Total Spent",
            value=format_number(summary.total_spent),
            unit=currency,
            description=f"{summary.expense_count} expenses logged",
            status_indicator=status,
            progress_value=summary.percent_used,
            alert_message=alert,
            alert_variant="destructive" if summary.remaining < 0 else "default",
        ),
        KpiCard(
            title="Remaining",
            value=format_number(summary.remaining),
            unit=currency,
            status_indicator="error" if summary.remaining < 0 else "none",
        ),
        KpiCard(
            title="Open Tasks",
            value=summary.task_count,
            description="Pending and in progress",
        ),
    ]

    ring_color = STATUS_COLORS[status] if status in ("warning", "error") else DEFAULT_PROGRESS_COLOR
    return BudgetWidgets(
        summary=summary,
        cards=cards,
        budget_ring=CircularProgress(value=min(summary.percent_used, 100), color=ring_color),
    )


# Materials inventory panel

LOW_STOCK_PERCENT = 20


class InventoryItem(BaseModel):
    """A tracked material with its stock level."""

    id: str
    name: str
    unit: str
    current_stock: float = 0
    total_stock: float = 0
    consumption_vs_estimate: float = 0

    @computed_field
    @property
    def stock_percent(self) -> float:
        if self.total_stock <= 0:
            return 0.0
        return round(self.current_stock / self.total_stock * 100, 1)

    @computed_field
    @property
    def stock_status(self) -> StatusIndicator:
        if self.stock_percent < LOW_STOCK_PERCENT:
            return "error"
        if self.consumption_vs_estimate > 100:
            return "warning"
        return "success"

    @computed_field
    @property
    def progress(self) -> LinearProgress:
        return LinearProgress(value=self.stock_percent)


class MaterialUsage(BaseModel):
    material: str
    used: float = 0
    remaining: float = 0


class MaterialsInventorySection(BaseModel):
    items: list[InventoryItem] = Field(default_factory=list)
    usage: list[MaterialUsage] = Field(default_factory=list)

    @computed_field
    @property
    def low_stock_count(self) -> int:
        return sum(1 for item in self.items if item.stock_status == "error")


# Progress and schedule panel

PhaseStatus = Literal["pending", "in-progress", "completed", "delayed"]
MilestonePriority = Literal["low", "medium", "high"]

PHASE_STATUS_INDICATORS: dict[str, StatusIndicator] = {
    "pending": "none",
    "in-progress": "warning",
    "completed": "success",
    "delayed": "error",
}


class Phase(BaseModel):
    """A construction phase and how far along it is."""

    id: str
    name: str
    percent_complete: float = 0
    status: PhaseStatus = "pending"
    days_delayed: int | None = None
    delay_reason: str | None = None

    @computed_field
    @property
    def progress(self) -> LinearProgress:
        return LinearProgress(value=self.percent_complete)

    @computed_field
    @property
    def status_color(self) -> str:
        return STATUS_COLORS[PHASE_STATUS_INDICATORS[self.status]]

    @computed_field
    @property
    def delay_label(self) -> str | None:
        if self.status != "delayed" or not self.days_delayed:
            return None
        unit = "day" if self.days_delayed == 1 else "days"
        return f"{self.days_delayed} {unit} behind"


class Milestone(BaseModel):
    id: str
    title: str
    due_date: date
    priority: MilestonePriority = "medium"


class ProgressScheduleSection(BaseModel):
    phases: list[Phase] = Field(default_factory=list)
    upcoming_milestones: list[Milestone] = Field(default_factory=list)


def build_schedule_section(
    tasks: Iterable[Any],
    phases: Iterable[Phase] = (),
) -> ProgressScheduleSection:
    """
    Build the schedule panel.

    Open tasks with a due date become the upcoming milestones, soonest first.
    Tasks without a due date are left out.
    """
    milestones = [
        Milestone(
            id=str(task.id),
            title=task.title,
            due_date=task.due_date,
            priority=task.priority or "medium",
        )
        for task in tasks
        if task.due_date is not None
    ]
    milestones.sort(key=lambda m: m.due_date)
    return ProgressScheduleSection(phases=list(phases), upcoming_milestones=milestones)
