"""
WhatsApp Reply Templates

Text of every message the bot sends. Formatting uses WhatsApp markup
(*bold*) and the same emoji the dashboard uses.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence

from jengatrack.messaging.intent_parser import Intent

Number = Decimal | int | float


def format_number(amount: Number) -> str:
    """Group thousands with commas, keeping up to two decimals ("1,234.5")."""
    value = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    text = f"{value:,.2f}"
    return text.rstrip("0").rstrip(".") if "." in text else text


def format_amount(amount: Number, currency: str = "UGX") -> str:
    """Format an amount as "UGX 500,000"."""
    return f"{currency} {format_number(amount)}"


def percent_used(spent: Number, budget: Number | None) -> float:
    """Share of the budget spent, 0.0 when there is no budget."""
    if not budget:
        return 0.0
    return float(Decimal(str(spent)) / Decimal(str(budget)) * 100)


# =============================================================================
# Intent replies
# =============================================================================


def expense_logged(
    description: str,
    amount: Number,
    currency: str,
    project_name: str,
    today_total: Number,
    remaining: Number,
    used_percent: float,
) -> str:
    return (
        "✅ *Expense Logged*\n\n"
        f"📝 *{description}*\n"
        f"💰 *{format_amount(amount, currency)}*\n"
        f"📊 Project: {project_name}\n\n"
        f"📈 *Today's Total:* {format_amount(today_total)}\n"
        f"💵 *Remaining Budget:* {format_amount(remaining)}\n"
        f"📊 *Budget Used:* {used_percent:.1f}%"
    )


def task_added(title: str, project_name: str, priority: str, pending_count: int) -> str:
    return (
        "✅ *Task Added*\n\n"
        f"📋 *{title}*\n"
        f"📊 Project: {project_name}\n"
        f"⚡ Priority: {priority}\n"
        "📝 Status: Pending\n\n"
        f"📌 You have *{pending_count}* pending tasks"
    )


def budget_updated(
    project_name: str,
    budget: Number,
    spent: Number,
    remaining: Number,
    used_percent: float,
) -> str:
    return (
        "✅ *Budget Updated*\n\n"
        f"📊 Project: {project_name}\n"
        f"💰 *New Budget:* {format_amount(budget)}\n"
        f"💵 *Already Spent:* {format_amount(spent)}\n"
        f"💸 *Remaining:* {format_amount(remaining)}\n"
        f"📊 *Used:* {used_percent:.1f}%"
    )


def expense_report(
    project_name: str,
    budget: Number,
    spent: Number,
    remaining: Number,
    used_percent: float,
    expense_count: int,
    top_categories: Sequence[tuple[str | None, Number]],
) -> str:
    """
    Spending summary for a project.

    Adds an over-budget warning when remaining is negative, or a usage
    warning from 80% of the budget.
    """
    lines = [
        f"📊 *{project_name} - Expense Report*\n",
        f"💰 *Budget:* {format_amount(budget)}",
        f"💵 *Spent:* {format_amount(spent)} ({used_percent:.1f}%)",
        f"💸 *Remaining:* {format_amount(remaining)}",
        f"📝 *Total Expenses:* {expense_count}\n",
    ]

    if top_categories:
        lines.append("🔝 *Top Categories:*")
        for index, (name, total) in enumerate(top_categories, start=1):
            lines.append(f"{index}. {name or 'Uncategorized'}: {format_amount(total)}")

    message = "\n".join(lines)
    if Decimal(str(remaining)) < 0:
        over = abs(Decimal(str(remaining)))
        message += f"\n\n⚠️ *Warning:* You're over budget by {format_amount(over)}!"
    elif used_percent >= 80:
        message += f"\n\n⚠️ *Warning:* You've used {used_percent:.1f}% of your budget."
    return message


def image_received(caption: str | None, project_name: str) -> str:
    return (
        "✅ *Image Received*\n\n"
        f"📸 {caption or 'No caption provided'}\n"
        f"📊 Project: {project_name}\n\n"
        "💡 *Tip:* Send an expense amount to link this image to an expense.\n"
        'Example: "spent 50000 on cement"'
    )


def help_text(dashboard_url: str) -> str:
    return (
        "🤖 *I didn't quite understand that.*\n\n"
        "Here's what I can help with:\n\n"
        "💰 *Log Expenses:*\n"
        '"spent 500000 on cement"\n'
        '"paid 200000 for bricks"\n'
        '"nimaze 300 ku sand" (Luganda)\n\n'
        "📋 *Create Tasks:*\n"
        '"task: inspect foundation"\n'
        '"todo: buy materials"\n\n'
        "💵 *Set Budget:*\n"
        '"set budget 5000000"\n\n'
        "📊 *Check Expenses:*\n"
        '"how much did I spend?"\n'
        '"show expenses"\n'
        '"ssente zmeka" (Luganda)\n\n'
        f"Need help? Visit {dashboard_url}"
    )


def no_active_project(dashboard_url: str) -> str:
    return (
        "❌ No active project found.\n\n"
        f"Please create a project in the dashboard first:\n{dashboard_url}"
    )


FAILURE_ACTIONS: dict[Intent, str] = {
    Intent.LOG_EXPENSE: "log expense",
    Intent.CREATE_TASK: "create task",
    Intent.SET_BUDGET: "set budget",
    Intent.QUERY_EXPENSES: "retrieve expenses",
    Intent.LOG_IMAGE: "save image",
}


def handler_failed(intent: Intent, dashboard_url: str) -> str:
    action = FAILURE_ACTIONS.get(intent)
    if action is None:
        return processing_failed(dashboard_url)
    return f"❌ Failed to {action}. Please try again or contact support at {dashboard_url}"


def processing_failed(dashboard_url: str) -> str:
    return (
        "❌ Sorry, something went wrong processing your request. "
        f"Please try again or contact support at {dashboard_url}"
    )


def registration_failed(dashboard_url: str) -> str:
    return (
        "Sorry, we encountered an error. "
        f"Please try again later or contact support at {dashboard_url}"
    )


# =============================================================================
# Onboarding
# =============================================================================


def onboarding_welcome(user_name: str | None = None) -> str:
    greeting = f"Hey {user_name}! 👋" if user_name else "Hey! 👋"
    return (
        f"{greeting} Welcome to JengaTrack 🚀\n\n"
        "Ready to create your first project?\n\n"
        "What kind of project is this?"
    )


def onboarding_location(first_time: bool = True) -> str:
    prefix = "Cool! " if first_time else ""
    return (
        f"{prefix}Where's the site? (e.g., Kampala Road, Entebbe, or even plot number)\n\n"
        "Just type it – or tap Skip"
    )


def onboarding_start_date(first_time: bool = True) -> str:
    prefix = "Nice! " if first_time else ""
    return f"{prefix}Rough start date?\n\n(Type like: Today, 15 Feb 2026, or skip for now)"


def onboarding_budget(first_time: bool = True) -> str:
    prefix = "Almost done! " if first_time else ""
    return (
        f"{prefix}Any rough total budget? (UGX – e.g., 150,000,000 or skip)\n\n"
        "This helps us set up your budget tracker right away."
    )


def onboarding_confirmation(
    type_label: str,
    location: str | None,
    start_date: str | None,
    budget: Number | None,
) -> str:
    budget_text = f"{format_number(budget)} UGX" if budget else "TBD"
    return (
        "Perfect! Here's what we have:\n\n"
        f"• Project: {type_label} in {location or 'TBD'}\n"
        f"• Started around: {start_date or 'TBD'}\n"
        f"• Budget: {budget_text}\n\n"
        "Looks good?"
    )


def onboarding_project_created(dashboard_url: str, project_id: str) -> str:
    return (
        "Project created! 🎉 Your dashboard is ready on the web "
        f"(link: {dashboard_url}/dashboard?project={project_id}).\n\n"
        "Now the fun part: Just chat updates here anytime (e.g., 'Used 50 bags cement', "
        "'Foundation 80% done', or send site photos). I'll organize everything automatically.\n\n"
        "Quick tips:\n"
        "• Text 'help' anytime\n"
        "• Invite team: share this number\n\n"
        "What would you like to do next?"
    )


def onboarding_later(dashboard_url: str) -> str:
    return (
        f"No problem! You can add more details later from your dashboard: {dashboard_url}/dashboard\n\n"
        'For now, just send me updates anytime (e.g., "Used 50 bags cement" or "Paid workers 2M today").'
    )
