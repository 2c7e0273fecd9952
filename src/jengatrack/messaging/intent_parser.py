"""
WhatsApp Intent Parser

Rule-based parser that classifies a WhatsApp message and extracts its data.
English and Luganda phrasings are supported.

Intents:
- log_expense: amount and description
- create_task: task title (and priority)
- set_budget: budget amount
- query_expenses: user asking about spending
- log_image: photo with optional caption
- unknown: nothing matched
"""

import logging
import re
from dataclasses import asdict, dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class Intent(str, Enum):
    """Message intents understood by the webhook."""

    LOG_EXPENSE = "log_expense"
    CREATE_TASK = "create_task"
    SET_BUDGET = "set_budget"
    QUERY_EXPENSES = "query_expenses"
    LOG_IMAGE = "log_image"
    UNKNOWN = "unknown"


DEFAULT_CURRENCY = "UGX"
MAX_DESCRIPTION_LENGTH = 255

# "1000", "1,000", "1000.50", "1,000.50"
AMOUNT = r"(\d+(?:,\d{3})*(?:\.\d{2})?)"

CURRENCY_RE = re.compile(r"\b(UGX|USH|KSH|TZS|USD|EUR|GBP)\b", re.IGNORECASE)
NUMBER_RE = re.compile(AMOUNT)
LEADING_PREPOSITION_RE = re.compile(r"^(?:for|on|ku|pa)\s+", re.IGNORECASE)

CONFIDENCE_THRESHOLDS: dict[Intent, float] = {
    Intent.LOG_EXPENSE: 0.70,
    Intent.CREATE_TASK: 0.85,
    Intent.SET_BUDGET: 0.90,
    Intent.QUERY_EXPENSES: 0.80,
    Intent.LOG_IMAGE: 0.85,
}
DEFAULT_CONFIDENCE_THRESHOLD = 0.50


@dataclass
class ParsedIntent:
    """Result of parsing one message."""

    intent: Intent
    confidence: float
    original_message: str

    # Expense / budget
    amount: Decimal | None = None
    description: str | None = None
    currency: str | None = None

    # Task
    title: str | None = None
    priority: str | None = None

    # Image
    caption: str | None = None
    media_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["intent"] = self.intent.value
        if self.amount is not None:
            data["amount"] = float(self.amount)
        return data


@dataclass(frozen=True)
class ExpensePattern:
    """An expense phrasing: which groups hold the amount and description."""

    regex: re.Pattern
    amount_group: int
    description_group: int
    confidence: float
    default_description: str | None = None


@dataclass(frozen=True)
class TaskPattern:
    regex: re.Pattern
    confidence: float
    priority: str | None = None


@dataclass(frozen=True)
class BudgetPattern:
    regex: re.Pattern
    confidence: float


def _compile(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


# Must be tried before BARE_EXPENSE_PATTERNS ("nimaze 300 ku sand")
VERB_EXPENSE_PATTERNS: list[ExpensePattern] = [
    # "spent 500 on cement", "paid 200 for bricks"
    ExpensePattern(_compile(rf"(?:spent|paid|used)\s+{AMOUNT}\s+(?:on|for)\s+(.+)"), 1, 2, 0.95),
    # "bought sand 150", "purchased cement for 500"
    ExpensePattern(_compile(rf"(?:bought|purchased)\s+(.+?)\s+(?:for\s+)?{AMOUNT}"), 2, 1, 0.95),
    # Luganda: "nimaze 300 ku sand" (I spent 300 on sand)
    ExpensePattern(_compile(rf"(?:nimaze|nasasudde)\s+{AMOUNT}\s+(?:ku|pa)\s+(.+)"), 1, 2, 0.95),
    # Luganda: "naguze cement 500" (I bought cement 500)
    ExpensePattern(_compile(rf"(?:naguze|natundidde)\s+(.+?)\s+{AMOUNT}"), 2, 1, 0.95),
    # Luganda: "omaze 500" (you spent 500)
    ExpensePattern(
        _compile(rf"(?:omaze|wasasudde)\s+{AMOUNT}\s*(?:ku\s+)?(.+)?"), 1, 2, 0.90, "Expense"
    ),
]

BARE_EXPENSE_PATTERNS: list[ExpensePattern] = [
    # "500 for cement", "200 bricks"
    ExpensePattern(_compile(rf"^{AMOUNT}\s+(?:for\s+)?(.+)"), 1, 2, 0.85),
    # "cement 500 bags", "sand 200"
    ExpensePattern(_compile(rf"^([a-z\s]+?)\s+{AMOUNT}"), 2, 1, 0.80),
]

EXPENSE_PATTERNS = VERB_EXPENSE_PATTERNS + BARE_EXPENSE_PATTERNS

TASK_PATTERNS: list[TaskPattern] = [
    # "add task: inspect foundation", "task: buy cement"
    TaskPattern(_compile(r"(?:add\s+)?task\s*:\s*(.+)"), 0.95),
    # "todo: check workers", "to do: visit site"
    TaskPattern(_compile(r"(?:todo|to\s+do)\s*:\s*(.+)"), 0.95),
    # "remind me to call the plumber", "need to order sand"
    TaskPattern(_compile(r"(?:remind\s+me\s+to|need\s+to|have\s+to)\s+(.+)"), 0.90),
    # "urgent: fix the scaffolding"
    TaskPattern(_compile(r"(?:urgent|important|priority)\s*:\s*(.+)"), 0.95, "high"),
]

BUDGET_PATTERNS: list[BudgetPattern] = [
    # "set budget 1000000", "budget is 500000"
    BudgetPattern(_compile(rf"(?:set\s+)?budget(?:\s+is)?\s+{AMOUNT}"), 0.95),
    # "my budget 500000", "project budget is 500000"
    BudgetPattern(_compile(rf"(?:my|project)\s+budget\s+(?:is\s+)?{AMOUNT}"), 0.95),
    # Luganda: "budget yange 500000"
    BudgetPattern(_compile(rf"budget\s+(?:yange|yaffe)\s+{AMOUNT}"), 0.90),
]

QUERY_PATTERNS: list[re.Pattern] = [
    _compile(r"(?:how\s+much|total|what.*spent|show.*expenses|list.*expenses)"),
    _compile(r"(?:report|summary|balance|remaining)"),
    _compile(r"(?:spent\s+today|spent\s+this\s+week|spent\s+this\s+month)"),
    _compile(r"(?:where.*money|how.*much.*left|budget\s+status)"),
    # Luganda: "how much money", "report", "check"
    _compile(r"(?:ssente\s+zmeka|omaze\s+meka|ensimbi\s+zmeka)"),
    _compile(r"(?:lipoota|okebera|balance)"),
]


def parse_amount(value: str) -> Decimal:
    """Parse "1,000.50" style amounts. Invalid or negative input gives 0."""
    try:
        amount = Decimal(value.replace(",", ""))
    except InvalidOperation:
        return Decimal("0")
    if amount < 0:
        return Decimal("0")
    return amount


def clean_description(text: str) -> str:
    text = re.sub(r"\s+", " ", text.strip())
    text = re.sub(r"[,.]$", "", text)
    return text[:MAX_DESCRIPTION_LENGTH]


def extract_currency(text: str) -> str | None:
    match = CURRENCY_RE.search(text)
    return match.group(1).upper() if match else None


def has_numeric_amount(text: str) -> bool:
    return NUMBER_RE.search(text) is not None


def _match_expense(text: str, patterns: list[ExpensePattern]) -> ParsedIntent | None:
    for pattern in patterns:
        match = pattern.regex.search(text)
        if not match:
            continue
        raw_description = match.group(pattern.description_group)
        description = (
            clean_description(raw_description)
            if raw_description
            else pattern.default_description
        )
        return ParsedIntent(
            intent=Intent.LOG_EXPENSE,
            confidence=pattern.confidence,
            original_message=text,
            amount=parse_amount(match.group(pattern.amount_group)),
            description=description,
            currency=extract_currency(text) or DEFAULT_CURRENCY,
        )
    return None


def _match_task(text: str) -> ParsedIntent | None:
    for pattern in TASK_PATTERNS:
        match = pattern.regex.search(text)
        if match:
            return ParsedIntent(
                intent=Intent.CREATE_TASK,
                confidence=pattern.confidence,
                original_message=text,
                title=clean_description(match.group(1)),
                priority=pattern.priority,
            )
    return None


def _match_budget(text: str) -> ParsedIntent | None:
    for pattern in BUDGET_PATTERNS:
        match = pattern.regex.search(text)
        if match:
            return ParsedIntent(
                intent=Intent.SET_BUDGET,
                confidence=pattern.confidence,
                original_message=text,
                amount=parse_amount(match.group(1)),
            )
    return None


def _match_query(text: str) -> ParsedIntent | None:
    lower = text.lower()
    for pattern in QUERY_PATTERNS:
        if pattern.search(lower):
            return ParsedIntent(
                intent=Intent.QUERY_EXPENSES,
                confidence=0.90,
                original_message=text,
            )
    return None


def _fallback_number(text: str) -> ParsedIntent | None:
    """Treat any message with a number and some words as a low-confidence expense."""
    match = NUMBER_RE.search(text)
    if not match:
        return None

    description = text.replace(match.group(0), "", 1).strip()
    description = LEADING_PREPOSITION_RE.sub("", description)
    if not description:
        return None

    return ParsedIntent(
        intent=Intent.LOG_EXPENSE,
        confidence=0.60,
        original_message=text,
        amount=parse_amount(match.group(1)),
        description=clean_description(description) or "Expense",
        currency=extract_currency(text) or DEFAULT_CURRENCY,
    )


def parse_intent(message: str, media_url: str | None = None) -> ParsedIntent:
    """
    Detect the intent of a WhatsApp message and extract its fields.

    Args:
        message: Message text (or image caption)
        media_url: URL of an attached image, if any

    Returns:
        ParsedIntent; ``Intent.UNKNOWN`` with confidence 0 when nothing matched.

    Example:
        >>> parse_intent("spent 500 on cement").description
        'cement'
    """
    text = (message or "").strip()

    if not text:
        if media_url:
            return ParsedIntent(
                intent=Intent.LOG_IMAGE,
                confidence=0.95,
                original_message="",
                caption="",
                media_url=media_url,
            )
        return ParsedIntent(intent=Intent.UNKNOWN, confidence=0.0, original_message="")

    if media_url:
        if has_numeric_amount(text):
            parsed = _match_expense(text, EXPENSE_PATTERNS)
            if parsed:
                parsed.confidence = parsed.confidence * 0.95
                parsed.media_url = media_url
                return parsed
        return ParsedIntent(
            intent=Intent.LOG_IMAGE,
            confidence=0.90,
            original_message=text,
            caption=text,
            media_url=media_url,
        )

    parsed = (
        _match_expense(text, VERB_EXPENSE_PATTERNS)
        or _match_task(text)
        or _match_budget(text)
        or _match_expense(text, BARE_EXPENSE_PATTERNS)
        or _match_query(text)
        or _fallback_number(text)
    )
    if parsed:
        logger.debug(
            f"Parsed intent {parsed.intent.value} ({parsed.confidence:.2f})",
            extra={"intent": parsed.intent.value},
        )
        return parsed

    return ParsedIntent(intent=Intent.UNKNOWN, confidence=0.0, original_message=text)


def is_valid_intent(parsed: ParsedIntent) -> bool:
    """Check the parsed intent carries the fields its handler needs."""
    if parsed.intent == Intent.LOG_EXPENSE:
        return bool(parsed.amount and parsed.amount > 0 and parsed.description)
    if parsed.intent == Intent.CREATE_TASK:
        return bool(parsed.title)
    if parsed.intent == Intent.SET_BUDGET:
        return bool(parsed.amount and parsed.amount > 0)
    if parsed.intent == Intent.QUERY_EXPENSES:
        return True
    if parsed.intent == Intent.LOG_IMAGE:
        return bool(parsed.media_url)
    return False


def get_confidence_threshold(intent: Intent | str) -> float:
    try:
        intent = Intent(intent)
    except ValueError:
        return DEFAULT_CONFIDENCE_THRESHOLD
    return CONFIDENCE_THRESHOLDS.get(intent, DEFAULT_CONFIDENCE_THRESHOLD)


def meets_confidence_threshold(parsed: ParsedIntent) -> bool:
    return parsed.confidence >= get_confidence_threshold(parsed.intent)
