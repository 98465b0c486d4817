"""
Template variables — relative dates for fixtures and transformers.

Expressions look like "currentMonth", "currentMonth+3", "currentDay-1".
Each evaluates to a display value (for question text) and a data value
(UTC-midnight ISO string or number, for proposal fields).
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)

_EXPRESSION_RE = re.compile(r"^(\w+)([+-])(\d+)$")
_TEMPLATE_RE = re.compile(r"\{(\w+(?:[+-]\d+)?)\}")
_ANY_TEMPLATE_RE = re.compile(r"\{([^}]+)\}")


@dataclass
class TemplateContext:
    current_date: datetime
    locale: Optional[str] = None
    timezone: Optional[str] = None

    @property
    def today(self) -> date:
        d = self.current_date
        if d.tzinfo is not None:
            d = d.astimezone(timezone.utc)
        return d.date()


@dataclass
class TemplateResult:
    display_value: str
    data_value: Any


def to_utc_midnight_iso(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}-{d.day:02d}T00:00:00.000Z"


def _shift_months(d: date, months: int) -> date:
    total = d.year * 12 + (d.month - 1) + months
    return date(total // 12, total % 12 + 1, 1)


def _month_display(target: date, today: date) -> str:
    name = MONTH_NAMES[target.month - 1]
    if target.year != today.year:
        return f"{name} {target.year}"
    return name


# ═══════════════════════════════════════════════════════════════════════════════
# VARIABLE DEFINITIONS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class TemplateVariable:
    key: str
    description: str
    evaluate: Callable[[TemplateContext], TemplateResult]
    apply_arithmetic: Optional[Callable[[int, TemplateContext], TemplateResult]] = None

    @property
    def supports_arithmetic(self) -> bool:
        return self.apply_arithmetic is not None


def _current_month(ctx: TemplateContext) -> TemplateResult:
    return _month_offset(0, ctx)


def _month_offset(months: int, ctx: TemplateContext) -> TemplateResult:
    today = ctx.today
    target = _shift_months(today, months)
    return TemplateResult(
        display_value=_month_display(target, today),
        data_value=to_utc_midnight_iso(target),
    )


def _current_year(ctx: TemplateContext) -> TemplateResult:
    return _year_offset(0, ctx)


def _year_offset(years: int, ctx: TemplateContext) -> TemplateResult:
    year = ctx.today.year + years
    return TemplateResult(display_value=str(year), data_value=year)


def _current_day(ctx: TemplateContext) -> TemplateResult:
    today = ctx.today
    return TemplateResult(display_value=str(today.day), data_value=to_utc_midnight_iso(today))


def _day_offset(days: int, ctx: TemplateContext) -> TemplateResult:
    today = ctx.today
    target = today + timedelta(days=days)
    display = f"{MONTH_NAMES[target.month - 1]} {target.day}"
    if target.year != today.year:
        display += f", {target.year}"
    return TemplateResult(display_value=display, data_value=to_utc_midnight_iso(target))


def _today(ctx: TemplateContext) -> TemplateResult:
    today = ctx.today
    return TemplateResult(
        display_value=f"{today.month}/{today.day}/{today.year}",
        data_value=to_utc_midnight_iso(today),
    )


TEMPLATE_VARIABLE_DEFINITIONS = [
    TemplateVariable(
        key="currentMonth",
        description="Current month name with arithmetic support",
        evaluate=_current_month,
        apply_arithmetic=_month_offset,
    ),
    TemplateVariable(
        key="currentYear",
        description="Current year",
        evaluate=_current_year,
        apply_arithmetic=_year_offset,
    ),
    TemplateVariable(
        key="currentDay",
        description="Current day of month",
        evaluate=_current_day,
        apply_arithmetic=_day_offset,
    ),
    TemplateVariable(
        key="today",
        description="Today's date in ISO format",
        evaluate=_today,
    ),
]


# ═══════════════════════════════════════════════════════════════════════════════
# REGISTRY
# ═══════════════════════════════════════════════════════════════════════════════

class TemplateVariableRegistry:
    """Lookup and evaluation of template variables."""

    def __init__(self, variables: Optional[list[TemplateVariable]] = None):
        self._variables: dict[str, TemplateVariable] = {}
        for variable in variables if variables is not None else TEMPLATE_VARIABLE_DEFINITIONS:
            self.register(variable)

    def register(self, variable: TemplateVariable) -> None:
        self._variables[variable.key] = variable

    def get(self, key: str) -> Optional[TemplateVariable]:
        return self._variables.get(key)

    def has(self, key: str) -> bool:
        return key in self._variables

    def keys(self) -> list[str]:
        return list(self._variables)

    def evaluate_expression(self, expression: str, context: TemplateContext) -> Optional[TemplateResult]:
        """
        Evaluate "variable" or "variable+N" / "variable-N".

        Returns None for unknown variables or arithmetic on a variable that
        does not support it.
        """
        arithmetic = _EXPRESSION_RE.match(expression)
        if arithmetic:
            key, operator, operand = arithmetic.groups()
            variable = self.get(key)
            if variable is None or not variable.supports_arithmetic:
                return None
            amount = int(operand) if operator == "+" else -int(operand)
            return variable.apply_arithmetic(amount, context)

        variable = self.get(expression)
        if variable is None:
            return None
        return variable.evaluate(context)


# ═══════════════════════════════════════════════════════════════════════════════
# STRING PROCESSING
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class TemplateReplacement:
    original: str
    expression: str
    result: TemplateResult
    start_index: int
    end_index: int


@dataclass
class TemplateProcessingResult:
    original: str
    processed: str
    replacements: list[TemplateReplacement] = field(default_factory=list)
    metadata: dict[str, TemplateResult] = field(default_factory=dict)


def process_template(
    text: str,
    context: TemplateContext,
    registry: Optional[TemplateVariableRegistry] = None,
) -> TemplateProcessingResult:
    """
    Replace every "{expression}" in `text` with its display value.

    Unknown expressions are left untouched. Replacement indices refer to
    the processed string.
    """
    registry = registry or TemplateVariableRegistry()
    result = TemplateProcessingResult(original=text, processed=text)
    pieces: list[str] = []
    cursor = 0
    out_len = 0

    for match in _TEMPLATE_RE.finditer(text):
        expression = match.group(1)
        evaluated = registry.evaluate_expression(expression, context)
        if evaluated is None:
            logger.debug(f"Unknown template expression '{expression}' left as-is")
            continue

        before = text[cursor:match.start()]
        pieces.append(before)
        out_len += len(before)

        pieces.append(evaluated.display_value)
        result.replacements.append(TemplateReplacement(
            original=match.group(0),
            expression=expression,
            result=evaluated,
            start_index=out_len,
            end_index=out_len + len(evaluated.display_value),
        ))
        result.metadata[expression] = evaluated
        out_len += len(evaluated.display_value)
        cursor = match.end()

    pieces.append(text[cursor:])
    result.processed = "".join(pieces)
    return result


def has_templates(text: str) -> bool:
    return bool(_ANY_TEMPLATE_RE.search(text))


def extract_expressions(text: str) -> list[str]:
    return _TEMPLATE_RE.findall(text)
