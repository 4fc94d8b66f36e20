"""Date manipulation utilities"""

import calendar
from datetime import date, datetime
from typing import Tuple

from dateutil.relativedelta import relativedelta

from oar_engine.domain.exceptions import ValidationError


def parse_month(value: str) -> date:
    """Parse YYYY-MM into the first day of that month"""
    try:
        return datetime.strptime(value, "%Y-%m").date()
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid month {value!r}, expected YYYY-MM") from e


def month_bounds(day: date) -> Tuple[date, date]:
    """First and last day of the month containing `day`"""
    last = calendar.monthrange(day.year, day.month)[1]
    return day.replace(day=1), day.replace(day=last)


def add_months(day: date, months: int) -> date:
    return day + relativedelta(months=months)


def format_month(day: date) -> str:
    return day.strftime("%Y-%m")


def month_label(day: date) -> str:
    """Abbreviated month name for chart axes (e.g. "Mar")"""
    return calendar.month_abbr[day.month]
