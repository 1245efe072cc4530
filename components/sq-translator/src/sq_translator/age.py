"""Translation of age criteria into birth date comparisons.

Age is not stored on the patient, so ``age > 5 a`` becomes
``birthDate <= <today minus 5 years>``. The comparator flips because the
birth date moves backwards as the age grows.
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum

from fhirpath_expr import Comparator, Comparison, DateTimeLiteral, Expression, Member, and_

from sq_translator.errors import InvalidQueryShapeError
from sq_translator.terms import Term

AGE = Term("http://snomed.info/sct", "424144002", "Current chronological age")


class AgeUnit(str, Enum):
    YEARS = "a"
    MONTHS = "mo"
    WEEKS = "wk"

    @classmethod
    def parse(cls, unit: str | None) -> AgeUnit:
        """Parse a UCUM unit (``a``, ``mo``, ``wk``) or its spelled-out name.

        Raises:
            InvalidQueryShapeError: If the unit is missing or unknown.
        """
        if not unit:
            raise InvalidQueryShapeError("Age criteria need a unit.")
        normalized = _UNIT_ALIASES.get(unit.strip().lower(), unit.strip().lower())
        try:
            return cls(normalized)
        except ValueError:
            raise InvalidQueryShapeError(f"unknown age unit: {unit}") from None


_UNIT_ALIASES = {
    "year": "a",
    "years": "a",
    "month": "mo",
    "months": "mo",
    "week": "wk",
    "weeks": "wk",
}

# Comparator on the age mapped to the comparator on the birth date.
_INVERTED = {
    Comparator.EQUAL: Comparator.EQUAL,
    Comparator.NOT_EQUAL: Comparator.NOT_EQUAL,
    Comparator.GREATER_THAN: Comparator.LESS_EQUAL,
    Comparator.GREATER_EQUAL: Comparator.LESS_THAN,
    Comparator.LESS_THAN: Comparator.GREATER_EQUAL,
    Comparator.LESS_EQUAL: Comparator.GREATER_THAN,
}


def is_age(term: Term) -> bool:
    return term == AGE


def _minus_months(today: date, months: int) -> date:
    month_index = today.year * 12 + today.month - 1 - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(today.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def subtract(today: date, amount: int, unit: AgeUnit) -> date:
    """Return ``today`` minus ``amount`` units, clamping to the month's end.

    Raises:
        InvalidQueryShapeError: If the result is before year 1 or after 9999.

    Examples:
        >>> subtract(date(2024, 2, 29), 1, AgeUnit.YEARS)
        datetime.date(2023, 2, 28)
        >>> subtract(date(2024, 3, 31), 1, AgeUnit.MONTHS)
        datetime.date(2024, 2, 29)
    """
    try:
        if unit is AgeUnit.YEARS:
            return _minus_months(today, amount * 12)
        if unit is AgeUnit.MONTHS:
            return _minus_months(today, amount)
        return today - timedelta(weeks=amount)
    except (ValueError, OverflowError) as exc:
        raise InvalidQueryShapeError(
            f"Age of {amount} {unit.value} before {today.isoformat()} is out of range."
        ) from exc


def age_comparison(
    path: str,
    comparator: Comparator,
    age: Decimal | int,
    unit: str | None,
    today: date,
) -> Expression:
    """Compare the birth date at ``path`` against ``today`` minus ``age``.

    Args:
        path: Path of the birth date on the patient, e.g. ``birthDate``.
        comparator: Comparator applied to the age.
        age: Age value; fractions are truncated.
        unit: Age unit.
        today: Reference date of the translation.

    Returns:
        Birth date comparison with the comparator inverted.
    """
    birth_date = subtract(today, int(age), AgeUnit.parse(unit))
    return Comparison(Member(path), _INVERTED[comparator], DateTimeLiteral.from_date(birth_date))


def age_range(
    path: str,
    lower: Decimal | int,
    upper: Decimal | int,
    unit: str | None,
    today: date,
) -> Expression:
    """Birth date window for an age between ``lower`` and ``upper``."""
    age_unit = AgeUnit.parse(unit)
    earliest = subtract(today, int(upper), age_unit)
    latest = subtract(today, int(lower), age_unit)
    return and_(
        Comparison(Member(path), Comparator.GREATER_EQUAL, DateTimeLiteral.from_date(earliest)),
        Comparison(Member(path), Comparator.LESS_EQUAL, DateTimeLiteral.from_date(latest)),
    )
