from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from quotemaster.core.errors import validation_error

# "YYYY-MM" or "YYYY-MM-DD"; both sort lexicographically in chronological order.
_PERIOD_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])(-(0[1-9]|[12]\d|3[01]))?$")


@dataclass(frozen=True)
class ComparisonSelection:
    period: str
    region: str
    categories: tuple[str, ...]


def validate_period(period: str | None) -> str:
    value = (period or "").strip()
    if not value:
        raise validation_error("period is required", field="period")
    if not _PERIOD_RE.match(value):
        raise validation_error(
            "period must look like YYYY-MM or YYYY-MM-DD", field="period", value=value
        )
    return value


def validate_region(region: str | None) -> str:
    value = (region or "").strip()
    if not value:
        raise validation_error("region is required", field="region")
    return value


def validate_categories(categories: Iterable[str] | None) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for raw in categories or ():
        value = str(raw or "").strip()
        if value:
            seen.setdefault(value, None)
    if not seen:
        raise validation_error("at least one category is required", field="categories")
    return tuple(seen)


def validate_ids(ids: Iterable[int] | None, *, field: str = "quotation_ids") -> list[int]:
    out: list[int] = []
    for raw in ids or ():
        try:
            value = int(raw)
        except (TypeError, ValueError):
            raise validation_error("ids must be integers", field=field, value=str(raw))
        if value <= 0:
            raise validation_error("ids must be positive", field=field, value=value)
        if value not in out:
            out.append(value)
    if not out:
        raise validation_error("at least one id is required", field=field)
    return out


def build_selection(period: str | None, region: str | None, categories: Iterable[str] | None) -> ComparisonSelection:
    return ComparisonSelection(
        period=validate_period(period),
        region=validate_region(region),
        categories=validate_categories(categories),
    )
