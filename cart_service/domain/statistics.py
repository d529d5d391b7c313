# cart_service/domain/statistics.py
"""Raport koszykow za okres (panel administracyjny)."""
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable

from cart_service.domain.cart import ZERO, CartStatus, money


@dataclass(frozen=True)
class CartFigures:
    """Kolumny koszyka potrzebne do raportu, bez pozycji."""

    status: CartStatus
    total_amount: Decimal
    item_count: int
    source: str | None
    created_at: datetime


@dataclass
class DailyStatistics:
    day: date
    count: int = 0
    converted: int = 0
    abandoned: int = 0
    average_value: Decimal = ZERO
    total_value: Decimal = ZERO


@dataclass
class SourceStatistics:
    source: str
    count: int = 0
    converted: int = 0
    average_value: Decimal = ZERO


@dataclass
class CartStatistics:
    start: datetime
    end: datetime
    total_carts: int = 0
    active_carts: int = 0
    saved_carts: int = 0
    abandoned_carts: int = 0
    expired_carts: int = 0
    converted_carts: int = 0
    average_cart_value: Decimal = ZERO
    average_item_count: Decimal = ZERO
    conversion_rate: Decimal = ZERO
    daily: list[DailyStatistics] = field(default_factory=list)
    sources: list[SourceStatistics] = field(default_factory=list)


def _average(total, count: int) -> Decimal:
    if not count:
        return ZERO
    return money(Decimal(total) / count)


def build_statistics(figures: Iterable[CartFigures], start: datetime, end: datetime) -> CartStatistics:
    """
    Liczniki po statusie, srednia wartosc i liczba pozycji, konwersja w procentach.
    daily: po dniu utworzenia (UTC), rosnaco.
    sources: tylko koszyki z ustawionym source, malejaco po liczbie koszykow.
    """
    figures = list(figures)
    stats = CartStatistics(start=start, end=end, total_carts=len(figures))
    if not figures:
        return stats

    by_status = defaultdict(int)
    for f in figures:
        by_status[f.status] += 1
    stats.active_carts = by_status[CartStatus.ACTIVE]
    stats.saved_carts = by_status[CartStatus.SAVED]
    stats.abandoned_carts = by_status[CartStatus.ABANDONED]
    stats.expired_carts = by_status[CartStatus.EXPIRED]
    stats.converted_carts = by_status[CartStatus.CONVERTED]

    stats.average_cart_value = _average(sum(f.total_amount for f in figures), len(figures))
    stats.average_item_count = _average(sum(f.item_count for f in figures), len(figures))
    stats.conversion_rate = _average(stats.converted_carts * 100, len(figures))

    days: dict[date, list[CartFigures]] = defaultdict(list)
    sources: dict[str, list[CartFigures]] = defaultdict(list)
    for f in figures:
        days[f.created_at.date()].append(f)
        if f.source is not None:
            sources[f.source].append(f)

    for day in sorted(days):
        group = days[day]
        total_value = sum((f.total_amount for f in group), ZERO)
        stats.daily.append(
            DailyStatistics(
                day=day,
                count=len(group),
                converted=sum(1 for f in group if f.status == CartStatus.CONVERTED),
                abandoned=sum(1 for f in group if f.status == CartStatus.ABANDONED),
                average_value=_average(total_value, len(group)),
                total_value=total_value,
            )
        )

    for source, group in sorted(sources.items(), key=lambda kv: (-len(kv[1]), kv[0])):
        stats.sources.append(
            SourceStatistics(
                source=source,
                count=len(group),
                converted=sum(1 for f in group if f.status == CartStatus.CONVERTED),
                average_value=_average(sum(f.total_amount for f in group), len(group)),
            )
        )
    return stats
