# Overview: Per-location P&L; rolls up completed volume and gross profit and deducts fixed or tiered rent.

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable


# VOLUME_TIER locations pay 1% of completed volume above this threshold.
RENT_TIER_THRESHOLD = 10_000.0
RENT_TIER_RATE = 0.01


@dataclass
class LocationProfitability:
    location_id: str
    name: str
    city: str | None
    state: str | None
    rent_model: str
    base_rent: float
    tx_count: int
    total_volume: float
    gross_profit: float
    variable_rent: float
    rent_expense: float
    net_income: float
    margin: float

    def to_dict(self) -> dict:
        return {
            "id": self.location_id,
            "name": self.name,
            "city": self.city,
            "state": self.state,
            "rentModel": self.rent_model,
            "baseRent": self.base_rent,
            "txCount": self.tx_count,
            "totalVolume": self.total_volume,
            "grossProfit": self.gross_profit,
            "variableRent": self.variable_rent,
            "rentExpense": self.rent_expense,
            "netIncome": self.net_income,
            "margin": self.margin,
        }


def variable_rent(
    rent_model: str,
    total_volume: float,
    *,
    threshold: float = RENT_TIER_THRESHOLD,
    rate: float = RENT_TIER_RATE,
) -> float:
    """Tiered component only; volume at exactly the threshold owes nothing."""
    if rent_model != "VOLUME_TIER" or total_volume <= threshold:
        return 0.0
    return (total_volume - threshold) * rate


def margin_percent(net_income: float, total_volume: float) -> float:
    if total_volume > 0:
        return net_income / total_volume * 100
    return 0.0


def build_profitability_report(locations: Iterable, terminals: Iterable, transactions: Iterable) -> list[LocationProfitability]:
    """
    Compute P&L for every location, worst net income first.

    Accepts ORM rows or canonical drafts (anything exposing the snake_case
    attributes). Only COMPLETED transactions count. Transactions whose
    terminal is unknown, or whose terminal points at an unknown location,
    are orphans and fall out of every rollup.
    """
    terminal_location = {t.sn: t.location_id for t in terminals}

    volume: dict[str, float] = defaultdict(float)
    profit: dict[str, float] = defaultdict(float)
    counts: dict[str, int] = defaultdict(int)
    for tx in transactions:
        if tx.status != "COMPLETED":
            continue
        location_id = terminal_location.get(tx.terminal_sn)
        if location_id is None:
            continue
        volume[location_id] += float(tx.amount_cash or 0)
        profit[location_id] += float(tx.gross_profit or 0)
        counts[location_id] += 1

    report: list[LocationProfitability] = []
    for loc in locations:
        total_volume = volume.get(loc.id, 0.0)
        gross_profit = profit.get(loc.id, 0.0)
        base_rent = float(loc.base_rent or 0)
        extra = variable_rent(loc.rent_model, total_volume)
        rent_expense = base_rent + extra
        net_income = gross_profit - rent_expense
        report.append(
            LocationProfitability(
                location_id=loc.id,
                name=loc.name,
                city=loc.city,
                state=loc.state,
                rent_model=loc.rent_model,
                base_rent=base_rent,
                tx_count=counts.get(loc.id, 0),
                total_volume=total_volume,
                gross_profit=gross_profit,
                variable_rent=extra,
                rent_expense=rent_expense,
                net_income=net_income,
                margin=margin_percent(net_income, total_volume),
            )
        )

    # Losers first so problem sites surface at the top
    report.sort(key=lambda r: (r.net_income, r.location_id))
    return report


def network_net_income(report: Iterable[LocationProfitability]) -> float:
    return sum(r.net_income for r in report)
