# Overview: Service-layer reporting over persisted state; period filters, P&L report and network summary.

from __future__ import annotations

from collections import defaultdict
from typing import Iterable

from ..time_utils import quarter_of
from .profitability_service import build_profitability_report, network_net_income
from .sync_service import fetch_all


class ReportError(Exception):
    """Raised when report generation fails."""
    pass


QUARTERS = ("Q1", "Q2", "Q3", "Q4")
TOP_TERMINALS = 10
# Terminals holding less cash than this need a replenishment run
LOW_CASH_THRESHOLD = 3000.0


def parse_period_filter(year: str | int | None, quarter: str | None) -> tuple[int | None, str | None]:
    """
    Validate a dashboard period filter.

    - year None -> no filter
    - quarter None / "ALL" -> whole year
    """
    if year in (None, ""):
        if quarter not in (None, "", "ALL"):
            raise ReportError("quarter requires year")
        return None, None
    try:
        year_value = int(year)
    except (TypeError, ValueError):
        raise ReportError("year must be a number")
    if not 2000 <= year_value <= 2100:
        raise ReportError("year out of range")
    if quarter in (None, "", "ALL"):
        return year_value, None
    quarter = str(quarter).upper()
    if quarter not in QUARTERS:
        raise ReportError("quarter must be Q1, Q2, Q3, Q4, or ALL")
    return year_value, quarter


def filter_transactions(
    transactions: Iterable,
    *,
    year: int | None = None,
    quarter: str | None = None,
    status: str | None = None,
    source: str | None = None,
    period: str | None = None,
) -> list:
    out = []
    for tx in transactions:
        if year is not None:
            if tx.timestamp is None or tx.timestamp.year != year:
                continue
            if quarter and quarter_of(tx.timestamp) != quarter:
                continue
        if status and tx.status != status:
            continue
        if source and tx.source != source:
            continue
        if period and tx.period != period:
            continue
        out.append(tx)
    return out


def network_summary(locations: Iterable, terminals: Iterable, transactions: Iterable) -> dict:
    """Headline figures for one period: volume, profit, pending volume, top terminals, per-state totals."""
    locations = list(locations)
    terminals = list(terminals)
    transactions = list(transactions)

    completed = [t for t in transactions if t.status == "COMPLETED"]
    total_volume = sum(float(t.amount_cash or 0) for t in completed)
    total_gross_profit = sum(float(t.gross_profit or 0) for t in completed)
    pending_volume = sum(float(t.amount_cash or 0) for t in transactions if t.status != "COMPLETED")

    volume_by_terminal: dict[str, float] = defaultdict(float)
    for tx in completed:
        volume_by_terminal[tx.terminal_sn] += float(tx.amount_cash or 0)

    top_terminals = sorted(
        (
            {
                "name": t.atm_id,
                "sn": t.sn,
                "volume": volume_by_terminal.get(t.sn, 0.0),
                "cashOnHand": float(t.cash_on_hand or 0),
            }
            for t in terminals
            if volume_by_terminal.get(t.sn, 0.0) > 0
        ),
        key=lambda row: (-row["volume"], row["sn"]),
    )[:TOP_TERMINALS]

    location_state = {loc.id: loc.state for loc in locations}
    states: dict[str, dict] = {}
    for loc in locations:
        states.setdefault(loc.state, {"state": loc.state, "totalVolume": 0.0, "activeTerminals": 0, "cashOnHand": 0.0})
    for term in terminals:
        state = location_state.get(term.location_id)
        if state not in states:
            continue
        states[state]["activeTerminals"] += 1
        states[state]["cashOnHand"] += float(term.cash_on_hand or 0)
        states[state]["totalVolume"] += volume_by_terminal.get(term.sn, 0.0)

    return {
        "totalVolume": total_volume,
        "totalGrossProfit": total_gross_profit,
        "pendingVolume": pending_volume,
        "transactionCount": len(completed),
        "activeTerminals": sum(1 for t in terminals if t.status == "ONLINE"),
        "topTerminals": top_terminals,
        "states": sorted(states.values(), key=lambda row: str(row["state"] or "")),
    }


def cash_positions(locations: Iterable, terminals: Iterable, state: str | None = None) -> list[dict]:
    """
    One row per terminal with its location's city and state.

    A terminal needs attention when its cash is below LOW_CASH_THRESHOLD
    or it is not ONLINE. `state` None or "ALL" keeps every terminal.
    """
    by_id = {loc.id: loc for loc in locations}
    rows = []
    for term in terminals:
        loc = by_id.get(term.location_id)
        loc_state = loc.state if loc else None
        if state not in (None, "", "ALL") and loc_state != state:
            continue
        cash = float(term.cash_on_hand or 0)
        low_cash = cash < LOW_CASH_THRESHOLD
        rows.append({
            "sn": term.sn,
            "atmId": term.atm_id,
            "locationId": term.location_id,
            "city": loc.city if loc else None,
            "state": loc_state,
            "status": term.status,
            "cashOnHand": cash,
            "lowCash": low_cash,
            "needsAttention": low_cash or term.status != "ONLINE",
        })
    return rows


def daily_series(transactions: Iterable) -> list[dict]:
    """
    Completed BUY volume, SELL volume and gross profit per calendar day (UTC).

    Every day with a transaction gets a row, even when nothing on it completed.
    """
    days: dict[str, dict] = {}
    for tx in transactions:
        if tx.timestamp is None:
            continue
        day = tx.timestamp.date().isoformat()
        row = days.setdefault(day, {"date": day, "buyVolume": 0.0, "sellVolume": 0.0, "profit": 0.0, "txCount": 0})
        if tx.status != "COMPLETED":
            continue
        if tx.type == "BUY":
            row["buyVolume"] += float(tx.amount_cash or 0)
        elif tx.type == "SELL":
            row["sellVolume"] += float(tx.amount_cash or 0)
        row["profit"] += float(tx.gross_profit or 0)
        row["txCount"] += 1
    return [days[day] for day in sorted(days)]


def profitability_report(*, year: str | int | None = None, quarter: str | None = None) -> dict:
    year_value, quarter_value = parse_period_filter(year, quarter)
    state = fetch_all()
    transactions = filter_transactions(state["transactions"], year=year_value, quarter=quarter_value)
    report = build_profitability_report(state["locations"], state["terminals"], transactions)
    return {
        "year": year_value,
        "quarter": quarter_value or ("ALL" if year_value else None),
        "totalNetIncome": network_net_income(report),
        "rows": [r.to_dict() for r in report],
    }


def summary_report(*, year: str | int | None = None, quarter: str | None = None) -> dict:
    year_value, quarter_value = parse_period_filter(year, quarter)
    state = fetch_all()
    transactions = filter_transactions(state["transactions"], year=year_value, quarter=quarter_value)
    summary = network_summary(state["locations"], state["terminals"], transactions)
    summary["year"] = year_value
    summary["quarter"] = quarter_value or ("ALL" if year_value else None)
    return summary


def cash_logistics(*, state: str | None = None) -> dict:
    snapshot = fetch_all()
    state = state.upper() if state else None
    return {
        "state": state or "ALL",
        "states": sorted({loc.state for loc in snapshot["locations"] if loc.state}),
        "lowCashThreshold": LOW_CASH_THRESHOLD,
        "terminals": cash_positions(snapshot["locations"], snapshot["terminals"], state),
    }


def daily_performance(*, year: str | int | None = None, quarter: str | None = None) -> dict:
    year_value, quarter_value = parse_period_filter(year, quarter)
    transactions = filter_transactions(fetch_all()["transactions"], year=year_value, quarter=quarter_value)
    return {
        "year": year_value,
        "quarter": quarter_value or ("ALL" if year_value else None),
        "days": daily_series(transactions),
    }


def transaction_list(
    *,
    year: str | int | None = None,
    quarter: str | None = None,
    status: str | None = None,
    source: str | None = None,
    period: str | None = None,
    limit: int | None = None,
) -> dict:
    year_value, quarter_value = parse_period_filter(year, quarter)
    state = fetch_all()
    rows = filter_transactions(
        state["transactions"],
        year=year_value,
        quarter=quarter_value,
        status=status.upper() if status else None,
        source=source.upper() if source else None,
        period=period,
    )
    total = len(rows)
    if limit:
        rows = rows[:limit]
    return {"total": total, "transactions": [t.to_dict() for t in rows]}
