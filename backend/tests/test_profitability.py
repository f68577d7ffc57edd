"""
Profitability engine tests.

The engine is pure, so these use plain namespaces instead of database rows.
"""

from types import SimpleNamespace

import pytest

from kiosk_pnl.services.profitability_service import (
    build_profitability_report,
    margin_percent,
    network_net_income,
    variable_rent,
)


def _loc(id, rent_model="FIXED", base_rent=0.0):
    return SimpleNamespace(id=id, name=f"{id} Store", city="Atlanta", state="GA", rent_model=rent_model, base_rent=base_rent)


def _term(sn, location_id):
    return SimpleNamespace(sn=sn, location_id=location_id)


def _tx(terminal_sn, amount, profit, status="COMPLETED"):
    return SimpleNamespace(terminal_sn=terminal_sn, amount_cash=amount, gross_profit=profit, status=status)


class TestRent:
    @pytest.mark.parametrize(
        "volume,expected_rent",
        [(0.0, 500.0), (9_999.99, 500.0), (10_000.0, 500.0), (15_000.0, 550.0), (20_000.0, 600.0)],
    )
    def test_volume_tier_boundary(self, volume, expected_rent):
        report = build_profitability_report(
            [_loc("L1", "VOLUME_TIER", 500.0)],
            [_term("T1", "L1")],
            [_tx("T1", volume, 0.0)] if volume else [],
        )
        assert report[0].rent_expense == pytest.approx(expected_rent)

    def test_fixed_rent_ignores_volume(self):
        assert variable_rent("FIXED", 1_000_000.0) == 0.0

    def test_variable_rent_threshold_is_exclusive(self):
        assert variable_rent("VOLUME_TIER", 10_000.0) == 0.0
        assert variable_rent("VOLUME_TIER", 10_001.0) == pytest.approx(0.01)


class TestReport:
    def test_zero_volume_margin_is_zero(self):
        [row] = build_profitability_report([_loc("L1", base_rent=300.0)], [], [])
        assert row.total_volume == 0.0
        assert row.net_income == -300.0
        assert row.margin == 0.0
        assert margin_percent(-300.0, 0.0) == 0.0

    def test_rollup(self):
        report = build_profitability_report(
            [_loc("L1", base_rent=100.0)],
            [_term("T1", "L1"), _term("T2", "L1")],
            [_tx("T1", 1000.0, 80.0), _tx("T2", 500.0, 40.0)],
        )
        [row] = report
        assert row.tx_count == 2
        assert row.total_volume == 1500.0
        assert row.gross_profit == 120.0
        assert row.net_income == 20.0
        assert row.margin == pytest.approx(20.0 / 1500.0 * 100)

    def test_sorted_ascending_by_net_income(self):
        locations = [_loc("A"), _loc("B", base_rent=100.0), _loc("C")]
        terminals = [_term("TA", "A"), _term("TB", "B"), _term("TC", "C")]
        transactions = [_tx("TA", 500.0, 50.0), _tx("TC", 100.0, 0.0)]
        report = build_profitability_report(locations, terminals, transactions)
        assert [r.net_income for r in report] == [-100.0, 0.0, 50.0]
        assert [r.location_id for r in report] == ["B", "C", "A"]
        assert network_net_income(report) == pytest.approx(-50.0)

    def test_only_completed_transactions_count(self):
        report = build_profitability_report(
            [_loc("L1")],
            [_term("T1", "L1")],
            [_tx("T1", 100.0, 10.0), _tx("T1", 900.0, 90.0, "CANCELLED"), _tx("T1", 50.0, 5.0, "ERROR")],
        )
        assert report[0].total_volume == 100.0
        assert report[0].gross_profit == 10.0

    def test_orphans_excluded(self):
        report = build_profitability_report(
            [_loc("L1")],
            [_term("T1", "L1"), _term("T9", "MISSING")],
            [_tx("T1", 100.0, 10.0), _tx("GHOST", 5000.0, 500.0), _tx("T9", 700.0, 70.0)],
        )
        assert len(report) == 1
        assert report[0].total_volume == 100.0

    def test_camel_case_payload(self):
        [row] = build_profitability_report([_loc("L1")], [], [])
        assert set(row.to_dict()) >= {"id", "txCount", "totalVolume", "grossProfit", "rentExpense", "netIncome", "margin"}
