"""
Reporting, persistence contract and health endpoint tests.
"""

from dataclasses import replace
from datetime import datetime

import pytest

from kiosk_pnl.models import Location, Transaction
from kiosk_pnl.services.canonicalizer import TerminalDraft, TransactionRecord
from kiosk_pnl.services.normalization import LocationDraft
from kiosk_pnl.services.reporting_service import ReportError, parse_period_filter
from kiosk_pnl.services.sync_service import sync_batch


def _tx(id, sn, amount, profit, when, status="COMPLETED", source="GB", period="2024-Q1"):
    return TransactionRecord(
        id=id,
        terminal_sn=sn,
        timestamp=when,
        type="BUY",
        amount_cash=amount,
        amount_crypto=0.0,
        exchange_price=65000.0,
        markup_percent=0.12,
        fixed_fee=2.5,
        status=status,
        gross_profit=profit,
        source=source,
        period=period,
    )


@pytest.fixture
def network(db_session):
    """Two locations: a tiered site doing well in Q1 and a fixed-rent site with a Q2 sale."""
    sync_batch(
        [
            LocationDraft(id="LOC-ATL", name="Atlanta Store", city="Atlanta", state="GA", rent_model="VOLUME_TIER", base_rent=500.0),
            LocationDraft(id="LOC-MIA", name="Miami Store", city="Miami", state="FL", rent_model="FIXED", base_rent=300.0),
        ],
        [
            TerminalDraft(sn="T-ATL-1", atm_id="ATL 1", location_id="LOC-ATL", cash_on_hand=8000.0),
            TerminalDraft(sn="T-MIA-1", atm_id="MIA 1", location_id="LOC-MIA"),
        ],
        [
            _tx("TX-1", "T-ATL-1", 15000.0, 1800.0, datetime(2024, 2, 1)),
            _tx("TX-2", "T-ATL-1", 700.0, 70.0, datetime(2024, 2, 2), status="CANCELLED"),
            _tx("TX-3", "T-MIA-1", 1000.0, 100.0, datetime(2024, 5, 1), source="BP", period="2024-Q2"),
            _tx("TX-4", "GHOST", 999.0, 99.0, datetime(2024, 2, 3)),
        ],
    )
    return db_session


class TestPeriodFilter:
    def test_no_filter(self):
        assert parse_period_filter(None, None) == (None, None)

    def test_all_quarters(self):
        assert parse_period_filter("2024", "ALL") == (2024, None)

    def test_quarter(self):
        assert parse_period_filter(2024, "q3") == (2024, "Q3")

    @pytest.mark.parametrize("year,quarter", [("abc", None), ("1999", None), ("2024", "Q0"), (None, "Q1")])
    def test_invalid(self, year, quarter):
        with pytest.raises(ReportError):
            parse_period_filter(year, quarter)


class TestProfitabilityEndpoint:
    def test_full_history(self, client, network):
        resp = client.get("/api/reports/profitability")
        assert resp.status_code == 200
        body = resp.get_json()
        rows = {r["id"]: r for r in body["rows"]}
        # 15,000 completed on a 500 base tier: 500 + 50
        assert rows["LOC-ATL"]["rentExpense"] == pytest.approx(550.0)
        assert rows["LOC-ATL"]["netIncome"] == pytest.approx(1250.0)
        assert rows["LOC-ATL"]["txCount"] == 1
        assert rows["LOC-MIA"]["netIncome"] == pytest.approx(-200.0)
        assert [r["id"] for r in body["rows"]] == ["LOC-MIA", "LOC-ATL"]
        assert body["totalNetIncome"] == pytest.approx(1050.0)

    def test_quarter_filter(self, client, network):
        body = client.get("/api/reports/profitability?year=2024&quarter=Q1").get_json()
        rows = {r["id"]: r for r in body["rows"]}
        assert body["quarter"] == "Q1"
        assert rows["LOC-MIA"]["totalVolume"] == 0.0
        assert rows["LOC-MIA"]["margin"] == 0.0

    def test_bad_quarter(self, client, network):
        resp = client.get("/api/reports/profitability?year=2024&quarter=Q7")
        assert resp.status_code == 400
        assert "quarter" in resp.get_json()["error"]


class TestSummaryEndpoint:
    def test_summary(self, client, network):
        body = client.get("/api/reports/summary?year=2024").get_json()
        assert body["totalVolume"] == pytest.approx(15000.0 + 1000.0 + 999.0)
        assert body["pendingVolume"] == pytest.approx(700.0)
        assert body["activeTerminals"] == 2
        assert [t["sn"] for t in body["topTerminals"]] == ["T-ATL-1", "T-MIA-1"]
        states = {s["state"]: s for s in body["states"]}
        assert states["GA"]["cashOnHand"] == 8000.0
        assert states["FL"]["cashOnHand"] == 5000.0


class TestCashLogistics:
    def test_flags_low_cash_and_offline(self, client, network):
        sync_batch(
            [],
            [
                TerminalDraft(sn="T-ATL-2", atm_id="ATL 2", location_id="LOC-ATL", cash_on_hand=2999.0),
                TerminalDraft(sn="T-MIA-2", atm_id="MIA 2", location_id="LOC-MIA", cash_on_hand=3000.0, status="OFFLINE"),
            ],
            [],
        )
        body = client.get("/api/reports/cash-logistics").get_json()
        assert body["states"] == ["FL", "GA"]
        assert body["lowCashThreshold"] == 3000.0
        rows = {r["sn"]: r for r in body["terminals"]}
        assert rows["T-ATL-1"]["city"] == "Atlanta"
        assert rows["T-ATL-1"]["needsAttention"] is False
        assert rows["T-ATL-2"]["lowCash"] is True
        assert rows["T-ATL-2"]["needsAttention"] is True
        assert rows["T-MIA-2"]["lowCash"] is False
        assert rows["T-MIA-2"]["needsAttention"] is True

    def test_state_filter(self, client, network):
        body = client.get("/api/reports/cash-logistics?state=fl").get_json()
        assert body["state"] == "FL"
        assert [r["sn"] for r in body["terminals"]] == ["T-MIA-1"]
        assert len(client.get("/api/reports/cash-logistics?state=ALL").get_json()["terminals"]) == 2


class TestDailyPerformance:
    def test_daily_series_sorted_by_date(self, client, network):
        body = client.get("/api/reports/daily?year=2024&quarter=Q1").get_json()
        assert [d["date"] for d in body["days"]] == ["2024-02-01", "2024-02-02", "2024-02-03"]
        first, cancelled_only, _ = body["days"]
        assert first["buyVolume"] == pytest.approx(15000.0)
        assert first["sellVolume"] == 0.0
        assert first["profit"] == pytest.approx(1800.0)
        assert cancelled_only == {"date": "2024-02-02", "buyVolume": 0.0, "sellVolume": 0.0, "profit": 0.0, "txCount": 0}

    def test_sell_volume_split_out(self, client, db_session):
        sync_batch(
            [LocationDraft(id="LOC-X", name="X", state="NV")],
            [TerminalDraft(sn="T-X", atm_id="X", location_id="LOC-X")],
            [
                _tx("S-1", "T-X", 400.0, 40.0, datetime(2024, 7, 4, 9, 0)),
                replace(_tx("S-2", "T-X", 250.0, 20.0, datetime(2024, 7, 4, 17, 0)), type="SELL"),
            ],
        )
        days = client.get("/api/reports/daily").get_json()["days"]
        assert days == [{"date": "2024-07-04", "buyVolume": 400.0, "sellVolume": 250.0, "profit": 60.0, "txCount": 2}]

    def test_bad_year(self, client):
        assert client.get("/api/reports/daily?year=abc").status_code == 400


class TestTransactionsEndpoint:
    def test_filters(self, client, network):
        body = client.get("/api/reports/transactions?status=completed&source=bp").get_json()
        assert body["total"] == 1
        assert body["transactions"][0]["id"] == "TX-3"

    def test_period_label_filter(self, client, network):
        body = client.get("/api/reports/transactions?period=2024-Q1").get_json()
        assert body["total"] == 3

    def test_limit(self, client, network):
        body = client.get("/api/reports/transactions?limit=2").get_json()
        assert body["total"] == 4
        assert len(body["transactions"]) == 2


class TestDataEndpoints:
    def test_fetch_all(self, client, network):
        body = client.get("/api/data").get_json()
        assert [l["id"] for l in body["locations"]] == ["LOC-ATL", "LOC-MIA"]
        assert body["locations"][0]["rentModel"] == "VOLUME_TIER"
        assert body["transactions"][0]["id"] == "TX-3"
        assert body["transactions"][0]["timestamp"] == "2024-05-01T00:00:00Z"

    def test_sync_contract(self, client, db_session):
        payload = {
            "locations": [{"id": "LOC-X", "name": "X", "city": "Reno", "state": "NV", "rentModel": "FIXED", "baseRent": 250}],
            "terminals": [{"sn": "TX-T", "atmId": "X 1", "locationId": "LOC-X", "cashOnHand": 4200}],
            "transactions": [{
                "id": "TX-A", "terminalSn": "TX-T", "timestamp": "2024-06-01T12:00:00Z", "type": "SELL",
                "amountCash": 300, "grossProfit": 30, "status": "COMPLETED", "source": "OTHER", "period": "2024-Q2",
            }],
        }
        resp = client.post("/api/sync", json=payload)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["success"] is True
        assert body["transactions_inserted"] == 1

        again = client.post("/api/sync", json=payload).get_json()
        assert again["transactions_ignored"] == 1
        assert db_session.query(Transaction).count() == 1
        assert db_session.get(Location, "LOC-X").base_rent == 250.0

    def test_sync_requires_json(self, client):
        resp = client.post("/api/sync", data="not json", content_type="text/plain")
        assert resp.status_code == 400

    def test_sync_rejects_bad_payload(self, client, db_session):
        resp = client.post("/api/sync", json={"locations": [{"name": "no id"}]})
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "id is required"

    def test_sync_rejects_non_object_items(self, client, db_session):
        resp = client.post("/api/sync", json={"locations": ["LOC-A"]})
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "locations[0] must be an object"
        assert db_session.query(Location).count() == 0


class TestHealth:
    def test_health_counts(self, client, network):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "healthy"
        assert body["database"]["details"]["transactions"] == 4
        assert body["database"]["details"]["locations"] == 2
