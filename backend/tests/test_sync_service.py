"""
Merge gateway tests.

Verifies:
- Locations and terminals upsert by key and never duplicate
- Transactions insert once; known ids are ignored
- A failure anywhere in the batch leaves the database untouched
"""

from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError

from kiosk_pnl.models import Location, Terminal, Transaction
from kiosk_pnl.services import sync_service
from kiosk_pnl.services.canonicalizer import TerminalDraft, TransactionRecord
from kiosk_pnl.services.normalization import LocationDraft
from kiosk_pnl.services.sync_service import SyncError, drafts_from_payload, fetch_all, sync_batch


def _location(id="LOC-A", name="Store A", rent_model="FIXED", base_rent=500.0):
    return LocationDraft(id=id, name=name, city="Atlanta", state="GA", zip="30301", rent_model=rent_model, base_rent=base_rent)


def _terminal(sn="T1", location_id="LOC-A", cash=None, last_online=None):
    return TerminalDraft(sn=sn, atm_id=sn, location_id=location_id, cash_on_hand=cash, last_online=last_online)


def _tx(id, sn="T1", amount=100.0, when=datetime(2024, 1, 15, 10, 0)):
    return TransactionRecord(
        id=id,
        terminal_sn=sn,
        timestamp=when,
        type="BUY",
        amount_cash=amount,
        amount_crypto=0.001,
        exchange_price=65000.0,
        markup_percent=0.12,
        fixed_fee=2.5,
        status="COMPLETED",
        gross_profit=amount * 0.1,
        source="GB",
        period="2024-Q1",
        metadata={"originalTxId": id},
    )


class TestUpsert:
    def test_insert_new_batch(self, db_session):
        result = sync_batch([_location()], [_terminal()], [_tx("TX-1"), _tx("TX-2")])
        assert result.to_dict() == {
            "locations_inserted": 1,
            "locations_updated": 0,
            "terminals_inserted": 1,
            "terminals_updated": 0,
            "transactions_inserted": 2,
            "transactions_ignored": 0,
        }
        terminal = db_session.get(Terminal, "T1")
        assert terminal.cash_on_hand == 5000.0
        assert terminal.location.name == "Store A"
        tx = db_session.get(Transaction, "TX-1")
        assert tx.metadata_json == {"originalTxId": "TX-1"}

    def test_resync_does_not_duplicate(self, db_session):
        batch = ([_location()], [_terminal()], [_tx("TX-1"), _tx("TX-2")])
        sync_batch(*batch)
        result = sync_batch(*batch)
        assert result.locations_updated == 1
        assert result.terminals_updated == 1
        assert result.transactions_inserted == 0
        assert result.transactions_ignored == 2
        assert db_session.query(Location).count() == 1
        assert db_session.query(Terminal).count() == 1
        assert db_session.query(Transaction).count() == 2

    def test_location_fields_overwritten_key_kept(self, db_session):
        sync_batch([_location(name="Old")], [], [])
        sync_batch([_location(name="New", rent_model="VOLUME_TIER")], [], [])
        location = db_session.get(Location, "LOC-A")
        assert location.name == "New"
        assert location.rent_model == "VOLUME_TIER"
        assert location.base_rent == 500.0

    def test_unreported_cash_keeps_stored_balance(self, db_session):
        sync_batch([_location()], [_terminal(cash=1200.0)], [])
        sync_batch([_location()], [_terminal(cash=None, last_online=datetime(2024, 2, 1))], [])
        terminal = db_session.get(Terminal, "T1")
        assert terminal.cash_on_hand == 1200.0
        assert terminal.last_online == datetime(2024, 2, 1)

    def test_duplicate_ids_within_batch_ignored(self, db_session):
        result = sync_batch([_location()], [_terminal()], [_tx("TX-1"), _tx("TX-1", amount=999.0)])
        assert result.transactions_inserted == 1
        assert result.transactions_ignored == 1
        assert db_session.get(Transaction, "TX-1").amount_cash == 100.0

    def test_existing_transaction_never_updated(self, db_session):
        sync_batch([_location()], [_terminal()], [_tx("TX-1", amount=100.0)])
        sync_batch([_location()], [_terminal()], [_tx("TX-1", amount=555.0)])
        assert db_session.get(Transaction, "TX-1").amount_cash == 100.0


class TestAtomicity:
    def test_failure_rolls_back_whole_batch(self, db_session, monkeypatch):
        def boom(records, result):
            raise RuntimeError("disk I/O error")

        monkeypatch.setattr(sync_service, "_insert_transactions", boom)
        with pytest.raises(SyncError, match="disk I/O error"):
            sync_batch([_location()], [_terminal()], [_tx("TX-1")])

        assert db_session.query(Location).count() == 0
        assert db_session.query(Terminal).count() == 0
        assert db_session.query(Transaction).count() == 0

    def test_failure_keeps_previous_state(self, db_session, monkeypatch):
        sync_batch([_location(name="Original")], [_terminal()], [_tx("TX-1")])

        def boom(records, result):
            raise RuntimeError("constraint failed")

        monkeypatch.setattr(sync_service, "_insert_transactions", boom)
        with pytest.raises(SyncError):
            sync_batch([_location(name="Renamed")], [_terminal()], [_tx("TX-2")])

        db_session.expire_all()
        assert db_session.get(Location, "LOC-A").name == "Original"
        assert db_session.query(Transaction).count() == 1

    def test_lock_error_is_retried(self, db_session, monkeypatch):
        original = sync_service._insert_transactions
        calls = []

        def flaky(records, result):
            calls.append(1)
            if len(calls) == 1:
                raise OperationalError("INSERT", {}, Exception("database is locked"))
            original(records, result)

        monkeypatch.setattr(sync_service, "_insert_transactions", flaky)
        result = sync_batch([_location()], [_terminal()], [_tx("TX-1")])
        assert len(calls) == 2
        assert result.locations_inserted == 1
        assert result.transactions_inserted == 1
        assert db_session.query(Location).count() == 1


class TestFetchAll:
    def test_transactions_newest_first(self, db_session):
        sync_batch(
            [_location()],
            [_terminal()],
            [_tx("OLD", when=datetime(2024, 1, 1)), _tx("NEW", when=datetime(2024, 3, 1))],
        )
        state = fetch_all()
        assert [t.id for t in state["transactions"]] == ["NEW", "OLD"]
        assert [l.id for l in state["locations"]] == ["LOC-A"]
        assert len(fetch_all(limit=1)["transactions"]) == 1


class TestPayload:
    def test_parses_camel_case_contract(self):
        locations, terminals, transactions = drafts_from_payload({
            "locations": [{"id": "LOC-A", "name": "A", "rentModel": "VOLUME_TIER", "baseRent": 750}],
            "terminals": [{"sn": "T1", "locationId": "LOC-A", "lastOnline": "2024-01-01T00:00:00Z"}],
            "transactions": [{
                "id": "TX-1", "terminalSn": "T1", "timestamp": "2024-01-01T10:00:00Z",
                "amountCash": "250", "grossProfit": 25, "status": "COMPLETED",
            }],
        })
        assert locations[0].rent_model == "VOLUME_TIER"
        assert locations[0].base_rent == 750.0
        assert terminals[0].atm_id == "T1"
        assert terminals[0].cash_on_hand is None
        assert terminals[0].last_online == datetime(2024, 1, 1)
        assert transactions[0].amount_cash == 250.0
        assert transactions[0].timestamp == datetime(2024, 1, 1, 10, 0)

    @pytest.mark.parametrize(
        "payload",
        [
            [],
            {"locations": "nope"},
            {"locations": [{"name": "no id"}]},
            {"terminals": [{"sn": "T1"}]},
            {"transactions": [{"id": "TX", "terminalSn": "T1", "amountCash": "lots"}]},
            {"transactions": [{"id": "TX", "terminalSn": "T1", "timestamp": "whenever"}]},
            {"locations": [{"id": "L", "rentModel": "WEEKLY"}]},
            {"transactions": [{"id": "TX", "terminalSn": "T1", "source": "ATM-R-US"}]},
            {"locations": ["LOC-A"]},
            {"terminals": [{"sn": "T1", "locationId": "L"}, None]},
            {"transactions": [{"id": "TX", "terminalSn": "T1", "metadata": "oops"}]},
            {"transactions": [{"id": "TX", "terminalSn": "T1", "amountCash": "NaN"}]},
            {"locations": [{"id": "L", "baseRent": "inf"}]},
        ],
    )
    def test_rejects_bad_payload(self, payload):
        with pytest.raises(SyncError):
            drafts_from_payload(payload)
