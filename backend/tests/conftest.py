"""
Pytest fixtures for kiosk P&L backend tests.

Provides test database setup, test client, and provider-extract builders.
"""

import csv
import io
from datetime import datetime

import pytest
from kiosk_pnl import create_app
from kiosk_pnl.extensions import db
from kiosk_pnl.services.normalization import BatchContext


GB_HEADERS = [
    "Transaction ID", "Server Time", "Terminal SN", "Type", "Status",
    "Cash Amount", "Crypto Amount", "Expected Profit Value",
]
BP_HEADERS = [
    "ATM ID", "Datetime", "Transaction Type", "Status", "Cash Value", "Coin Quantity",
    "Exchange Feed Price", "Gross Profit", "Location Store Name", "Location City",
    "Location State", "Location Postal Code",
]
BA_HEADERS = [
    "BTM Machine Name", "Created At", "Kind", "State", "Amount Deposited",
    "Actual Withdrawal Amount", "Flat Fee", "Margin Percentage", "Location ID",
]
OTC_HEADERS = [
    "CUST ID", "Customer Name", "Datetime", "Transaction Type", "Status",
    "$ TX Value", "Receiving Bank", "WALLET", "Location City", "Gross Profit",
]


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture
def context():
    """Batch context for mapper tests."""
    return BatchContext(source="GB", period="2024-Q1", imported_at=datetime(2024, 3, 31, 12, 0, 0))


@pytest.fixture
def make_csv():
    """Build CSV bytes from a header list and row dicts (missing cells are blank)."""
    def _make(headers, rows):
        buf = io.StringIO()
        writer = csv.DictWriter(buf, fieldnames=headers)
        writer.writeheader()
        for row in rows:
            writer.writerow(row)
        return buf.getvalue().encode("utf-8")
    return _make


@pytest.fixture
def gb_csv(make_csv):
    """Three General Bytes rows: two confirmed on one machine, one cancelled on another."""
    return make_csv(GB_HEADERS, [
        {
            "Transaction ID": "GB-1001", "Server Time": "2024-01-15 10:30:00", "Terminal SN": "BT300123",
            "Type": "BUY", "Status": "Confirmed", "Cash Amount": "1000.00", "Crypto Amount": "0.015",
            "Expected Profit Value": "120.00",
        },
        {
            "Transaction ID": "GB-1002", "Server Time": "2024-02-01 09:00:00", "Terminal SN": "BT300123",
            "Type": "SELL", "Status": "Confirmed", "Cash Amount": "500.00", "Crypto Amount": "0.007",
        },
        {
            "Transaction ID": "GB-1003", "Server Time": "2024-02-03 18:45:00", "Terminal SN": "BT300999",
            "Type": "BUY", "Status": "Cancelled", "Cash Amount": "250.00", "Crypto Amount": "0.003",
            "Expected Profit Value": "30.00",
        },
    ])
