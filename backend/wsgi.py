# backend/wsgi.py
from kiosk_pnl import create_app

app = create_app()
