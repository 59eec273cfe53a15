# backend/wsgi.py
from coinseal import create_app

app = create_app()
