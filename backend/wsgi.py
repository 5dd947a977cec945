# backend/wsgi.py
from recargas import create_app

app = create_app()
