# backend/wsgi.py
from elora import create_app

app = create_app()
