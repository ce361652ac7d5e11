# backend/wsgi.py
from riderops import create_app

app = create_app()
