# backend/wsgi.py
from sierra import create_app

app = create_app()
