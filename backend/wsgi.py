# backend/wsgi.py
# Entry point for `flask` CLI (FLASK_APP=wsgi.py) and WSGI servers.
from backoffice import create_app

app = create_app()
