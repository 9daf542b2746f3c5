# backend/wsgi.py
# Entry point for `python -m flask` (FLASK_APP=wsgi.py) and WSGI servers.

from erp import create_app

app = create_app()
