# Overview: WSGI entry point (FLASK_APP=wsgi.py).

from caisse import create_app

app = create_app()
