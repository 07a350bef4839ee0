"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi create-master --email ops@example.com --name Ops
    gunicorn wsgi:app
"""

from paxportal import create_app

app = create_app()
