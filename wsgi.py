"""
WSGI / Flask CLI entry point.

Usage:
    flask --app wsgi reconcile-pools
    flask --app wsgi db upgrade
    gunicorn wsgi:app
"""

from app import create_app

app = create_app()
