"""
WSGI / Flask-Migrate entry point.

Usage:
    gunicorn wsgi:app
    flask db upgrade
    flask seed-roles    # create the ADMIN / QA / BA / TESTER roles
"""

from app import create_app

app = create_app()
