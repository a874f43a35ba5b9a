"""
Flask-Migrate / Alembic entry point.

Usage:
    flask --app wsgi db migrate -m "description"
    flask --app wsgi db upgrade
    gunicorn wsgi:app
"""

from stepwise import create_app

app = create_app()
