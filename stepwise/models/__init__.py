"""
Stepwise
Database models package.

The shared ``db`` instance is created here and bound to the application
in ``stepwise.create_app``. Model modules import it from this package.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
