"""Shared Flask extensions used by the claims portal packages."""

from flask_sqlalchemy import SQLAlchemy

# SQLAlchemy instance initialized in app.py so the local repository can import `db`.
db = SQLAlchemy()
