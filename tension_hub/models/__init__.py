"""
Tension Hub — SQLAlchemy database handle.

All models import ``db`` from here so the app factory can bind it once via
``db.init_app(app)``.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
