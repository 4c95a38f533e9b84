"""
Commissioning Report Editor
SQLAlchemy database instance shared by all models.

Usage:
    from commissioning.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
