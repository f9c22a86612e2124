"""
Worktrack Platform
Model package.

All models share the single ``db`` instance defined here:

    from app.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
