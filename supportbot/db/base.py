"""
Shared SQLAlchemy Base for the support chatbot models.

All ORM models import `Base` from here so there is a single metadata
registry for schema creation.
"""

from sqlalchemy.orm import declarative_base

Base = declarative_base()
