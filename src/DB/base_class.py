"""
src/DB/base_class.py
=================================
SQLAlchemy Base Model Definition
=================================

Declarative base class for the fence service models.

Note:
    The service does not create or migrate tables; Base.metadata only
    describes the existing fence table for ORM reads.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models in the application.

    Models set ``__tablename__`` themselves (the fence table name comes
    from settings).
    """
