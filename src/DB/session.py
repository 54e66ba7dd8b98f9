"""
src/DB/session.py
======================================
Database Session Configuration Module
======================================

Establishes the SQLAlchemy engine and session factory for the fence service.

Usage Example:
-------------
    from src.DB.session import SessionLocal

    with SessionLocal() as db:
        store = SqlFenceStore(db)
        records = store.load_fences()

Session Configuration:
---------------------
- autocommit=False: Remediation updates are committed explicitly, one bulk
  statement per call
- autoflush=False: Changes are not flushed before queries
- bind=engine: Sessions are bound to the configured database engine

Note:
    create_engine() does not open a connection; the first query does.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from src.Core.config import settings


# ============================================================
# DATABASE ENGINE CONFIGURATION
# ============================================================
engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)


# ============================================================
# SESSION FACTORY CONFIGURATION
# ============================================================
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)
