#src/Controller/deps.py

from typing import Generator
from fastapi import Depends
from sqlalchemy.orm import Session

from src.Core.config import settings
from src.DB.session import SessionLocal
from src.Repositories.fence import SqlFenceStore
from src.Services.fence_consistency import FenceConsistencyService
from src.Services.geometry_engine import geometry_engine


def get_DB() -> Generator:
    DB = SessionLocal()
    try:
        yield DB
    finally:
        DB.close()


def get_fence_service(DB: Session = Depends(get_DB)) -> FenceConsistencyService:
    return FenceConsistencyService(
        SqlFenceStore(DB),
        geometry_engine,
        tolerance=settings.CANONICAL_TOLERANCE_DEG
    )
