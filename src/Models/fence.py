# src/Models/fence.py

from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import declared_attr
from geoalchemy2 import Geometry
from src.DB.base_class import Base
from src.Core.config import settings


class Fence(Base):
    """
    Fence (geofence polygon) with PostGIS geometry.

    Rows are created, edited and deleted by the CRUD application. This
    service only reads them and rewrites `geom` (repair) or `status`
    (soft deactivation).
    """

    @declared_attr.directive
    def __tablename__(cls) -> str:
        return settings.FENCES_TABLE

    # Serial id: monotonically assigned, never reused
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=True)

    # 'active' | 'inactive'; NULL is reported as 'unknown'
    status = Column(String(20), nullable=True)

    # Optional columns, absent on the simple schema
    address = Column(String(500), nullable=True)
    city = Column(String(120), nullable=True)

    # POLYGON or MULTIPOLYGON, SRID 4326 (lon/lat)
    geom = Column(
        Geometry('GEOMETRY', srid=4326),
        nullable=True
    )

    def __repr__(self):
        return f"<Fence(id={self.id!r}, name={self.name!r}, status={self.status!r})>"
