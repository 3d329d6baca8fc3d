"""
Region Data Model

A named boundary polygon used to spatially filter stations.
"""

from typing import Optional, Tuple

from pydantic import BaseModel, Field, validator
from shapely.geometry import MultiPolygon, Point, Polygon
from shapely.geometry.base import BaseGeometry


class Region(BaseModel):
    """
    Named polygon (or multi-polygon) in geographic coordinates (EPSG:4326).

    Immutable once loaded.
    """
    name: str = Field(..., description="Region name as stored in the boundary file")
    geometry: BaseGeometry = Field(..., description="Polygon or MultiPolygon, lon/lat")
    identifier: Optional[str] = Field(None, description="Source identifier, e.g. CBSA GEOID")

    @validator('geometry')
    def geometry_must_be_areal(cls, v):
        """Only polygonal, non-empty geometries describe a region"""
        if not isinstance(v, (Polygon, MultiPolygon)):
            raise ValueError(f"region geometry must be a Polygon or MultiPolygon, got {v.geom_type}")
        if v.is_empty:
            raise ValueError("region geometry is empty")
        return v

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """(min_lon, min_lat, max_lon, max_lat)"""
        return tuple(self.geometry.bounds)

    def contains_point(self, longitude: float, latitude: float) -> bool:
        """True when the point is inside the region or on its boundary."""
        return self.geometry.covers(Point(longitude, latitude))

    class Config:
        arbitrary_types_allowed = True
        frozen = True
