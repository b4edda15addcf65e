"""
Disruption ("city work") decoding.

Positions come as SWEREF 99 TM grid pairs [easting, northing] inside a
GeometryCollection and are reprojected to WGS84.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from ..core.constants import CITY_WORK_TYPE
from ..core.models import CityWork, DecodeResult, Geometry
from ..utils.time import now_utc
from .dedup import fingerprint
from .fields import DecodeError
from .projection import grid_to_geodetic

@dataclass
class Disruption:
    geometries: List[Dict[str, Any]]
    title: str = ""
    description: str = ""
    restrictions: str = ""
    level: str = ""
    start: str = ""
    end: str = ""

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Disruption":
        g = d.get("geometry") or {}
        p = d.get("properties") or {}
        geoms = g.get("geometries")
        if geoms is None and g.get("type") == "Point":
            geoms = [g]
        return cls(
            geometries=[x for x in (geoms or []) if isinstance(x, dict)],
            title=str(p.get("title") or ""),
            description=str(p.get("description") or ""),
            restrictions=str(p.get("restrictions") or ""),
            level=str(p.get("level") or ""),
            start=str(p.get("start") or p.get("disruptionStart") or ""),
            end=str(p.get("end") or p.get("disruptionEnd") or ""),
        )

    def grid_point(self) -> Tuple[float, float]:
        """First Point geometry as (northing, easting)."""
        for g in self.geometries:
            if g.get("type") != "Point":
                continue
            coords = g.get("coordinates")
            try:
                easting, northing = float(coords[0]), float(coords[1])
            except (TypeError, ValueError, IndexError) as e:
                raise DecodeError(f"invalid point coordinates: {coords!r}") from e
            return northing, easting
        raise DecodeError("unable to parse point")

    def fingerprint(self) -> str:
        x, y = self.grid_point()
        return fingerprint(x, y, self.start, self.end)

def _day(value: str, clock: str) -> Optional[datetime]:
    # "2022-05-01Z" / "2022-05-01" -> 2022-05-01T<clock>Z
    d = value[:10]
    if not d:
        return None
    try:
        return datetime.strptime(f"{d}T{clock}", "%Y-%m-%dT%H:%M:%S").replace(tzinfo=timezone.utc)
    except ValueError as e:
        raise DecodeError(f"invalid disruption date: {value!r}") from e

def decode_citywork(d: Disruption) -> DecodeResult:
    try:
        x, y = d.grid_point()
        lon, lat = grid_to_geodetic(x, y)
        fp = fingerprint(x, y, d.start, d.end)

        cw = CityWork(
            id=f"urn:ngsi-ld:{CITY_WORK_TYPE}:{fp}",
            name=d.title,
            description=d.description,
            geometry=Geometry("Point", [lon, lat]),
            restrictions=d.restrictions,
            level=d.level,
            start_date=_day(d.start, "00:00:00"),
            end_date=_day(d.end, "23:59:59"),
            date_created=now_utc(),
        )
    except DecodeError as e:
        return DecodeResult.failed(e)
    return DecodeResult.decoded(cw)
