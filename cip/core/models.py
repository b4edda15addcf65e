from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Dict, Any

from .constants import (
    BEACH_TYPE, EXERCISE_TRAIL_TYPE, SPORTS_FIELD_TYPE, SPORTS_VENUE_TYPE, CITY_WORK_TYPE
)

# =========================
# UPSTREAM (facilities feed)
# =========================

@dataclass
class Organisation:
    organisation_id: int
    name: str = ""

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, Any]]) -> Optional["Organisation"]:
        if not d:
            return None
        return cls(int(d.get("organizationID") or 0), str(d.get("name") or ""))

@dataclass
class FeatureField:
    id: int
    value: Any  # raw value, possibly a JSON-quoted string

@dataclass
class RawGeometry:
    type: str = ""
    coordinates: Any = None  # opaque until decoded

@dataclass
class RawFeature:
    id: int
    type: str
    name: str = ""
    published: bool = False
    created: Optional[str] = None
    updated: Optional[str] = None
    deleted: Optional[str] = None
    manager: Optional[Organisation] = None
    owner: Optional[Organisation] = None
    fields: Any = field(default_factory=list)
    geometry: RawGeometry = field(default_factory=RawGeometry)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "RawFeature":
        p = d.get("properties") or {}
        g = d.get("geometry") or {}
        return cls(
            id=int(d.get("id") or 0),
            type=str(p.get("type") or ""),
            name=str(p.get("name") or ""),
            published=bool(p.get("published")),
            created=p.get("created"),
            updated=p.get("updated"),
            deleted=p.get("deleted"),
            manager=Organisation.from_dict(p.get("manager")),
            owner=Organisation.from_dict(p.get("owner")),
            fields=p.get("fields") or [],
            geometry=RawGeometry(str(g.get("type") or ""), g.get("coordinates")),
        )

@dataclass
class FeatureCollection:
    features: List[RawFeature] = field(default_factory=list)
    type: str = "FeatureCollection"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "FeatureCollection":
        feats = [RawFeature.from_dict(f) for f in (d.get("features") or []) if isinstance(f, dict)]
        return cls(feats, str(d.get("type") or "FeatureCollection"))

# =========================
# DOMAIN ENTITIES
# =========================

@dataclass
class Geometry:
    """GeoJSON geometry in WGS84 (lon, lat)."""
    type: str
    coordinates: Any

    def as_geojson(self) -> Dict[str, Any]:
        return {"type": self.type, "coordinates": self.coordinates}

@dataclass
class Entity:
    id: str
    name: str = ""
    description: str = ""
    geometry: Optional[Geometry] = None
    category: List[str] = field(default_factory=list)
    see_also: List[str] = field(default_factory=list)
    managed_by: str = ""
    owner: str = ""
    date_created: Optional[datetime] = None
    date_modified: Optional[datetime] = None
    source: str = ""

    type_name = ""

    def add_category(self, tag: str) -> None:
        """Categories only ever grow."""
        if tag and tag not in self.category:
            self.category.append(tag)

@dataclass
class Beach(Entity):
    sensor_id: Optional[str] = None
    nuts_code: Optional[str] = None
    wikidata_id: Optional[str] = None

    type_name = BEACH_TYPE

@dataclass
class ExerciseTrail(Entity):
    length: float = 0.0          # km
    width: float = 0.0           # cm
    elevation_gain: float = 0.0  # m
    difficulty: Optional[float] = None
    status: str = ""
    public_access: str = ""
    area_served: str = ""
    payment_required: bool = False
    annotations: Optional[str] = None
    date_last_prepared: Optional[datetime] = None

    type_name = EXERCISE_TRAIL_TYPE

@dataclass
class SportsField(Entity):
    public_access: str = ""
    date_last_prepared: Optional[datetime] = None

    type_name = SPORTS_FIELD_TYPE

@dataclass
class SportsVenue(Entity):
    public_access: str = ""

    type_name = SPORTS_VENUE_TYPE

@dataclass
class CityWork(Entity):
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    restrictions: str = ""
    level: str = ""

    type_name = CITY_WORK_TYPE

# =========================
# RESULTS
# =========================

class DecodeStatus(str, Enum):
    DECODED = "decoded"
    IGNORED = "ignored"
    FAILED = "failed"

@dataclass
class DecodeResult:
    status: DecodeStatus
    entity: Optional[Entity] = None
    reason: str = ""
    error: Optional[Exception] = None

    @classmethod
    def decoded(cls, entity: Entity) -> "DecodeResult":
        return cls(DecodeStatus.DECODED, entity=entity)

    @classmethod
    def ignored(cls, reason: str) -> "DecodeResult":
        return cls(DecodeStatus.IGNORED, reason=reason)

    @classmethod
    def failed(cls, error: Exception) -> "DecodeResult":
        return cls(DecodeStatus.FAILED, reason=str(error), error=error)

@dataclass
class PassResult:
    processed_count: int = 0
    created_count: int = 0
    merged_count: int = 0
    deleted_count: int = 0
    skipped_count: int = 0
    ignored_count: int = 0
    errors: List[str] = field(default_factory=list)

    def summary(self) -> str:
        return (
            f"processed={self.processed_count} merged={self.merged_count} "
            f"created={self.created_count} deleted={self.deleted_count} "
            f"skipped={self.skipped_count} ignored={self.ignored_count} errors={len(self.errors)}"
        )
