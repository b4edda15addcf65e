"""
Domain entity -> NGSI-LD attributes.

`to_attributes` builds the merge fragment; `to_entity` wraps it with id and
type for a create call. For trails, `drop_unchanged` strips attributes whose
value the broker already holds.
"""

import math
from datetime import datetime
from typing import Any, Dict, Optional

from ..core.constants import DEVICE_URN_PREFIX, NGSI_LD_CONTEXT
from ..core.models import Beach, CityWork, Entity, ExerciseTrail, SportsField, SportsVenue
from ..utils.time import to_iso

Attributes = Dict[str, Dict[str, Any]]

def prop(value: Any, unit_code: Optional[str] = None) -> Dict[str, Any]:
    p = {"type": "Property", "value": value}
    if unit_code:
        p["unitCode"] = unit_code
    return p

def date_prop(t: datetime) -> Dict[str, Any]:
    return prop({"@type": "DateTime", "@value": to_iso(t)})

def rel(urn: str) -> Dict[str, Any]:
    return {"type": "Relationship", "object": urn}

def geo_prop(geojson: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "GeoProperty", "value": geojson}

def _common(e: Entity, attrs: Attributes) -> None:
    if e.name:
        attrs["name"] = prop(e.name)
    if e.description:
        attrs["description"] = prop(e.description)
    if e.geometry is not None:
        attrs["location"] = geo_prop(e.geometry.as_geojson())
    if e.date_created:
        attrs["dateCreated"] = date_prop(e.date_created)
    if e.date_modified:
        attrs["dateModified"] = date_prop(e.date_modified)
    if e.category:
        attrs["category"] = prop(list(e.category))
    if e.see_also:
        attrs["seeAlso"] = prop(list(e.see_also))
    if e.managed_by:
        attrs["managedBy"] = rel(e.managed_by)
    if e.owner:
        attrs["owner"] = rel(e.owner)
    if e.source:
        attrs["source"] = prop(e.source)

def _beach(e: Beach, attrs: Attributes) -> None:
    if e.sensor_id:
        attrs["refSeeAlso"] = {"type": "Relationship", "object": [DEVICE_URN_PREFIX + e.sensor_id]}

def _trail(e: ExerciseTrail, attrs: Attributes) -> None:
    attrs["paymentRequired"] = prop("yes" if e.payment_required else "no")
    if e.date_last_prepared:
        attrs["dateLastPreparation"] = date_prop(e.date_last_prepared)
    if e.area_served:
        attrs["areaServed"] = prop(e.area_served)
    if e.status:
        attrs["status"] = prop(e.status)
    if e.public_access:
        attrs["publicAccess"] = prop(e.public_access)
    attrs["annotations"] = prop(e.annotations or "")
    if e.length > 0.1:
        attrs["length"] = prop(e.length)
    if e.width > 0.1:
        attrs["width"] = prop(round(e.width, 1), "CMT")
    if e.difficulty is not None and e.difficulty >= 0:
        attrs["difficulty"] = prop(round(e.difficulty, 2))
    if e.elevation_gain > 0.1:
        attrs["elevationGain"] = prop(round(e.elevation_gain, 1), "MTR")

def _sports_field(e: SportsField, attrs: Attributes) -> None:
    if e.date_last_prepared:
        attrs["dateLastPreparation"] = date_prop(e.date_last_prepared)
    if e.public_access:
        attrs["publicAccess"] = prop(e.public_access)

def _sports_venue(e: SportsVenue, attrs: Attributes) -> None:
    if e.public_access:
        attrs["publicAccess"] = prop(e.public_access)

def _city_work(e: CityWork, attrs: Attributes) -> None:
    if e.start_date:
        attrs["startDate"] = date_prop(e.start_date)
    if e.end_date:
        attrs["endDate"] = date_prop(e.end_date)
    if e.restrictions:
        attrs["restrictions"] = prop(e.restrictions)
    if e.level:
        attrs["level"] = prop(e.level)

_EXTRA = {
    Beach: _beach,
    ExerciseTrail: _trail,
    SportsField: _sports_field,
    SportsVenue: _sports_venue,
    CityWork: _city_work,
}

def to_attributes(e: Entity) -> Attributes:
    attrs: Attributes = {}
    _common(e, attrs)
    extra = _EXTRA.get(type(e))
    if extra:
        extra(e, attrs)
    return attrs

def to_fragment(attrs: Attributes) -> Dict[str, Any]:
    return {"@context": [NGSI_LD_CONTEXT], **attrs}

def to_entity(e: Entity, attrs: Optional[Attributes] = None) -> Dict[str, Any]:
    body = {"id": e.id, "type": e.type_name}
    body.update(to_fragment(to_attributes(e) if attrs is None else attrs))
    return body

# =========================
# UNCHANGED-ATTRIBUTE SUPPRESSION
# =========================

# always sent, whatever the broker holds
_ALWAYS = {"dateCreated", "dateModified", "dateLastPreparation", "paymentRequired", "managedBy", "owner"}

# omitted from the fragment when empty
_CLEARABLE = ("name", "description")

def _value_of(attr: Any) -> Any:
    if isinstance(attr, dict):
        if "value" in attr:
            return attr["value"]
        if "object" in attr:
            return attr["object"]
    return attr

def _close(a: Any, b: Any, eps: float) -> bool:
    try:
        return math.isclose(float(a), float(b), rel_tol=0.0, abs_tol=eps)
    except (TypeError, ValueError):
        return False

def _same_positions(a: Any, b: Any) -> bool:
    if isinstance(a, (int, float)) and not isinstance(a, bool):
        return _close(a, b, 0.00001)
    if not (isinstance(a, list) and isinstance(b, list)) or len(a) != len(b):
        return False
    return all(_same_positions(x, y) for x, y in zip(a, b))

def _unchanged(name: str, new: Dict[str, Any], old: Any) -> bool:
    nv, ov = _value_of(new), _value_of(old)
    if name == "location":
        if not (isinstance(nv, dict) and isinstance(ov, dict)) or nv.get("type") != ov.get("type"):
            return False
        return _same_positions(nv.get("coordinates"), ov.get("coordinates"))
    if isinstance(nv, bool) or isinstance(ov, bool):
        return nv == ov
    if isinstance(nv, (int, float)):
        return _close(nv, ov, 1e-9)
    if isinstance(nv, list):
        return isinstance(ov, list) and list(ov) == nv
    return nv == ov

def drop_unchanged(attrs: Attributes, existing: Optional[Dict[str, Any]]) -> Attributes:
    """
    Remove attributes whose value already matches `existing` (a retrieved entity).

    Text attributes that went empty upstream are only sent to clear a value
    the broker still holds.
    """
    if not existing:
        return dict(attrs)
    out: Attributes = {}
    for name, attr in attrs.items():
        if name not in _ALWAYS and name in existing and _unchanged(name, attr, existing[name]):
            continue
        out[name] = attr
    for name in _CLEARABLE:
        if name not in attrs and _value_of(existing.get(name)) not in (None, ""):
            out[name] = prop("")
    return out
