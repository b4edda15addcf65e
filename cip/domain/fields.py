"""
Helpers for the facilities field catalog.

Field values arrive as raw JSON fragments: scalar strings may still carry
their surrounding quotes (e.g. '"Lätt"'), numbers may be bare.
"""

import json
from typing import Any, Dict, Optional

from ..core.constants import ORGANISATION_URN
from ..core.models import Geometry, Organisation, RawGeometry

class DecodeError(ValueError):
    """A single feature could not be decoded."""

class UnknownEnumValue(DecodeError):
    def __init__(self, what: str, value: str):
        super().__init__(f"unknown {what} value: {value!r}")
        self.what = what
        self.value = value

# Shared option tables (Swedish labels from the catalog)
OPEN_STATUS = {"Ja": "open", "Nej": "closed"}

DIFFICULTY = {
    "Mycket lätt": 0,
    "Lätt": 1,
    "Medelsvår": 2,
    "Svår": 3,
    "Mycket svår": 4,
}

PUBLIC_ACCESS = {
    "Hela dygnet": "always",
    "Nej": "no",
    "Särskilda öppettider": "opening-hours",
    "Utanför skoltid": "after-school",
}

def unquote(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        return str(value)
    if len(value) >= 2 and value[0] == '"' and value[-1] == '"':
        return value[1:-1]
    return value

def unescape_slashes(s: str) -> str:
    return s.replace("\\/", "/")

def value_matches(value: Any, expectation: str) -> bool:
    return unquote(value) == expectation

def lookup(table: Dict[str, Any], value: Any, what: str) -> Any:
    key = unquote(value)
    if key not in table:
        raise UnknownEnumValue(what, key)
    return table[key]

def parse_int(value: Any) -> Optional[int]:
    s = unquote(value).strip()
    try:
        return int(s)
    except ValueError:
        try:
            return int(float(s))
        except ValueError:
            return None

def organisation_urn(org: Optional[Organisation]) -> str:
    if org is None:
        return ""
    return ORGANISATION_URN.format(org.organisation_id)

def parse_fields(raw: Any) -> list:
    """Return [(field_id, value), ...] from the feature's field list."""
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise DecodeError(f"failed to unmarshal property fields: {e}") from e
    if not isinstance(raw, list):
        raise DecodeError(f"property fields is not a list: {type(raw).__name__}")

    out = []
    for f in raw:
        if not isinstance(f, dict) or "id" not in f:
            raise DecodeError(f"malformed property field: {f!r}")
        try:
            out.append((int(f["id"]), f.get("value")))
        except (TypeError, ValueError) as e:
            raise DecodeError(f"malformed property field id: {f.get('id')!r}") from e
    return out

# =========================
# GEOMETRY
# =========================

# nesting depth of the position arrays per GeoJSON type
_DEPTH = {
    "Point": 0,
    "LineString": 1,
    "MultiPoint": 1,
    "Polygon": 2,
    "MultiLineString": 2,
    "MultiPolygon": 3,
}

def _check_positions(coords: Any, depth: int) -> None:
    if depth == 0:
        if not (isinstance(coords, list) and len(coords) >= 2):
            raise DecodeError(f"invalid position: {coords!r}")
        for c in coords:
            if isinstance(c, bool) or not isinstance(c, (int, float)):
                raise DecodeError(f"invalid position: {coords!r}")
        return
    if not isinstance(coords, list):
        raise DecodeError(f"invalid coordinate array: {coords!r}")
    for c in coords:
        _check_positions(c, depth - 1)

def decode_geometry(raw: RawGeometry) -> Geometry:
    depth = _DEPTH.get(raw.type)
    if depth is None:
        raise DecodeError(f"unsupported geometry type: {raw.type!r}")

    coords = raw.coordinates
    if isinstance(coords, (str, bytes)):
        try:
            coords = json.loads(coords)
        except ValueError as e:
            raise DecodeError(f"failed to unmarshal geometry {coords!r}: {e}") from e

    _check_positions(coords, depth)
    return Geometry(raw.type, coords)
