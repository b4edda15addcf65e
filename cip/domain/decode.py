"""
Facility decoding: RawFeature -> typed domain entity.

Every entity kind owns a table of field id -> handler. The field list is
walked once; each handler mutates the entity under construction. Field ids
missing from a kind's table are not part of that kind's catalog and are
skipped on purpose.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Optional, Type

from ..core.constants import FACILITY_ID_PREFIX, SENSOR_PREFIX
from ..core.models import (
    Beach, DecodeResult, Entity, ExerciseTrail, RawFeature, SportsField, SportsVenue
)
from ..utils.log import log_line
from ..utils.time import parse_upstream_time
from .fields import (
    DIFFICULTY, OPEN_STATUS, PUBLIC_ACCESS, DecodeError,
    decode_geometry, lookup, organisation_urn, parse_fields, parse_int,
    unescape_slashes, unquote, value_matches,
)

FieldHandler = Callable[[Any, Any], None]

@dataclass(frozen=True)
class FacilityKind:
    name: str
    entity_cls: Type[Entity]
    types: FrozenSet[str]
    fields: Dict[int, FieldHandler]
    # runs before the field walk
    prepare: Optional[Callable[[Any, RawFeature], None]] = None
    # runs after the field walk; a returned string marks the feature as ignored
    finish: Optional[Callable[[Any, RawFeature], Optional[str]]] = None
    # drop attributes the broker already holds before merging
    diff_existing: bool = False

def entity_id(entity_cls: Type[Entity], feature_id: int) -> str:
    return f"urn:ngsi-ld:{entity_cls.type_name}:{FACILITY_ID_PREFIX}{feature_id}"

# =========================
# SHARED HANDLERS
# =========================

def _description(e: Entity, v: Any) -> None:
    e.description = unquote(v)

def _see_also(e: Entity, v: Any) -> None:
    e.see_also = [unescape_slashes(unquote(v))]

def _public_access(e: Any, v: Any) -> None:
    e.public_access = lookup(PUBLIC_ACCESS, v, "public access")

def _flag_category(tag: str) -> FieldHandler:
    def handler(e: Entity, v: Any) -> None:
        if value_matches(v, "Ja"):
            e.add_category(tag)
    return handler

def _enum_category(table: Dict[str, str], what: str) -> FieldHandler:
    def handler(e: Entity, v: Any) -> None:
        e.add_category(lookup(table, v, what))
    return handler

# =========================
# BEACHES
# =========================

BEACH_BATH_URL = "https://badplatsen.havochvatten.se/badplatsen/karta/#/bath/{}"
WIKIDATA_URL = "https://www.wikidata.org/wiki/{}"

# feature id -> (NUTS code, Wikidata id)
BEACH_REFS: Dict[int, tuple] = {
    283: ("SE0712281000003473", "Q10671745"),     # Slädaviken
    284: ("SE0712281000003472", "Q680645"),       # Hartungviken
    295: ("SE0712281000003474", "Q106657132"),    # Tranviken
    315: ("SE0712281000003471", "Q106657054"),    # Bänkåsviken
    322: ("SE0712281000003478", "Q106710721"),    # Stekpannan, Hornsjön
    323: ("SE0712281000003477", "Q106710719"),    # Dyket
    337: ("SE0712281000003450", ""),              # Fläsian, Nord
    357: ("SE0712281000003479", "Q106710722"),    # Sodom
    414: ("SE0712281000003464", "Q106710690"),    # Rännö
    421: ("SE0712281000003461", "Q106710684"),    # Lucksta
    430: ("SE0712281000003462", "Q106710685"),    # Norrhassel
    442: ("SE0712281000003469", "Q106710700"),    # Viggesand
    456: ("SE0712281000003468", "Q106710698"),    # Räveln
    469: ("SE0712281000003452", "Q106710670"),    # Segersjön
    488: ("SE0712281000003470", "Q106710701"),    # Vången
    495: ("SE0712281000003467", "Q106710696"),    # Edeforsens badplats
    513: ("SE0712281000003463", "Q106710688"),    # Pallviken
    526: ("SE0712281000003466", "Q106710694"),    # Östtjärn
    553: ("SE0712281000003475", "Q16498519"),     # Bergafjärden
    560: ("SE0712281000003455", "Q106710675"),    # Brudsjön
    656: ("SE0712281000003459", "Q106710678"),    # Sandnäset
    658: ("SE0712281000003460", "Q106710681"),    # Västbyn
    659: ("SE0712281000003453", "Q106710672"),    # Väster-Lövsjön
    660: ("SE0712281000004229", ""),              # Sidsjöns hundbad
    897: ("SE0712281000003456", "Q106710677"),    # Kävstabadet, Indal
    1234: ("SE0712281000003476", "Q106710717"),   # Bredsand
    1618: ("SE0712281000003454", "Q106947945"),   # Bjässjön
    1631: ("SE0712281000003480", ""),             # Fläsian, Syd
}

def _beach_sensor(e: Beach, v: Any) -> None:
    e.sensor_id = SENSOR_PREFIX + unquote(v)
    log_line(f"BEACH SENSOR | id={e.id} | sensor={e.sensor_id}")

def _beach_refs(e: Beach, feature: RawFeature) -> None:
    nuts, wikidata = BEACH_REFS.get(feature.id, ("", ""))
    if nuts:
        e.nuts_code = nuts
        e.see_also.append(BEACH_BATH_URL.format(nuts))
    if wikidata:
        e.wikidata_id = wikidata
        e.see_also.append(WIKIDATA_URL.format(wikidata))

BEACHES = FacilityKind(
    name="beaches",
    entity_cls=Beach,
    types=frozenset({"Strandbad"}),
    fields={
        1: _description,
        230: _beach_sensor,
    },
    prepare=_beach_refs,
)

# =========================
# EXERCISE TRAILS
# =========================

BIKE_TRAIL = "Cykelled"
EXERCISE_TRAIL = "Motionsspår"
ICE_SKATING_TRAIL = "Långfärdsskridskoled"
SKI_LIFT = "Skidlift"
SKI_SLOPE = "Skidpist"
SKI_TRACK = "Skidspår"

TRAIL_TYPE_CATEGORY = {
    ICE_SKATING_TRAIL: "ice-skating",
    BIKE_TRAIL: "bike-track",
    SKI_SLOPE: "ski-slope",
    SKI_LIFT: "ski-lift",
}

BIKE_TRACK_TYPES = {
    "Crosscountry": "bike-track-xc",
    "Enduro": "bike-track-enduro",
    "Flow": "bike-track-flow",
}

LIFT_TYPES = {"Bygellift": "anchor-lift", "Knapplift": "button-lift"}

def _trail_length(e: ExerciseTrail, v: Any) -> None:
    meters = parse_int(v)
    if meters is not None:
        e.length = meters / 1000.0

def _trail_elevation_gain(e: ExerciseTrail, v: Any) -> None:
    meters = parse_int(v)
    if meters is None:
        log_line(f"ELEVATION PARSE FAILED | name={e.name} | value={v!r}", "ERROR")
        return
    e.elevation_gain = float(meters)

def _trail_status(e: ExerciseTrail, v: Any) -> None:
    e.status = lookup(OPEN_STATUS, v, "open status")

def _trail_payment(e: ExerciseTrail, v: Any) -> None:
    e.payment_required = unquote(v) != "Nej"

def _trail_difficulty(e: ExerciseTrail, v: Any) -> None:
    e.difficulty = lookup(DIFFICULTY, v, "difficulty") / 4.0

def _trail_area_served(e: ExerciseTrail, v: Any) -> None:
    e.area_served = unquote(v)

def _trail_annotations(e: ExerciseTrail, v: Any) -> None:
    e.annotations = unescape_slashes(unquote(v))

def _trail_width(e: ExerciseTrail, v: Any) -> None:
    s = unquote(v)
    if not s.endswith(" cm"):
        return
    try:
        e.width = float(s[:-3])
    except ValueError as err:
        raise DecodeError(f"invalid trail width value {s!r}") from err

def _trail_type_category(e: ExerciseTrail, feature: RawFeature) -> None:
    tag = TRAIL_TYPE_CATEGORY.get(feature.type)
    if tag:
        e.add_category(tag)

EXERCISE_TRAILS = FacilityKind(
    name="exercise trails",
    entity_cls=ExerciseTrail,
    types=frozenset({BIKE_TRAIL, EXERCISE_TRAIL, ICE_SKATING_TRAIL, SKI_LIFT, SKI_SLOPE, SKI_TRACK}),
    fields={
        99: _trail_length,
        100: _trail_elevation_gain,
        102: _trail_status,
        103: _flag_category("floodlit"),
        104: _trail_payment,
        109: _trail_difficulty,
        110: _description,
        114: _enum_category(BIKE_TRACK_TYPES, "bike track type"),
        134: _trail_area_served,
        248: _flag_category("ski-classic"),
        249: _flag_category("ski-skate"),
        250: _flag_category("ski-classic"),
        251: _flag_category("ski-skate"),
        282: _public_access,
        283: _see_also,
        284: _enum_category(LIFT_TYPES, "lift type"),
        294: _trail_annotations,
        313: _trail_width,
    },
    prepare=_trail_type_category,
    diff_existing=True,
)

# =========================
# SPORTS FIELDS
# =========================

ICE_SURFACES = ("skating", "hockey", "bandy")

def _ice_rink_only(e: SportsField, feature: RawFeature) -> Optional[str]:
    if not any(tag in e.category for tag in ICE_SURFACES):
        return "sports field is not an ice surface"
    e.add_category("ice-rink")
    return None

SPORTS_FIELDS = FacilityKind(
    name="sports fields",
    entity_cls=SportsField,
    types=frozenset({"Aktivitetsyta"}),
    fields={
        1: _description,
        137: _flag_category("skating"),
        138: _flag_category("hockey"),
        139: _flag_category("bandy"),
        153: _public_access,
        279: _flag_category("floodlit"),
    },
    finish=_ice_rink_only,
)

# =========================
# SPORTS VENUES
# =========================

VENUE_CATEGORY = {
    "Badhus": "swimming-pool",
    "Ishall": "ice-rink",
    "Sporthall": "sports-hall",
}

def _venue_category(e: SportsVenue, feature: RawFeature) -> None:
    e.add_category(lookup(VENUE_CATEGORY, feature.type, "sports venue type"))

SPORTS_VENUES = FacilityKind(
    name="sports venues",
    entity_cls=SportsVenue,
    types=frozenset(VENUE_CATEGORY),
    fields={
        78: _description,
        151: _see_also,
        200: _public_access,
    },
    prepare=_venue_category,
)

FACILITY_KINDS = (EXERCISE_TRAILS, BEACHES, SPORTS_FIELDS, SPORTS_VENUES)

KIND_BY_TYPE: Dict[str, FacilityKind] = {t: k for k in FACILITY_KINDS for t in k.types}

# =========================
# DECODE
# =========================

def decode_facility(feature: RawFeature, kind: Optional[FacilityKind] = None) -> DecodeResult:
    """
    Decode one facility feature.

    Unpublished features still yield an entity carrying id and name so the
    deletion path knows which entity to remove; nothing else is decoded.
    """
    kind = kind or KIND_BY_TYPE.get(feature.type)
    if kind is None:
        return DecodeResult.failed(DecodeError(f"unsupported feature type: {feature.type!r}"))

    entity = kind.entity_cls(id=entity_id(kind.entity_cls, feature.id), name=feature.name)
    if not feature.published:
        return DecodeResult.decoded(entity)

    try:
        entity.date_created = parse_upstream_time(feature.created)
        entity.date_modified = parse_upstream_time(feature.updated)
        entity.geometry = decode_geometry(feature.geometry)
        entity.managed_by = organisation_urn(feature.manager)
        entity.owner = organisation_urn(feature.owner)

        if kind.prepare:
            kind.prepare(entity, feature)

        for field_id, value in parse_fields(feature.fields):
            handler = kind.fields.get(field_id)
            if handler is not None:
                handler(entity, value)

        if kind.finish:
            reason = kind.finish(entity, feature)
            if reason:
                return DecodeResult.ignored(reason)
    except DecodeError as e:
        return DecodeResult.failed(e)

    return DecodeResult.decoded(entity)
