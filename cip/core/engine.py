import time
from typing import Any, Dict, Iterable, List, Optional

from .constants import BROKER_RECOVERY_S, EXERCISE_TRAIL_TYPE, FACILITY_ID_PREFIX, THROTTLE_S
from .models import DecodeStatus, Entity, FeatureCollection, PassResult, RawFeature
from ..adapters.broker_api import (
    BrokerError, EntityNotFound, create_entity, delete_entity, merge_entity, retrieve_entity
)
from ..domain.citywork import Disruption, decode_citywork
from ..domain.decode import FACILITY_KINDS, FacilityKind, decode_facility
from ..domain.dedup import SeenFeatureCache
from ..domain.deletion import DeletionWindowCache
from ..domain.fields import DecodeError
from ..domain.ngsi import date_prop, drop_unchanged, prop, to_attributes, to_entity, to_fragment
from ..utils.log import log_line
from ..utils.time import parse_rfc3339

class Reconciler:
    """
    Reconciles one source's features into the context broker.

    Per facility feature: classify -> decode -> deletion check -> upsert.
    Upsert is merge first; create only when the broker answers "not found".
    Any other merge failure pauses and moves on, never falls back to create.
    Features are handled strictly one after the other.
    """

    def __init__(
        self,
        cfg: Dict[str, Any],
        deletions: DeletionWindowCache,
        seen: Optional[SeenFeatureCache] = None,
        kinds: Iterable[FacilityKind] = FACILITY_KINDS,
    ):
        self.cfg = cfg
        self.deletions = deletions
        self.seen = seen if seen is not None else SeenFeatureCache()
        self.kinds = tuple(kinds)
        self.kind_by_type = {t: k for k in self.kinds for t in k.types}

    # =========================
    # FACILITIES
    # =========================

    def reconcile(self, source_url: str, collection: FeatureCollection) -> PassResult:
        """Run one pass over a facilities feature collection."""
        result = PassResult()
        for feature in collection.features:
            kind = self.kind_by_type.get(feature.type)
            if kind is None:
                continue
            result.processed_count += 1
            try:
                self._sync_feature(source_url, feature, kind, result)
            except Exception as e:
                # one broken feature must not cost the rest of the pass
                log_line(f"FEATURE FAILED | kind={kind.name} | feature={feature.id} | err={e!r}", "ERROR")
                result.errors.append(f"feature:{feature.id}")

        log_line(f"PASS DONE | source={source_url} | {result.summary()}")
        return result

    def _sync_feature(self, source_url: str, feature: RawFeature, kind: FacilityKind, result: PassResult) -> None:
        decoded = decode_facility(feature, kind)

        if decoded.status is DecodeStatus.IGNORED:
            log_line(f"IGNORED | kind={kind.name} | feature={feature.id} | reason={decoded.reason}", "DEBUG")
            result.ignored_count += 1
            return
        if decoded.status is DecodeStatus.FAILED:
            log_line(f"DECODE FAILED | kind={kind.name} | feature={feature.id} | err={decoded.reason}", "ERROR")
            result.errors.append(f"decode:{feature.id}:{decoded.reason}")
            return

        entity = decoded.entity

        ok_to_delete, already_handled = self.deletions.should_delete(feature)
        if ok_to_delete:
            if already_handled:
                result.skipped_count += 1
            else:
                self._delete(entity, result)
            return

        entity.source = f"{source_url}/get/{feature.id}"
        self._upsert(entity, kind, result)

    def _delete(self, entity: Entity, result: PassResult) -> None:
        try:
            delete_entity(self.cfg, entity.id)
        except BrokerError as e:
            log_line(f"DELETE FAILED | id={entity.id} | err={e}", "WARN")
            result.errors.append(f"delete:{entity.id}")
            return
        log_line(f"DELETED | id={entity.id}")
        result.deleted_count += 1

    def _upsert(self, entity: Entity, kind: FacilityKind, result: PassResult) -> None:
        attributes = to_attributes(entity)
        fragment = attributes
        if kind.diff_existing:
            fragment = drop_unchanged(attributes, self._current(entity.id))

        err: Optional[BrokerError] = None
        try:
            merge_entity(self.cfg, entity.id, to_fragment(fragment))
        except BrokerError as e:
            err = e

        # throttle so we dont kill the broker
        time.sleep(THROTTLE_S)

        if err is None:
            result.merged_count += 1
            return

        if isinstance(err, EntityNotFound):
            self._create(entity, attributes, result)
            return

        log_line(f"MERGE FAILED | id={entity.id} | err={err}", "ERROR")
        log_line("waiting for context broker to recover...")
        result.errors.append(f"merge:{entity.id}")
        time.sleep(BROKER_RECOVERY_S)

    def _create(self, entity: Entity, attributes: Dict[str, Any], result: PassResult) -> bool:
        try:
            created = create_entity(self.cfg, to_entity(entity, attributes))
        except BrokerError as e:
            log_line(f"CREATE FAILED | id={entity.id} | err={e}", "ERROR")
            result.errors.append(f"create:{entity.id}")
            return False

        if created:
            log_line(f"CREATED | id={entity.id}")
            result.created_count += 1
        else:
            log_line(f"CREATE NOOP | id={entity.id} | already exists")
        return True

    def _current(self, entity_id: str) -> Optional[Dict[str, Any]]:
        try:
            return retrieve_entity(self.cfg, entity_id)
        except BrokerError as e:
            log_line(f"RETRIEVE FAILED | id={entity_id} | err={e}", "WARN")
            return None

    # =========================
    # CITY WORK (no stable ids)
    # =========================

    def reconcile_cityworks(self, disruptions: List[Disruption]) -> PassResult:
        result = PassResult()
        for d in disruptions:
            result.processed_count += 1
            try:
                fp = d.fingerprint()
            except DecodeError as e:
                log_line(f"DECODE FAILED | kind=citywork | title={d.title!r} | err={e}", "ERROR")
                result.errors.append(f"decode:{d.title}")
                continue

            if self.seen.seen(fp):
                result.skipped_count += 1
                continue

            decoded = decode_citywork(d)
            if decoded.status is not DecodeStatus.DECODED:
                log_line(f"DECODE FAILED | kind=citywork | id={fp} | err={decoded.reason}", "ERROR")
                result.errors.append(f"decode:{fp}")
                continue

            if self._create(decoded.entity, to_attributes(decoded.entity), result):
                self.seen.mark_seen(fp)

        log_line(f"PASS DONE | source=citywork | {result.summary()}")
        return result

    # =========================
    # TRAIL PREPARATION
    # =========================

    def reconcile_trail_preparations(self, ski: Dict[str, Dict[str, Any]]) -> PassResult:
        """Merge open status and last preparation time into known exercise trails."""
        result = PassResult()
        for name, status in ski.items():
            external_id = str((status or {}).get("externalId") or "")
            if not external_id:
                continue
            result.processed_count += 1

            entity_id = f"urn:ngsi-ld:{EXERCISE_TRAIL_TYPE}:{FACILITY_ID_PREFIX}{external_id}"
            active = bool(status.get("isActive"))
            attributes = {"status": prop("open" if active else "closed")}

            if active:
                prepared = parse_rfc3339(status.get("lastPreparation"))
                if prepared is None:
                    log_line(f"PREPARATION TIME INVALID | trail={name} | value={status.get('lastPreparation')!r}", "WARN")
                else:
                    attributes["dateLastPreparation"] = date_prop(prepared)

            try:
                merge_entity(self.cfg, entity_id, to_fragment(attributes))
            except EntityNotFound:
                log_line(f"PREPARATION SKIPPED | trail={name} | id={entity_id} | not in broker", "WARN")
                result.skipped_count += 1
            except BrokerError as e:
                log_line(f"MERGE FAILED | id={entity_id} | err={e}", "ERROR")
                result.errors.append(f"merge:{entity_id}")
            else:
                result.merged_count += 1
            time.sleep(THROTTLE_S)

        log_line(f"PASS DONE | source=trail-preparation | {result.summary()}")
        return result
