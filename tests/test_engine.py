"""
Tests for engine.py - the reconciliation loop.

Broker calls are patched where the engine imports them, so every test can
assert exactly which writes a pass produced.

Covers:
- Merge first, create only on "not found"
- Any other merge failure pauses and never creates
- Deletion path (once per feature, never for live features)
- City work fingerprint dedup across passes
- Trail preparation merges
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import call, patch

import pytest

from cip.adapters.broker_api import BrokerError, EntityNotFound
from cip.core.engine import Reconciler
from cip.core.models import FeatureCollection, Organisation, RawFeature, RawGeometry
from cip.domain.citywork import Disruption
from cip.domain.dedup import SeenFeatureCache
from cip.domain.deletion import DeletionWindowCache

NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)
SOURCE = "https://api.example.se/facilities/2.1"
CFG = {"context_broker_url": "http://broker:8080"}


@pytest.fixture
def broker():
    with patch('cip.core.engine.merge_entity') as merge, \
            patch('cip.core.engine.create_entity') as create, \
            patch('cip.core.engine.delete_entity') as delete, \
            patch('cip.core.engine.retrieve_entity') as retrieve, \
            patch('cip.core.engine.time.sleep') as sleep:
        create.return_value = True
        retrieve.return_value = None
        yield SimpleNamespace(merge=merge, create=create, delete=delete, retrieve=retrieve, sleep=sleep)


def reconciler():
    return Reconciler(CFG, DeletionWindowCache(clock=lambda: NOW), SeenFeatureCache())


def venue(fid=1234, published=True, updated=NOW, type_="Sporthall"):
    return RawFeature(
        id=fid,
        type=type_,
        name="Sporthallen",
        published=published,
        created="2019-01-02 10:00:00",
        updated=updated.strftime("%Y-%m-%d %H:%M:%S"),
        manager=Organisation(889, "Sundsvalls kommun"),
        fields=[{"id": 78, "value": "En hall"}],
        geometry=RawGeometry("Point", [17.3, 62.39]),
    )


def trail(fid=796, fields=None):
    return RawFeature(
        id=fid,
        type="Motionsspår",
        name="Sidsjöspåret",
        published=True,
        created="2019-01-02 10:00:00",
        updated="2021-11-02 08:30:00",
        fields=fields or [{"id": 110, "value": "Ett spår"}, {"id": 109, "value": "Lätt"}],
        geometry=RawGeometry("LineString", [[17.28, 62.38], [17.29, 62.39]]),
    )


def collection(*features):
    return FeatureCollection(list(features))


class TestUpsert:
    """Merge first; create only when the broker has no such entity."""

    def test_merge_success(self, broker):
        result = reconciler().reconcile(SOURCE, collection(venue()))

        assert result.merged_count == 1
        broker.create.assert_not_called()

        entity_id, fragment = broker.merge.call_args[0][1:]
        assert entity_id == "urn:ngsi-ld:SportsVenue:se:sundsvall:facilities:1234"
        assert fragment["source"]["value"] == f"{SOURCE}/get/1234"
        assert fragment["category"]["value"] == ["sports-hall"]
        assert "@context" in fragment
        assert "id" not in fragment

    def test_not_found_creates_once(self, broker):
        broker.merge.side_effect = EntityNotFound("missing", 404)

        result = reconciler().reconcile(SOURCE, collection(venue()))

        assert broker.create.call_count == 1
        body = broker.create.call_args[0][1]
        assert body["id"] == "urn:ngsi-ld:SportsVenue:se:sundsvall:facilities:1234"
        assert body["type"] == "SportsVenue"
        assert body["description"]["value"] == "En hall"
        assert result.created_count == 1

    def test_other_merge_failure_never_creates(self, broker):
        broker.merge.side_effect = BrokerError("bad request", 400)

        result = reconciler().reconcile(SOURCE, collection(venue()))

        broker.create.assert_not_called()
        assert call(10.0) in broker.sleep.call_args_list
        assert result.errors == ["merge:urn:ngsi-ld:SportsVenue:se:sundsvall:facilities:1234"]

    def test_throttle_after_every_merge(self, broker):
        reconciler().reconcile(SOURCE, collection(venue(1), venue(2)))

        assert broker.sleep.call_args_list == [call(0.1), call(0.1)]

    def test_create_failure_is_recorded(self, broker):
        broker.merge.side_effect = EntityNotFound("missing", 404)
        broker.create.side_effect = BrokerError("boom", 500)

        result = reconciler().reconcile(SOURCE, collection(venue()))

        assert result.created_count == 0
        assert len(result.errors) == 1

    def test_trail_sends_only_changed_attributes(self, broker):
        broker.retrieve.return_value = {
            "id": "urn:ngsi-ld:ExerciseTrail:se:sundsvall:facilities:796",
            "description": {"type": "Property", "value": "Ett spår"},
            "difficulty": {"type": "Property", "value": 0.5},
        }

        reconciler().reconcile(SOURCE, collection(trail()))

        fragment = broker.merge.call_args[0][2]
        assert "description" not in fragment
        assert fragment["difficulty"]["value"] == 0.25
        assert fragment["paymentRequired"]["value"] == "no"

    def test_trail_create_uses_full_attributes(self, broker):
        broker.retrieve.return_value = {"description": {"type": "Property", "value": "Ett spår"}}
        broker.merge.side_effect = EntityNotFound("missing", 404)

        reconciler().reconcile(SOURCE, collection(trail()))

        body = broker.create.call_args[0][1]
        assert body["description"]["value"] == "Ett spår"

    def test_retrieve_failure_sends_everything(self, broker):
        broker.retrieve.side_effect = BrokerError("down", 503)

        reconciler().reconcile(SOURCE, collection(trail()))

        fragment = broker.merge.call_args[0][2]
        assert fragment["description"]["value"] == "Ett spår"


class TestClassification:

    def test_unsupported_types_are_skipped(self, broker):
        result = reconciler().reconcile(SOURCE, collection(venue(type_="Lekplats")))

        assert result.processed_count == 0
        broker.merge.assert_not_called()
        broker.delete.assert_not_called()

    def test_ignored_sports_field(self, broker):
        field = RawFeature(
            id=9, type="Aktivitetsyta", name="Fotbollsplan", published=True,
            fields=[{"id": 137, "value": "Nej"}], geometry=RawGeometry("Point", [17.1, 62.1]),
        )
        result = reconciler().reconcile(SOURCE, collection(field))

        assert result.ignored_count == 1
        broker.merge.assert_not_called()

    def test_decode_failure_skips_feature_only(self, broker):
        bad = trail(fid=1, fields=[{"id": 109, "value": "Okänd"}])
        result = reconciler().reconcile(SOURCE, collection(bad, venue()))

        assert result.merged_count == 1
        assert broker.merge.call_count == 1
        assert result.errors[0].startswith("decode:1:")


class TestDeletion:
    """Deleted/unpublished features."""

    def test_recent_unpublish_deletes_once(self, broker):
        r = reconciler()
        gone = venue(published=False, updated=NOW - timedelta(days=8))

        first = r.reconcile(SOURCE, collection(gone))
        second = r.reconcile(SOURCE, collection(gone))

        broker.delete.assert_called_once_with(CFG, "urn:ngsi-ld:SportsVenue:se:sundsvall:facilities:1234")
        assert first.deleted_count == 1
        assert second.skipped_count == 1
        broker.merge.assert_not_called()

    def test_old_unpublish_is_not_deleted(self, broker):
        reconciler().reconcile(SOURCE, collection(venue(published=False, updated=NOW - timedelta(days=40))))

        broker.delete.assert_not_called()
        broker.merge.assert_not_called()

    def test_live_feature_never_deleted(self, broker):
        r = reconciler()
        for _ in range(3):
            r.reconcile(SOURCE, collection(venue()))

        broker.delete.assert_not_called()
        assert broker.merge.call_count == 3

    def test_republished_feature_is_merged_not_deleted(self, broker):
        """Cached from an earlier unpublish, then live again."""
        r = reconciler()
        r.reconcile(SOURCE, collection(venue(published=False, updated=NOW - timedelta(days=2))))
        assert 1234 in r.deletions
        broker.delete.reset_mock()

        result = r.reconcile(SOURCE, collection(venue()))

        broker.delete.assert_not_called()
        assert result.merged_count == 1

    def test_delete_failure_is_not_retried(self, broker):
        broker.delete.side_effect = BrokerError("boom", 500)
        r = reconciler()
        gone = venue(published=False, updated=NOW - timedelta(days=1))

        first = r.reconcile(SOURCE, collection(gone))
        r.reconcile(SOURCE, collection(gone))

        assert broker.delete.call_count == 1
        assert len(first.errors) == 1


class TestCityworks:
    """Fingerprint dedup across passes."""

    DISRUPTION = {
        "geometry": {"type": "GeometryCollection",
                     "geometries": [{"type": "Point", "coordinates": [613844, 6920388.159927368]}]},
        "properties": {"title": "Grävning", "disruptionStart": "2022-05-01Z", "disruptionEnd": "2022-06-29Z"},
    }

    def test_created_once_across_passes(self, broker):
        r = reconciler()
        d = Disruption.from_dict(self.DISRUPTION)

        first = r.reconcile_cityworks([d])
        second = r.reconcile_cityworks([Disruption.from_dict(self.DISRUPTION)])

        assert broker.create.call_count == 1
        body = broker.create.call_args[0][1]
        assert body["id"] == "urn:ngsi-ld:CityWork:6920388:613844:20220501Z:20220629Z"
        assert body["type"] == "CityWork"
        assert first.created_count == 1
        assert second.skipped_count == 1
        broker.merge.assert_not_called()

    def test_failed_create_is_retried_next_pass(self, broker):
        broker.create.side_effect = [BrokerError("down", 503), True]
        r = reconciler()
        d = Disruption.from_dict(self.DISRUPTION)

        r.reconcile_cityworks([d])
        r.reconcile_cityworks([d])

        assert broker.create.call_count == 2

    def test_existing_entity_counts_as_seen(self, broker):
        broker.create.return_value = False
        r = reconciler()
        d = Disruption.from_dict(self.DISRUPTION)

        r.reconcile_cityworks([d])
        r.reconcile_cityworks([d])

        assert broker.create.call_count == 1

    def test_no_point_is_an_error(self, broker):
        result = reconciler().reconcile_cityworks([Disruption(geometries=[], title="Utan punkt")])

        assert len(result.errors) == 1
        broker.create.assert_not_called()


class TestTrailPreparations:

    def test_active_trail(self, broker):
        ski = {"Sidsjön": {"isActive": True, "externalId": "796", "lastPreparation": "2022-01-10T08:00:00Z"}}

        result = reconciler().reconcile_trail_preparations(ski)

        entity_id, fragment = broker.merge.call_args[0][1:]
        assert entity_id == "urn:ngsi-ld:ExerciseTrail:se:sundsvall:facilities:796"
        assert fragment["status"]["value"] == "open"
        assert fragment["dateLastPreparation"]["value"] == {"@type": "DateTime", "@value": "2022-01-10T08:00:00Z"}
        assert result.merged_count == 1

    def test_inactive_trail(self, broker):
        reconciler().reconcile_trail_preparations({"Norrliden": {"isActive": False, "externalId": "12"}})

        fragment = broker.merge.call_args[0][2]
        assert fragment["status"]["value"] == "closed"
        assert "dateLastPreparation" not in fragment

    def test_unknown_trail_is_never_created(self, broker):
        broker.merge.side_effect = EntityNotFound("missing", 404)

        result = reconciler().reconcile_trail_preparations({"Ny": {"isActive": True, "externalId": "5"}})

        broker.create.assert_not_called()
        assert result.skipped_count == 1

    def test_missing_external_id(self, broker):
        result = reconciler().reconcile_trail_preparations({"Okänd": {"isActive": True}})

        broker.merge.assert_not_called()
        assert result.processed_count == 0


class TestPassIsolation:
    """A failure on one feature never stops the rest of the pass."""

    def test_bad_retrieve_body_does_not_abort_pass(self, broker):
        broker.retrieve.side_effect = [BrokerError("retrieve: response is not JSON", 200), None]

        result = reconciler().reconcile(SOURCE, collection(trail(fid=1), trail(fid=2)))

        assert broker.merge.call_count == 2
        assert result.merged_count == 2

    def test_unexpected_error_is_recorded_and_pass_continues(self, broker):
        broker.retrieve.side_effect = [ValueError("Expecting value"), None]

        result = reconciler().reconcile(SOURCE, collection(trail(fid=1), trail(fid=2)))

        broker.merge.assert_called_once()
        assert broker.merge.call_args[0][1] == "urn:ngsi-ld:ExerciseTrail:se:sundsvall:facilities:2"
        assert result.errors == ["feature:1"]
        assert result.merged_count == 1
