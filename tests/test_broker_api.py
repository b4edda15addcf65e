"""
Tests for broker_api.py - NGSI-LD context broker client (mocked HTTP).
"""

import pytest
import requests
from unittest.mock import Mock, patch

from cip.adapters.broker_api import (
    BrokerError, EntityNotFound, create_entity, delete_entity, merge_entity, retrieve_entity
)

CFG = {"context_broker_url": "http://broker:8080/"}
ENTITY_ID = "urn:ngsi-ld:Beach:se:sundsvall:facilities:283"
ENTITY_URL = f"http://broker:8080/ngsi-ld/v1/entities/{ENTITY_ID}"


def response(status, body=None):
    r = Mock()
    r.status_code = status
    r.text = "" if body is None else str(body)
    r.json.return_value = body
    return r


class TestCreate:

    @patch('cip.adapters.broker_api.requests.request')
    def test_created(self, mock_request):
        mock_request.return_value = response(201)

        assert create_entity(CFG, {"id": ENTITY_ID, "type": "Beach"}) is True

        args, kwargs = mock_request.call_args
        assert args == ("POST", "http://broker:8080/ngsi-ld/v1/entities")
        assert kwargs["json"] == {"id": ENTITY_ID, "type": "Beach"}
        assert kwargs["headers"]["Content-Type"] == "application/ld+json"
        assert kwargs["timeout"] == 10

    @patch('cip.adapters.broker_api.requests.request')
    def test_conflict_is_noop(self, mock_request):
        mock_request.return_value = response(409)
        assert create_entity(CFG, {"id": ENTITY_ID}) is False

    @patch('cip.adapters.broker_api.requests.request')
    def test_server_error(self, mock_request):
        mock_request.return_value = response(500, "boom")

        with pytest.raises(BrokerError) as exc:
            create_entity(CFG, {"id": ENTITY_ID})
        assert exc.value.status_code == 500


class TestMerge:

    @patch('cip.adapters.broker_api.requests.request')
    def test_ok(self, mock_request):
        mock_request.return_value = response(204)

        merge_entity(CFG, ENTITY_ID, {"name": {"type": "Property", "value": "x"}})

        args, kwargs = mock_request.call_args
        assert args == ("PATCH", ENTITY_URL)
        assert kwargs["timeout"] == 10

    @patch('cip.adapters.broker_api.requests.request')
    def test_not_found(self, mock_request):
        mock_request.return_value = response(404)

        with pytest.raises(EntityNotFound):
            merge_entity(CFG, ENTITY_ID, {})

    @patch('cip.adapters.broker_api.requests.request')
    def test_other_failure_is_not_not_found(self, mock_request):
        mock_request.return_value = response(400)

        with pytest.raises(BrokerError) as exc:
            merge_entity(CFG, ENTITY_ID, {})
        assert not isinstance(exc.value, EntityNotFound)

    @patch('cip.adapters.broker_api.requests.request')
    def test_transport_error(self, mock_request):
        mock_request.side_effect = requests.Timeout("slow")

        with pytest.raises(BrokerError):
            merge_entity(CFG, ENTITY_ID, {})


class TestDeleteAndRetrieve:

    @patch('cip.adapters.broker_api.requests.request')
    def test_delete(self, mock_request):
        mock_request.return_value = response(204)

        delete_entity(CFG, ENTITY_ID)

        args, kwargs = mock_request.call_args
        assert args == ("DELETE", ENTITY_URL)
        assert kwargs["timeout"] == 10

    @patch('cip.adapters.broker_api.requests.request')
    def test_delete_missing(self, mock_request):
        mock_request.return_value = response(404)

        with pytest.raises(EntityNotFound):
            delete_entity(CFG, ENTITY_ID)

    @patch('cip.adapters.broker_api.requests.request')
    def test_retrieve(self, mock_request):
        mock_request.return_value = response(200, {"id": ENTITY_ID, "name": {"value": "x"}})

        assert retrieve_entity(CFG, ENTITY_ID)["name"]["value"] == "x"
        assert mock_request.call_args[0] == ("GET", ENTITY_URL)

    @patch('cip.adapters.broker_api.requests.request')
    def test_retrieve_missing(self, mock_request):
        mock_request.return_value = response(404)
        assert retrieve_entity(CFG, ENTITY_ID) is None

    @patch('cip.adapters.broker_api.requests.request')
    def test_retrieve_non_json_body(self, mock_request):
        """A 200 carrying an HTML error page is a broker failure, not a crash."""
        r = response(200, "<html>proxy</html>")
        r.json.side_effect = ValueError("Expecting value: line 1 column 1 (char 0)")
        mock_request.return_value = r

        with pytest.raises(BrokerError) as exc:
            retrieve_entity(CFG, ENTITY_ID)
        assert exc.value.status_code == 200
