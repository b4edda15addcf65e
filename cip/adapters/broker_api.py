import requests
from typing import Dict, Any, Optional
from urllib.parse import quote

from ..core.constants import BROKER_TIMEOUT_S, USER_AGENT

class BrokerError(Exception):
    """Context broker call failed."""

    def __init__(self, msg: str, status_code: Optional[int] = None):
        super().__init__(msg)
        self.status_code = status_code

class EntityNotFound(BrokerError):
    pass

def _headers(cfg: Dict[str, Any]) -> Dict[str, str]:
    return {
        "Content-Type": "application/ld+json",
        "Accept": "application/ld+json",
        "User-Agent": str(cfg.get("user_agent") or USER_AGENT),
    }

def _entities_url(cfg: Dict[str, Any], entity_id: Optional[str] = None) -> str:
    base = str(cfg.get("context_broker_url", "") or "").rstrip("/")
    url = f"{base}/ngsi-ld/v1/entities"
    if entity_id:
        url += "/" + quote(entity_id, safe=":")
    return url

def _request(cfg: Dict[str, Any], method: str, url: str, body: Optional[Dict[str, Any]] = None) -> requests.Response:
    try:
        return requests.request(method, url, headers=_headers(cfg), json=body, timeout=BROKER_TIMEOUT_S)
    except requests.RequestException as e:
        raise BrokerError(f"{method} {url} failed: {e!r}") from e

def _fail(r: requests.Response, what: str, entity_id: str) -> BrokerError:
    msg = f"{what} {entity_id} failed with status {r.status_code}: {r.text[:200]}"
    if r.status_code == 404:
        return EntityNotFound(msg, 404)
    return BrokerError(msg, r.status_code)

def create_entity(cfg: Dict[str, Any], entity: Dict[str, Any]) -> bool:
    """
    POST a full entity. Returns True if created, False if it already existed (409).
    """
    r = _request(cfg, "POST", _entities_url(cfg), entity)
    if r.status_code == 201:
        return True
    if r.status_code == 409:
        return False
    raise _fail(r, "create", str(entity.get("id")))

def merge_entity(cfg: Dict[str, Any], entity_id: str, fragment: Dict[str, Any]) -> None:
    """PATCH a partial entity. Raises EntityNotFound if the broker has no such entity."""
    r = _request(cfg, "PATCH", _entities_url(cfg, entity_id), fragment)
    if r.status_code in (200, 204):
        return
    raise _fail(r, "merge", entity_id)

def delete_entity(cfg: Dict[str, Any], entity_id: str) -> None:
    r = _request(cfg, "DELETE", _entities_url(cfg, entity_id))
    if r.status_code in (200, 204):
        return
    raise _fail(r, "delete", entity_id)

def retrieve_entity(cfg: Dict[str, Any], entity_id: str) -> Optional[Dict[str, Any]]:
    """GET an entity. None if it does not exist."""
    r = _request(cfg, "GET", _entities_url(cfg, entity_id))
    if r.status_code == 200:
        try:
            return r.json()
        except ValueError as e:
            raise BrokerError(f"retrieve {entity_id}: response is not JSON: {e}", r.status_code) from e
    if r.status_code == 404:
        return None
    raise _fail(r, "retrieve", entity_id)
