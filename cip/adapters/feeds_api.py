import requests
from typing import Dict, Any, List

from ..core.constants import FEED_TIMEOUT_S, USER_AGENT
from ..core.models import FeatureCollection
from ..domain.citywork import Disruption
from ..utils.log import log_line

class FeedError(Exception):
    """A feed could not be fetched or its payload could not be parsed."""

def _get_json(cfg: Dict[str, Any], url: str, headers: Dict[str, str] | None = None) -> Any:
    h = {"User-Agent": str(cfg.get("user_agent") or USER_AGENT), "Accept": "application/json"}
    h.update(headers or {})
    try:
        r = requests.get(url, headers=h, timeout=FEED_TIMEOUT_S)
    except requests.RequestException as e:
        raise FeedError(f"GET {url} failed: {e!r}") from e

    if r.status_code != 200:
        raise FeedError(f"GET {url}: expected status code 200, but got {r.status_code}")

    try:
        return r.json()
    except ValueError as e:
        raise FeedError(f"failed to unmarshal response from {url}: {e}") from e

def fetch_facilities(cfg: Dict[str, Any]) -> FeatureCollection:
    base = str(cfg.get("facilities_url", "") or "").rstrip("/")
    data = _get_json(cfg, f"{base}/list", {"apikey": str(cfg.get("facilities_api_key", "") or "")})
    if not isinstance(data, dict):
        raise FeedError(f"facilities payload is not an object: {type(data).__name__}")
    try:
        return FeatureCollection.from_dict(data)
    except (TypeError, ValueError) as e:
        raise FeedError(f"malformed facilities payload: {e}") from e

def fetch_cityworks(cfg: Dict[str, Any]) -> List[Disruption]:
    url = str(cfg.get("citywork_url", "") or "")
    data = _get_json(cfg, url)
    if not isinstance(data, dict):
        raise FeedError(f"citywork payload is not an object: {type(data).__name__}")
    if data.get("error"):
        raise FeedError(f"endpoint returned 200 OK with err body: ({data['error']})")

    out = [Disruption.from_dict(f) for f in (data.get("features") or []) if isinstance(f, dict)]
    log_line(f"CITYWORK FEED | features={len(out)}", "DEBUG")
    return out

def fetch_trail_preparations(cfg: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Returns the "Ski" section: {name: {isActive, externalId, lastPreparation}}."""
    url = str(cfg.get("trail_preparation_url", "") or "")
    data = _get_json(cfg, url)
    if not isinstance(data, dict):
        raise FeedError(f"trail preparation payload is not an object: {type(data).__name__}")
    ski = data.get("Ski") or {}
    if not isinstance(ski, dict):
        raise FeedError("trail preparation payload has no Ski section")
    return ski
