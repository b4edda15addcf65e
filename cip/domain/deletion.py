import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Tuple

from ..core.constants import DELETION_WINDOW_DAYS
from ..core.models import RawFeature
from ..utils.time import now_utc, parse_upstream_time

ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)

def deleted_at(feature: RawFeature) -> datetime:
    """First parseable of deleted, updated, created; zero time if none parse."""
    for value in (feature.deleted, feature.updated, feature.created):
        t = parse_upstream_time(value)
        if t is not None:
            return t
    return ZERO_TIME

class DeletionWindowCache:
    """
    Decides whether a deleted/unpublished feature should trigger a delete
    call, and suppresses repeats.

    Shared by every facility kind in the process; one lock covers the whole
    lookup-and-update so two passes can never both decide to delete.
    Entries older than the window are evicted; nothing is persisted.
    """

    def __init__(self, window: timedelta = timedelta(days=DELETION_WINDOW_DAYS),
                 clock: Optional[Callable[[], datetime]] = None):
        self.window = window
        self.clock = clock or now_utc
        self._deleted: Dict[int, datetime] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._deleted)

    def __contains__(self, feature_id: int) -> bool:
        with self._lock:
            return feature_id in self._deleted

    def should_delete(self, feature: RawFeature) -> Tuple[bool, bool]:
        """Returns (ok_to_delete, already_handled)."""
        if feature.published and feature.deleted is None:
            return False, False

        when = deleted_at(feature)
        window_start = self.clock() - self.window

        with self._lock:
            cached = self._deleted.get(feature.id)
            if cached is not None:
                if cached < window_start:
                    # evicted, yet this call still reports handled
                    del self._deleted[feature.id]
                return True, True

            if when < window_start:
                # deleted long before we first saw it: never flood deletes on cold start
                return True, True

            self._deleted[feature.id] = when
            return True, False
