import threading
from typing import Set

def fingerprint(x: float, y: float, start: str, end: str) -> str:
    """
    Identity for a disruption record: rounded grid position plus its dates.
    The feed has no stable id of its own.
    """
    fp = f"{round(x):d}:{round(y):d}:{start}:{end}"
    return fp.replace("-", "").replace(".", "")

class SeenFeatureCache:
    """Process-lifetime set of fingerprints. Never evicts."""

    def __init__(self):
        self._seen: Set[str] = set()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)

    def seen(self, fp: str) -> bool:
        with self._lock:
            return fp in self._seen

    def mark_seen(self, fp: str) -> None:
        with self._lock:
            self._seen.add(fp)
