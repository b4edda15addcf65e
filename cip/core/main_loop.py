import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List

from .constants import FACILITIES_RETRY_MIN
from .engine import Reconciler
from .models import PassResult
from ..adapters.feeds_api import FeedError, fetch_cityworks, fetch_facilities, fetch_trail_preparations
from ..domain.dedup import SeenFeatureCache
from ..domain.deletion import DeletionWindowCache
from ..utils.log import log_line, setup_logging

@dataclass
class Source:
    name: str
    run: Callable[[], PassResult]
    interval_s: float
    retry_s: float

def build_sources(cfg: Dict[str, Any], reconciler: Reconciler) -> List[Source]:
    """One Source per enabled feed; each gets its own polling thread."""
    sources: List[Source] = []

    if cfg.get("facilities_enabled") is True:
        url = str(cfg["facilities_url"]).rstrip("/")
        sources.append(Source(
            name="facilities",
            run=lambda: reconciler.reconcile(url, fetch_facilities(cfg)),
            interval_s=int(cfg["facilities_polling_interval_min"]) * 60,
            retry_s=FACILITIES_RETRY_MIN * 60,
        ))

    if cfg.get("citywork_enabled") is True:
        interval = int(cfg["citywork_polling_interval_s"])
        sources.append(Source(
            name="citywork",
            run=lambda: reconciler.reconcile_cityworks(fetch_cityworks(cfg)),
            interval_s=interval,
            retry_s=interval,
        ))

    if cfg.get("trail_preparation_enabled") is True:
        interval = int(cfg["trail_preparation_polling_interval_min"]) * 60
        sources.append(Source(
            name="trail-preparation",
            run=lambda: reconciler.reconcile_trail_preparations(fetch_trail_preparations(cfg)),
            interval_s=interval,
            retry_s=interval,
        ))

    return sources

def run_once(source: Source) -> bool:
    """One pass. A failing pass is logged; it never escapes into other loops."""
    try:
        source.run()
        return True
    except FeedError as e:
        log_line(f"POLL FAILED | source={source.name} | retry_in={int(source.retry_s)}s | err={e}", "ERROR")
    except Exception as e:
        log_line(f"POLL ERROR | source={source.name} | retry_in={int(source.retry_s)}s | err={e!r}", "ERROR")
    return False

def poll_forever(source: Source, sleep: Callable[[float], None] = time.sleep) -> None:
    while True:
        ok = run_once(source)
        sleep(source.interval_s if ok else source.retry_s)

def run_loop(cfg: Dict[str, Any], one_shot: bool = False) -> None:
    log_dir = cfg.get("log_dir")
    setup_logging(Path(log_dir) if log_dir else None)

    import cip
    log_line(f"MAIN LOOP STARTED (cip-sdl-sync v{cip.__version__})")

    # shared by every facility kind; citywork has its own lifetime set
    reconciler = Reconciler(cfg, DeletionWindowCache(), SeenFeatureCache())
    sources = build_sources(cfg, reconciler)

    if not sources:
        log_line("NO SOURCES ENABLED | set FACILITIES_ENABLED, CITYWORK_ENABLED or TRAIL_PREPARATION_ENABLED", "WARN")
        return

    for s in sources:
        log_line(f"SOURCE ENABLED | name={s.name} | interval={int(s.interval_s)}s")

    if one_shot:
        for s in sources:
            run_once(s)
        return

    threads = [
        threading.Thread(target=poll_forever, args=(s,), name=f"poll-{s.name}", daemon=True)
        for s in sources
    ]
    for t in threads:
        t.start()

    try:
        while any(t.is_alive() for t in threads):
            time.sleep(1.0)
    except KeyboardInterrupt:
        log_line("MAIN LOOP STOPPED (KeyboardInterrupt)")
