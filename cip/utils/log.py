import threading
from datetime import datetime
from pathlib import Path
from typing import Optional, Any

from .time import TZ_STOCKHOLM

# Set by the main loop; None means stdout only.
LOG_DIR: Optional[Path] = None

_LOG_LOCK = threading.Lock()
_LEVELS = ("DEBUG", "INFO", "WARN", "ERROR")

def setup_logging(log_dir: Optional[Path]) -> None:
    global LOG_DIR
    LOG_DIR = log_dir
    if LOG_DIR is not None:
        LOG_DIR.mkdir(parents=True, exist_ok=True)

def _append(path: Path, line: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(line + "\n")

def log_line(msg: Any, level: str = "INFO") -> None:
    """
    Logging wrapper (single timestamp, readable):
    - Prefix every line with: YYYY-MM-DD // HH:MM:SS+HH:MM -
    - Level tag only for non-INFO lines.
    - One file per day under LOG_DIR (sync-YYYY-MM-DD.log).
    """
    line = str(msg).strip()
    level = level.upper() if level.upper() in _LEVELS else "INFO"

    with _LOG_LOCK:
        ts = datetime.now(TZ_STOCKHOLM)
        prefix = ts.strftime("%Y-%m-%d // %H:%M:%S%z")
        if len(prefix) >= 5:
            prefix = prefix[:-2] + ":" + prefix[-2:]

        if level != "INFO":
            line = f"{level} | {line}"
        full = f"{prefix} - {line}" if line else f"{prefix} -"

        if LOG_DIR is not None:
            _append(LOG_DIR / f"sync-{ts.strftime('%Y-%m-%d')}.log", full)

        print(full, flush=True)
