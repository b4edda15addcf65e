#!/usr/bin/env python3
# CIP/SDL Sync – municipal open data (facilities + city works) → NGSI-LD context broker
#
# Sources (each polled on its own thread):
# - Facilities feed  GET {facilities_url}/list  (apikey header)
#     beaches, exercise trails, sports fields (ice surfaces only), sports venues
# - City works feed  GET {citywork_url}         (SWEREF 99 TM grid coordinates)
# - Trail preparation feed (optional)           open status + last preparation time
#
# Files:
# - config.json   (tracked)      broker url, feed urls, intervals, *_enabled flags
# - secrets.json  (local, NOT tracked) {"facilities_api_key": "..."}
# Environment variables override both (CONTEXT_BROKER_URL, FACILITIES_URL, ...).
#
# Write protocol per facility: merge first, create only on "not found".
# Deleted/unpublished features are deleted once, within a 30 day window.

import argparse
import sys
from pathlib import Path

from cip.core.config import ConfigError, load_config
from cip.core.main_loop import run_loop

ROOT = Path(__file__).resolve().parent

def main() -> int:
    parser = argparse.ArgumentParser(description="Sync municipal open data into an NGSI-LD context broker")
    parser.add_argument("--config", default=str(ROOT / "config.json"))
    parser.add_argument("--secrets", default=str(ROOT / "secrets.json"))
    parser.add_argument("--once", action="store_true", help="run every enabled source once and exit")
    args = parser.parse_args()

    try:
        cfg = load_config(Path(args.config), Path(args.secrets))
    except ConfigError as e:
        print(f"config error: {e}", file=sys.stderr)
        return 1

    run_loop(cfg, one_shot=args.once)
    return 0

if __name__ == "__main__":
    sys.exit(main())
