#!/usr/bin/env python3
"""
Background task to retire spent short-term access codes.

This script can be run periodically via cron as an alternative to the
in-process sweeper (SWEEP_INTERVAL_SECONDS):
    */5 * * * * cd /path/to/template-vault && python -m src.tasks.sweep_codes
"""

import sys
from datetime import datetime

from ..database.session import SessionLocal
from ..services.errors import RedemptionError
from ..services.lifecycle import LifecycleSweeper


def main():
    """Run one lifecycle sweep."""
    print(f"[{datetime.now().isoformat()}] Starting access code sweep...")

    db = SessionLocal()
    try:
        retired = LifecycleSweeper(db).sweep_expired()
        print(f"[{datetime.now().isoformat()}] Sweep finished: {retired} code(s) retired")
        return 0

    except RedemptionError as e:
        print(f"[{datetime.now().isoformat()}] ERROR: Sweep failed: {e}", file=sys.stderr)
        return 1

    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
