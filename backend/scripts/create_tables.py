#!/usr/bin/env python3
"""Create the adsync tables in DATABASE_URL.

Existing tables are left untouched, including ones that still use legacy
column names (the upsert helper adapts to them).

Usage:
    cd backend && python scripts/create_tables.py
"""

import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from adsync.database import get_engine, init_db  # noqa: E402

logging.basicConfig(level=logging.INFO)


def main():
    init_db(get_engine())


if __name__ == "__main__":
    main()
