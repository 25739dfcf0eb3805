#!/usr/bin/env -S uv run python
"""
Set up the book-sync schema (tables, indexes, RLS policies) in a Postgres database.
Usage: uv run python scripts/create_tables_for_sync_api.py --pg-url URL [--if-not-exists] [--dry-run]
"""

import os
import sys

# Add src to path so sync_schema is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from sync_schema.cli import main

if __name__ == "__main__":
    main()
