#!/usr/bin/env python3
"""Initialize the match database from db/schema.sql.

Run from the project root:

    python -m scripts.init_sqlite [db_path] [--reset]
"""
import asyncio
import os
import sqlite3
import sys
from pathlib import Path

import config
from db import init_db

CRITICAL_TABLES = ("matches",)


def reset_db(db_path: Path) -> None:
    """Drop every existing table."""
    conn = sqlite3.connect(str(db_path))
    try:
        cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        for (table,) in cursor.fetchall():
            conn.execute(f"DROP TABLE IF EXISTS {table}")
        conn.commit()
    finally:
        conn.close()


def verify_db(db_path: Path) -> list[str]:
    """Return the critical tables missing from the database."""
    conn = sqlite3.connect(str(db_path))
    try:
        created = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    finally:
        conn.close()
    return [t for t in CRITICAL_TABLES if t not in created]


def main(argv: list[str]) -> int:
    args = [a for a in argv if not a.startswith("--")]
    db_path = Path(args[0] if args else config.DB_PATH).resolve()

    try:
        if "--reset" in argv and db_path.exists():
            reset_db(db_path)
        asyncio.run(init_db(str(db_path)))
        missing = verify_db(db_path)
    except (sqlite3.Error, FileNotFoundError) as e:
        print(f"[INIT] ✗ Error: Failed to initialize database: {e}", file=sys.stderr)
        return 1

    if missing:
        print(f"[INIT] ✗ Error: Missing critical tables {missing}", file=sys.stderr)
        return 1

    # API and worker containers share the file
    os.chmod(str(db_path), 0o666)
    print(f"[INIT] ✓ Database initialized at {db_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
