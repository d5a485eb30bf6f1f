from pathlib import Path
from typing import Dict, Optional
import aiosqlite


SCHEMA_FILE = Path(__file__).parent / "schema.sql"


async def connect(db_path: str, pragmas: Optional[Dict[str, str]] = None) -> aiosqlite.Connection:
    """Open an aiosqlite connection for the match store.

    - Uses autocommit mode (`isolation_level=None`); callers open explicit
      `BEGIN IMMEDIATE` transactions around read-modify-write.
    - Sets `row_factory` to `aiosqlite.Row` for named access.
    - Applies any additional PRAGMA settings supplied in `pragmas`.

    Returns an open connection; caller is responsible for closing it.
    """
    conn = await aiosqlite.connect(
        db_path,
        check_same_thread=False,
        timeout=30.0,
        isolation_level=None,
    )
    conn.row_factory = aiosqlite.Row

    # DELETE journal mode: WAL misbehaves on Docker volume mounts shared by API and workers
    await conn.execute("PRAGMA journal_mode=DELETE")
    if pragmas:
        for k, v in pragmas.items():
            await conn.execute(f"PRAGMA {k} = {v}")
    return conn


def load_statements(schema_path: Optional[str] = None) -> list[str]:
    """Split a schema file into individual statements, dropping `--` comments."""
    schema_file = Path(schema_path) if schema_path else SCHEMA_FILE
    if not schema_file.exists():
        raise FileNotFoundError(f"Schema file not found: {schema_file}")

    statements = []
    current = []
    for line in schema_file.read_text().split('\n'):
        if '--' in line:
            line = line[:line.index('--')]
        line = line.strip()
        if line:
            current.append(line)
            if line.endswith(';'):
                stmt = ' '.join(current).rstrip(';').strip()
                if stmt:
                    statements.append(stmt)
                current = []
    return statements


async def apply_schema(conn: aiosqlite.Connection, schema_path: Optional[str] = None) -> None:
    """Create tables and indexes on an open connection. Idempotent."""
    for statement in load_statements(schema_path):
        await conn.execute(statement)


async def init_db(db_path: str, schema_path: Optional[str] = None) -> None:
    """Initialize a SQLite database file using the provided SQL schema.

    If `schema_path` is not provided this function uses `db/schema.sql`.
    """
    db_file = Path(db_path)
    if db_file.parent and not db_file.parent.exists():
        db_file.parent.mkdir(parents=True, exist_ok=True)

    conn = await connect(db_path)
    try:
        await apply_schema(conn, schema_path)
    finally:
        await conn.close()
