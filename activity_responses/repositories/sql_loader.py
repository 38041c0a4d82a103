from __future__ import annotations

from functools import cache
from pathlib import Path

SQL_DIR = Path(__file__).resolve().parent / "sql"


@cache
def load_sql(name: str) -> str:
    """Return one statement from the bundled sql/ directory."""
    path = SQL_DIR / name
    if path.suffix != ".sql" or path.parent != SQL_DIR:
        raise ValueError(f"not a bundled query: {name}")
    return path.read_text(encoding="utf-8").strip()
