"""Async engines for the local SQLite databases."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

if TYPE_CHECKING:
    from pathlib import Path


def sqlite_url(path: Path) -> str:
    """Return a read-only aiosqlite URL for a database file."""
    return f"sqlite+aiosqlite:///file:{path}?mode=ro&uri=true"


def create_engine(path: Path, *, echo: bool = False) -> AsyncEngine:
    """Create an async engine reading the given database file."""
    return create_async_engine(sqlite_url(path), echo=echo)
