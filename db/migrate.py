from __future__ import annotations

import hashlib
import importlib.util
import re
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path


MIGRATION_RE = re.compile(r"^(\d{4})_([a-zA-Z0-9_]+)\.py$")


@dataclass(frozen=True)
class MigrationFile:
    version: str
    name: str
    path: Path

    @property
    def label(self) -> str:
        return f"{self.version}_{self.name}"


def default_migrations_dir() -> Path:
    return Path(__file__).resolve().parent.parent / "migrations"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _checksum(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


def _ensure_migration_table(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            checksum TEXT NOT NULL,
            applied_at_utc TEXT NOT NULL
        )
        """
    )
    conn.commit()


def discover_migrations(migrations_dir: str | Path) -> list[MigrationFile]:
    base = Path(migrations_dir)
    if not base.exists():
        raise RuntimeError(f"Migrations directory not found: {migrations_dir}")
    found: list[MigrationFile] = []
    for path in sorted(base.iterdir()):
        if not path.is_file():
            continue
        m = MIGRATION_RE.match(path.name)
        if m:
            found.append(MigrationFile(version=m.group(1), name=m.group(2), path=path))
    return found


def _run_upgrade(conn: sqlite3.Connection, migration: MigrationFile) -> None:
    spec = importlib.util.spec_from_file_location(f"threadwise_migration_{migration.label}", str(migration.path))
    if spec is None or spec.loader is None:
        raise RuntimeError(f"Could not load migration module: {migration.path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    upgrade = getattr(module, "upgrade", None)
    if not callable(upgrade):
        raise RuntimeError(f"Migration missing upgrade(conn): {migration.path}")
    upgrade(conn)


def apply_sqlite_migrations(conn: sqlite3.Connection, migrations_dir: str | Path | None = None) -> list[str]:
    """Apply pending migrations in version order and return the labels applied.

    A version that was already applied must still carry the same name and checksum;
    editing an applied migration is an error rather than a silent no-op.
    """
    _ensure_migration_table(conn)
    applied = {
        str(version): (str(name), str(checksum))
        for version, name, checksum in conn.execute("SELECT version, name, checksum FROM schema_migrations")
    }

    newly_applied: list[str] = []
    for migration in discover_migrations(migrations_dir or default_migrations_dir()):
        checksum = _checksum(migration.path)
        existing = applied.get(migration.version)
        if existing:
            old_name, old_checksum = existing
            if old_name != migration.name or old_checksum != checksum:
                raise RuntimeError(
                    f"Migration version {migration.version} already applied with different content "
                    f"(existing name={old_name}, file name={migration.name})."
                )
            continue

        print(f"[DB] Applying migration {migration.label}")
        _run_upgrade(conn, migration)
        conn.execute(
            "INSERT INTO schema_migrations (version, name, checksum, applied_at_utc) VALUES (?, ?, ?, ?)",
            (migration.version, migration.name, checksum, _utc_now_iso()),
        )
        conn.commit()
        newly_applied.append(migration.label)
    return newly_applied


def list_schema_migrations_sync(conn: sqlite3.Connection, limit: int = 200) -> list[tuple[str, str, str]]:
    try:
        cur = conn.execute(
            "SELECT version, name, applied_at_utc FROM schema_migrations ORDER BY version DESC LIMIT ?",
            (max(1, min(int(limit), 500)),),
        )
        return cur.fetchall()
    except sqlite3.OperationalError:
        return []
