import hashlib
import logging
import os
import time
from contextlib import contextmanager
from typing import Iterator, Optional

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection

logger = logging.getLogger(__name__)

_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
DEFAULT_CFG_PATH = os.path.join(_ROOT, "alembic.ini")
DEFAULT_SCRIPT_LOCATION = os.path.join(_ROOT, "alembic")


def _lock_key(name: str) -> int:
    s = str(name or "").strip().lower()
    d = hashlib.blake2b(s.encode("utf-8"), digest_size=8).digest()
    return int(int.from_bytes(d, "big", signed=False) % (2**63 - 1))


@contextmanager
def _advisory_lock(conn: Connection, *, name: str, timeout_seconds: int) -> Iterator[None]:
    """Serialises concurrent migrators on PostgreSQL; no-op elsewhere."""
    if conn.dialect.name != "postgresql":
        yield
        return
    key = _lock_key(name)
    deadline = time.time() + float(max(1, int(timeout_seconds)))
    while True:
        got = conn.execute(text("SELECT pg_try_advisory_lock(:k)"), {"k": key}).scalar()
        if bool(got):
            break
        if time.time() >= deadline:
            raise TimeoutError(f"Timeout esperando advisory lock (key={key})")
        time.sleep(0.5)
    try:
        yield
    finally:
        conn.execute(text("SELECT pg_advisory_unlock(:k)"), {"k": key})


def alembic_config(
    sqlalchemy_url: str,
    cfg_path: str = DEFAULT_CFG_PATH,
    script_location: str = DEFAULT_SCRIPT_LOCATION,
) -> Config:
    cfg = Config(cfg_path)
    cfg.set_main_option("script_location", script_location)
    cfg.set_main_option("sqlalchemy.url", sqlalchemy_url)
    cfg.attributes["url_from_runner"] = True
    return cfg


def head_revision(cfg: Config) -> Optional[str]:
    return ScriptDirectory.from_config(cfg).get_current_head()


def upgrade_head(
    sqlalchemy_url: str,
    *,
    cfg_path: str = DEFAULT_CFG_PATH,
    script_location: str = DEFAULT_SCRIPT_LOCATION,
    lock_timeout_seconds: int = 120,
    verify_revision: bool = True,
) -> Optional[str]:
    """Upgrades the database to head and returns the revision it ends at."""
    url = str(sqlalchemy_url or "").strip()
    if not url:
        raise ValueError("sqlalchemy_url vacío")

    cfg = alembic_config(url, cfg_path, script_location)
    head = head_revision(cfg) if verify_revision else None
    engine = create_engine(url, pool_pre_ping=True)
    try:
        with engine.connect() as conn:
            with _advisory_lock(conn, name="gymflow:migrate", timeout_seconds=lock_timeout_seconds):
                cfg.attributes["connection"] = conn
                command.upgrade(cfg, "head")
                row = conn.execute(text("SELECT version_num FROM alembic_version")).fetchone()
                current = str(row[0]) if row and row[0] is not None else ""
                conn.commit()
            if verify_revision and head and current != str(head):
                raise RuntimeError(f"alembic_version={current} != head={head}")
    finally:
        engine.dispose()
    logger.info(f"database at revision {current or '(none)'}")
    return current or None
