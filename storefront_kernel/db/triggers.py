"""
Module: storefront_kernel.db.triggers
Responsibility: PostgreSQL triggers that keep the history tables append-only
    even for writes that bypass the ORM (raw SQL, admin consoles).  The ORM
    listeners in db/immutability.py guard the same rules inside the process.
Architecture position: Kernel > DB.  Reads the SQL scripts in db/sql/ and
    runs them; nothing else.

Rules installed (two triggers per history table, two on orders):
    - inventory_adjustments, order_lines, order_status_changes: rows are
      never updated or deleted.
    - orders: rows are never deleted, and a tracking number, once
      assigned, never changes.

Failure modes:
    - A violating statement fails with the trigger's RAISE EXCEPTION,
      surfaced by SQLAlchemy as InternalError or IntegrityError.
    - OperationalError on deadlock while installing; create_tables()
      retries.
"""

from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine import Engine

SQL_DIR = Path(__file__).parent / "sql"

# Run in this order; each script is CREATE OR REPLACE and safe to re-run.
TRIGGER_FILES = (
    "01_inventory_adjustment.sql",
    "02_order_line.sql",
    "03_order_status_change.sql",
    "04_order.sql",
)

DROP_FILE = "99_drop_all.sql"

_APPEND_ONLY_TABLES = ("inventory_adjustment", "order_line", "order_status_change")

ALL_TRIGGER_NAMES = tuple(
    f"trg_{table}_immutability_{op}"
    for table in _APPEND_ONLY_TABLES
    for op in ("update", "delete")
) + ("trg_order_delete", "trg_order_tracking_number_immutability")


def _run_script(engine: Engine, sql: str) -> None:
    with engine.begin() as conn:
        conn.execute(text(sql))


def install_immutability_triggers(engine: Engine) -> None:
    """Install every trigger.  Tables must already exist."""
    script = "\n\n".join((SQL_DIR / name).read_text(encoding="utf-8") for name in TRIGGER_FILES)
    _run_script(engine, script)


def uninstall_immutability_triggers(engine: Engine) -> None:
    """Drop every trigger.  For test teardown; reinstall before serving traffic."""
    _run_script(engine, (SQL_DIR / DROP_FILE).read_text(encoding="utf-8"))


def get_installed_triggers(engine: Engine) -> list[str]:
    query = text("SELECT tgname FROM pg_trigger WHERE tgname = ANY(:names) ORDER BY tgname")
    with engine.connect() as conn:
        return list(conn.execute(query, {"names": list(ALL_TRIGGER_NAMES)}).scalars())


def triggers_installed(engine: Engine) -> bool:
    return set(get_installed_triggers(engine)) == set(ALL_TRIGGER_NAMES)
