"""
Bootstrap: open the ledger database with logging configured.

    python -m pos_ledger.main [db_path]

prints the schema version and a summary of today's sales.
"""
from __future__ import annotations

from pathlib import Path
import sqlite3
import sys
from typing import Optional

from .config import DB_PATH, LOG_PATH
from .database import get_connection
from .database.repositories.settings_repo import SettingsRepo
from .database.versioning import get_current_version
from .modules.reporting.service import ReportingService
from .modules.sales.service import SalesLedger
from .utils.helpers import fmt_money, today_str
from .utils.loggers import get_event_logger, get_logger

_log = get_logger()


def bootstrap(
    db_path: Path | str | None = None,
    log_path: Path | str | None = None,
    current_user: Optional[dict] = None,
) -> tuple[sqlite3.Connection, SalesLedger]:
    """Connection with the schema applied plus a ledger bound to it."""
    get_event_logger(str(log_path or LOG_PATH))
    conn = get_connection(db_path or DB_PATH)
    return conn, SalesLedger(conn, current_user=current_user)


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    conn, _ = bootstrap(argv[0] if argv else None)
    try:
        settings = SettingsRepo(conn).load()
        places = 0 if settings.integer_currency else 2
        summary = ReportingService(conn, settings.integer_currency).sales_summary(today_str(), today_str())
        _log.info("Schema version %s", get_current_version(conn))
        print(f"Sales today: {summary.transaction_count} (returns: {summary.return_count})")
        print(f"Net sales:   {fmt_money(summary.total_sales, places)}")
        print(f"Profit:      {fmt_money(summary.total_profit, places)}")
    finally:
        conn.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
