#!/usr/bin/env python3
"""
Create the contact_status table and its change trigger.

- Re-runnable (IF NOT EXISTS / OR REPLACE)
- Dry-run mode prints the SQL without touching the database

The trigger NOTIFYs on every insert/update, so processes listening on the
channel also see writes made outside the app (e.g. manual fixes in psql).
"""

import argparse
import logging
import os
import sys
from pathlib import Path

import psycopg2
from psycopg2 import sql
from dotenv import load_dotenv

project_root = Path(__file__).parent.parent
load_dotenv(project_root / ".env")

logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)-8s | %(message)s")
logger = logging.getLogger("init_status_table")

SCHEMA = """
CREATE TABLE IF NOT EXISTS {table} (
    contact_id          TEXT PRIMARY KEY,
    estado              TEXT NOT NULL DEFAULT 'Incomunicado'
                        CHECK (estado IN ('Comunicado', 'Incomunicado')),
    ultimo_comunicacion TIMESTAMPTZ,
    comunicado_por      TEXT
);

CREATE OR REPLACE FUNCTION {function}() RETURNS trigger AS $$
BEGIN
    PERFORM pg_notify({channel}, NEW.contact_id);
    RETURN NEW;
END;
$$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS {trigger} ON {table};
CREATE TRIGGER {trigger}
    AFTER INSERT OR UPDATE ON {table}
    FOR EACH ROW EXECUTE FUNCTION {function}();
"""


def build_schema(table: str) -> sql.Composed:
    return sql.SQL(SCHEMA).format(
        table=sql.Identifier(table),
        function=sql.Identifier(f"{table}_notify"),
        trigger=sql.Identifier(f"{table}_notify_trg"),
        channel=sql.Literal(table),
    )


def main():
    parser = argparse.ArgumentParser(description="Create the contact status table")
    parser.add_argument("--table", default=os.getenv("STATUS_TABLE", "contact_status"))
    parser.add_argument("--dry-run", action="store_true", help="Print the SQL and exit")
    args = parser.parse_args()

    database_url = os.getenv("STATUS_DATABASE_URL")
    if not database_url:
        logger.error("STATUS_DATABASE_URL is not set. Copy .env.example to .env and configure it.")
        sys.exit(1)

    conn = psycopg2.connect(database_url)
    try:
        statement = build_schema(args.table)
        if args.dry_run:
            print(statement.as_string(conn))
            return
        with conn.cursor() as cur:
            cur.execute(statement)
        conn.commit()
        logger.info(f"Table {args.table} ready (trigger notifies channel '{args.table}')")
    finally:
        conn.close()


if __name__ == "__main__":
    main()
