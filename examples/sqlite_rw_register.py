"""
rw-register against SQLite.

Every logical process opens its own connection to one database file and
performs single-register reads and writes.  Run it with::

    python examples/sqlite_rw_register.py --threads 5 --ops 100

https://www.sqlite.org/isolation.html
https://www.sqlite.org/threadsafe.html
"""

import argparse
import os
import sqlite3
import tempfile

from logzero import logger

from faultline import Client, run_test
from faultline.workloads import rw_register_gen

KEY_ID = 1


class SQLiteRWRegister(Client):
    """A client that reads and writes one row of the ``rw_register`` table."""

    def __init__(self, path):
        self.path = path

    def open(self):
        conn = sqlite3.connect(self.path, timeout=30, isolation_level=None)
        # See https://www.sqlite.org/pragma.html
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = normal")
        return conn

    def setup(self, conn):
        conn.execute("CREATE TABLE IF NOT EXISTS rw_register (id INTEGER PRIMARY KEY, val INTEGER)")
        return True

    def invoke(self, op, conn):
        kind, key, value = op.value[0]
        try:
            if kind == "r":
                row = conn.execute("SELECT val FROM rw_register WHERE id = ?", (KEY_ID,)).fetchone()
                return op.replace(type="ok", value=[[kind, key, None if row is None else row[0]]])
            if kind == "w":
                conn.execute("INSERT OR REPLACE INTO rw_register (id, val) VALUES (?, ?)", (KEY_ID, value))
                return op.replace(type="ok")
        except sqlite3.OperationalError as e:
            # A locked database may or may not have applied the write.
            return op.replace(type="fail" if kind == "r" else "info", error=str(e))
        raise ValueError(f"Unknown operation {kind!r}")

    def teardown(self, conn):
        logger.info("Total changes in SQLite DB: %d", conn.total_changes)
        return True

    def close(self, conn):
        conn.close()
        return True


def main():
    parser = argparse.ArgumentParser(description="rw-register against SQLite")
    parser.add_argument("--threads", type=int, default=5)
    parser.add_argument("--thread-type", default="fiber")
    parser.add_argument("--ops", type=int, default=100)
    args = parser.parse_args()

    logger.info("SQLite version: %s", sqlite3.sqlite_version)
    with tempfile.TemporaryDirectory() as workdir:
        result = run_test(
            {
                "client": SQLiteRWRegister(os.path.join(workdir, "register.db")),
                "generator": rw_register_gen().take(args.ops),
            },
            {
                "create_reports": True,
                "report_dir": workdir,
                "threads": args.threads,
                "thread_type": args.thread_type,
                "nodes": ["localhost"],
            },
        )
        logger.info("%d operations completed", result.history.ops_completed())


if __name__ == "__main__":
    main()
